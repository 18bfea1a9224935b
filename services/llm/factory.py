"""Factory for creating completion backends based on configuration.

Implements Factory Pattern for backend selection with registry pattern for extensibility.

Based on:
- Factory Pattern: https://refactoring.guru/design-patterns/factory-method/python
- Registry Pattern: Python Cookbook 3rd Edition, Recipe 9.22
"""

import logging

from services.llm.base import CompletionBackend
from services.llm.ollama_backend import OllamaCompletionBackend
from services.llm.openai_backend import OpenAICompletionBackend
from services.shared.config import Settings

logger = logging.getLogger(__name__)


class BackendRegistry:
    """Registry of available completion backends.

    Maintains a mapping of provider names to their implementation classes.
    Supports runtime registration of new backends.
    """

    _backends: dict[str, type[CompletionBackend]] = {
        "openai": OpenAICompletionBackend,
        "ollama": OllamaCompletionBackend,
    }

    @classmethod
    def register(cls, name: str, backend_class: type[CompletionBackend]) -> None:
        """Register a new backend.

        Args:
            name: Provider identifier (must match Settings.completion_provider)
            backend_class: Class implementing CompletionBackend
        """
        cls._backends[name] = backend_class
        logger.info(f"Registered completion backend: {name}")

    @classmethod
    def get_backend_class(cls, name: str) -> type[CompletionBackend]:
        """Get backend class by name.

        Raises:
            ValueError: If backend not found in registry
        """
        if name not in cls._backends:
            available = ", ".join(cls._backends.keys())
            raise ValueError(
                f"Unknown completion provider: '{name}'. Available providers: {available}"
            )
        return cls._backends[name]

    @classmethod
    def list_backends(cls) -> list[str]:
        return list(cls._backends.keys())


def create_completion_backend(settings: Settings) -> CompletionBackend:
    """Create the completion backend selected by ``settings.completion_provider``.

    Logs a warning if the backend is not available (e.g., missing API key).

    Args:
        settings: Application settings with completion_provider field

    Returns:
        Configured completion backend instance

    Raises:
        ValueError: If configured provider is unknown

    Example:
        >>> settings = Settings(completion_provider="openai")
        >>> backend = create_completion_backend(settings)
        >>> backend.complete("You categorize expenses.", "Acme Paper Co")
    """
    provider_name = settings.completion_provider
    backend_class = BackendRegistry.get_backend_class(provider_name)
    backend = backend_class(settings)

    if not backend.is_available():
        logger.warning(
            f"Completion provider '{provider_name}' is not fully available. "
            f"Check configuration (e.g., API keys, server URL)."
        )

    logger.info(f"Created completion backend: {provider_name}")
    return backend
