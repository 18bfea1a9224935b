"""Abstract base class for language-model completion backends.

Enables switching between completion providers (OpenAI, self-hosted Ollama)
while every agent operation talks to one interface.

Based on Strategy Pattern:
https://refactoring.guru/design-patterns/strategy/python
"""

from abc import ABC, abstractmethod

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from services.shared.config import Settings
from services.shared.exceptions import CompletionError


class CompletionBackend(ABC):
    """Abstract base class for chat-completion providers.

    Implementations send one system and one user message and return the
    assistant's text. They raise ``CompletionError`` for transport or API
    failures and ``ConfigurationError`` when credentials are missing.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize backend with settings.

        Args:
            settings: Application settings
        """
        self.settings = settings

    @abstractmethod
    def complete(self, system_prompt: str, user_prompt: str, *, json_output: bool = False) -> str:
        """Run a single chat completion.

        Args:
            system_prompt: Instruction for the model
            user_prompt: Content the model operates on
            json_output: Require the model to answer with a JSON object

        Returns:
            Assistant message text (may be empty)
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this backend is configured (API key, reachable server)."""
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier for logging/metrics (e.g., 'openai')."""
        pass

    def _retrying(self) -> Retrying:
        """Retry policy for transient errors.

        ``llm_max_attempts`` defaults to 1, so failures are terminal unless
        retries are explicitly enabled.
        """
        return Retrying(
            retry=retry_if_exception_type(CompletionError),
            wait=wait_exponential_jitter(initial=1, max=30),
            stop=stop_after_attempt(self.settings.llm_max_attempts),
            reraise=True,
        )
