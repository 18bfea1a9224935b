"""Ollama backend for self-hosted LLM completions.

Keeps invoice data on-premises by running against a local Ollama server.

Requires Ollama server running on localhost:11434.
See: https://ollama.ai/
"""

import logging

import httpx

from services.llm.base import CompletionBackend
from services.shared.config import Settings
from services.shared.exceptions import CompletionError

logger = logging.getLogger(__name__)


class OllamaCompletionBackend(CompletionBackend):
    """Completion backend using the Ollama chat API.

    Supports models like Qwen2.5, Llama3, Mistral.
    """

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self._base_url = settings.ollama_base_url
        self._model = settings.ollama_model
        self._client = httpx.Client(timeout=settings.llm_timeout_seconds)

    @property
    def provider_name(self) -> str:
        return "ollama"

    def is_available(self) -> bool:
        """Check if Ollama server is running and model is available."""
        try:
            response = self._client.get(f"{self._base_url}/api/tags")
            if response.status_code != 200:
                return False
            models = response.json().get("models", [])
            model_names = [m.get("name", "").split(":")[0] for m in models]
            return self._model.split(":")[0] in model_names
        except httpx.HTTPError:
            return False

    def complete(self, system_prompt: str, user_prompt: str, *, json_output: bool = False) -> str:
        for attempt in self._retrying():
            with attempt:
                return self._chat(system_prompt, user_prompt, json_output)
        raise CompletionError("Ollama completion produced no attempt")  # pragma: no cover

    def _chat(self, system_prompt: str, user_prompt: str, json_output: bool) -> str:
        payload: dict[str, object] = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "stream": False,
            "options": {"temperature": 0},
        }
        if json_output:
            payload["format"] = "json"

        try:
            response = self._client.post(f"{self._base_url}/api/chat", json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Ollama completion failed: {e}")
            raise CompletionError(f"Ollama completion failed: {e}") from e

        content: str = response.json().get("message", {}).get("content", "")
        return content
