"""OpenAI chat-completions backend.

Uses the OpenAI API for every agent operation: invoice extraction,
categorization, anomaly checks and reminder drafting. JSON answers are
requested with ``response_format={"type": "json_object"}``.
"""

import logging

from openai import OpenAI, OpenAIError

from services.llm.base import CompletionBackend
from services.shared.config import Settings
from services.shared.exceptions import CompletionError, ConfigurationError

logger = logging.getLogger(__name__)


class OpenAICompletionBackend(CompletionBackend):
    """Completion backend using OpenAI chat completions.

    Requires APP_OPENAI_API_KEY. The client is created lazily and reused.
    """

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self._client: OpenAI | None = None

    @property
    def provider_name(self) -> str:
        return "openai"

    def is_available(self) -> bool:
        """Check if OpenAI API key is configured."""
        return bool(self.settings.openai_api_key)

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self.is_available():
                raise ConfigurationError(
                    "OpenAI API key not configured. Set APP_OPENAI_API_KEY environment variable."
                )
            self._client = OpenAI(
                api_key=self.settings.openai_api_key,
                timeout=self.settings.llm_timeout_seconds,
                max_retries=0,  # retries are governed by llm_max_attempts
            )
        return self._client

    def complete(self, system_prompt: str, user_prompt: str, *, json_output: bool = False) -> str:
        client = self._get_client()
        for attempt in self._retrying():
            with attempt:
                return self._create(client, system_prompt, user_prompt, json_output)
        raise CompletionError("OpenAI completion produced no attempt")  # pragma: no cover

    def _create(
        self, client: OpenAI, system_prompt: str, user_prompt: str, json_output: bool
    ) -> str:
        kwargs = {}
        if json_output:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = client.chat.completions.create(  # type: ignore[call-overload]
                model=self.settings.openai_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                **kwargs,
            )
        except OpenAIError as e:
            logger.warning(f"OpenAI completion failed: {e}")
            raise CompletionError(f"OpenAI completion failed: {e}") from e

        if not response.choices:
            raise CompletionError("OpenAI returned no choices")
        content: str | None = response.choices[0].message.content
        return content or ""
