"""Remote browser sessions and the Playwright page attached to them.

Sessions are billed while open, so ``open()`` stops the session exactly once
whatever happens inside the ``with`` block.

Based on:
- Hyperbrowser Python SDK: https://docs.hyperbrowser.ai/reference/sdks/python
- Playwright connect_over_cdp: https://playwright.dev/python/docs/api/class-browsertype
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager

from hyperbrowser import Hyperbrowser
from hyperbrowser.exceptions import HyperbrowserError
from playwright.sync_api import Page, sync_playwright
from pydantic import BaseModel

from services.shared.config import Settings
from services.shared.exceptions import BrowserSessionError, ConfigurationError

logger = logging.getLogger(__name__)

PageConnector = Callable[[str, int], AbstractContextManager[Page]]


class RemoteSession(BaseModel):
    id: str
    ws_endpoint: str


class RemoteSessionProvider(ABC):
    """Creates remote browser sessions reachable over CDP."""

    @abstractmethod
    def open(self) -> AbstractContextManager[RemoteSession]:
        """Context manager yielding a live session and stopping it on exit."""
        pass


class HyperbrowserSessions(RemoteSessionProvider):
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._client: Hyperbrowser | None = None

    def _get_client(self) -> Hyperbrowser:
        if self._client is None:
            if not self.settings.hyperbrowser_api_key:
                raise ConfigurationError(
                    "Hyperbrowser API key not configured. "
                    "Set APP_HYPERBROWSER_API_KEY environment variable."
                )
            self._client = Hyperbrowser(api_key=self.settings.hyperbrowser_api_key)
        return self._client

    @contextmanager
    def open(self) -> Iterator[RemoteSession]:
        client = self._get_client()
        try:
            created = client.sessions.create()
        except HyperbrowserError as e:
            raise BrowserSessionError(f"Could not create browser session: {e}") from e

        session = RemoteSession(id=created.id, ws_endpoint=created.ws_endpoint)
        logger.info(f"Opened browser session {session.id}")
        try:
            yield session
        finally:
            try:
                client.sessions.stop(session.id)
                logger.info(f"Stopped browser session {session.id}")
            except HyperbrowserError as e:
                # Raising here would hide the error of the script itself
                logger.error(f"Failed to stop browser session {session.id}: {e}")


@contextmanager
def connect_page(ws_endpoint: str, timeout_ms: int) -> Iterator[Page]:
    """Attach Playwright to a remote browser and open a fresh page.

    Args:
        ws_endpoint: CDP websocket endpoint of the remote session
        timeout_ms: Default timeout for every page action

    Yields:
        Page in the session's default context
    """
    with sync_playwright() as playwright:
        browser = playwright.chromium.connect_over_cdp(ws_endpoint)
        try:
            context = browser.contexts[0] if browser.contexts else browser.new_context()
            page = context.new_page()
            page.set_default_timeout(timeout_ms)
            yield page
        finally:
            browser.close()
