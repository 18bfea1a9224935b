"""Browser automation against third-party email and accounting portals.

Flow for every run:
1. Look up and decrypt the user's stored credentials for the provider
2. Open a remote browser session
3. Attach Playwright and open a page with the configured default timeout
4. Run the provider script
5. Stop the session (always, exactly once)
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from playwright.sync_api import Error as PlaywrightError

from services.browser.portals import PortalRegistry
from services.browser.schema import AccountingRecord, DownloadReport, UploadReport
from services.browser.session import (
    PageConnector,
    RemoteSession,
    RemoteSessionProvider,
    connect_page,
)
from services.records.credentials import CredentialVault
from services.records.repository import InvoiceRepository
from services.records.schema import ConnectionProvider, PortalCredentials
from services.shared.config import Settings
from services.shared.exceptions import AutomationError, BrowserSessionError, NotFoundError

logger = logging.getLogger(__name__)


class BrowserAutomationDriver:
    def __init__(
        self,
        settings: Settings,
        repository: InvoiceRepository,
        vault: CredentialVault,
        sessions: RemoteSessionProvider,
        page_connector: PageConnector = connect_page,
    ) -> None:
        self.settings = settings
        self.repository = repository
        self.vault = vault
        self.sessions = sessions
        self.page_connector = page_connector

    def _credentials(self, user_id: str, provider: ConnectionProvider) -> PortalCredentials:
        connection = self.repository.get_connection(user_id, provider)
        if connection is None:
            raise NotFoundError(f"No {provider.value} connection found")
        return self.vault.open(connection)

    @contextmanager
    def _session(self, provider: ConnectionProvider) -> Iterator[RemoteSession]:
        try:
            with self.sessions.open() as session:
                yield session
        except BrowserSessionError as e:
            raise BrowserSessionError(
                f"{provider.value}: {e.message}", {**e.details, "provider": provider.value}
            ) from e

    def download_invoices(self, user_id: str, provider: ConnectionProvider) -> DownloadReport:
        """Download invoice attachments from the user's mailbox.

        Args:
            user_id: Owner of the stored connection
            provider: Email provider (gmail or outlook)

        Returns:
            DownloadReport listing the saved files per message

        Raises:
            InvalidRequestError: If the provider is not an email provider
            NotFoundError: If the user has no connection for the provider
            BrowserSessionError: If no remote browser session could be opened
            AutomationError: If the script fails; carries the partial report
        """
        portal = PortalRegistry.email_portal(provider)
        credentials = self._credentials(user_id, provider)

        destination = Path(self.settings.downloads_dir) / user_id / provider.value
        destination.mkdir(parents=True, exist_ok=True)

        report = DownloadReport(provider=provider)
        with self._session(provider) as session:
            try:
                attached = self.page_connector(
                    session.ws_endpoint, self.settings.browser_timeout_ms
                )
                with attached as page:
                    portal.fetch_documents(
                        page, credentials, destination, self.settings.browser_max_messages, report
                    )
            except (PlaywrightError, OSError) as e:
                report.error = str(e)
                logger.error(f"Error downloading from {provider.value}: {e}")
                raise AutomationError(
                    provider.value,
                    f"Failed to download from {provider.value}: {e}",
                    report=report,
                ) from e

        logger.info(f"Downloaded {len(report.files)} files from {provider.value} for {user_id}")
        return report

    def upload_invoice(
        self,
        user_id: str,
        provider: ConnectionProvider,
        document: Path | None,
        record: AccountingRecord,
    ) -> UploadReport:
        """Enter an invoice into the user's accounting software.

        Args:
            user_id: Owner of the stored connection
            provider: Accounting provider (quickbooks or xero)
            document: Local copy of the invoice document to attach, if any
            record: Fields typed into the bill or expense form

        Returns:
            UploadReport; ``document_attached`` is False when the form or the
            local file was missing

        Raises:
            InvalidRequestError: If the provider is not an accounting provider
            NotFoundError: If the user has no connection for the provider
            BrowserSessionError: If no remote browser session could be opened
            AutomationError: If the script fails; carries the partial report
        """
        portal = PortalRegistry.accounting_portal(provider)
        credentials = self._credentials(user_id, provider)

        report = UploadReport(provider=provider)
        with self._session(provider) as session:
            try:
                attached = self.page_connector(
                    session.ws_endpoint, self.settings.browser_timeout_ms
                )
                with attached as page:
                    portal.submit_record(page, credentials, record, document, report)
            except (PlaywrightError, OSError) as e:
                report.error = str(e)
                logger.error(f"Error uploading to {provider.value}: {e}")
                raise AutomationError(
                    provider.value,
                    f"Failed to upload to {provider.value}: {e}",
                    report=report,
                ) from e

        logger.info(f"Uploaded invoice for {user_id} to {provider.value}")
        return report
