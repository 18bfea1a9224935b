"""Provider scripts for email and accounting portals.

Each portal drives one third-party web UI through a Playwright page. Email
portals download invoice attachments; accounting portals enter a bill or
expense and attach the document. Scripts record progress on the report they
are given, so a failure part-way still tells the caller what was done.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from playwright.sync_api import ElementHandle, Page

from services.browser.files import FILE_INPUT_SELECTOR, inject_file
from services.browser.schema import AccountingRecord, DownloadReport, MessageOutcome, UploadReport
from services.records.schema import ConnectionProvider, PortalCredentials
from services.shared.exceptions import InvalidRequestError

logger = logging.getLogger(__name__)


def _unique_path(destination: Path, filename: str) -> Path:
    target = destination / (Path(filename).name or "attachment")
    counter = 1
    while target.exists():
        target = destination / f"{Path(filename).stem}-{counter}{Path(filename).suffix}"
        counter += 1
    return target


def save_download(page: Page, trigger: ElementHandle, destination: Path) -> str:
    """Click a download control and save the file under ``destination``."""
    with page.expect_download() as download_info:
        trigger.click()
    download = download_info.value
    target = _unique_path(destination, download.suggested_filename)
    download.save_as(target)
    return str(target)


class EmailPortal(ABC):
    provider: ConnectionProvider

    @abstractmethod
    def fetch_documents(
        self,
        page: Page,
        credentials: PortalCredentials,
        destination: Path,
        max_messages: int,
        report: DownloadReport,
    ) -> None:
        """Log in, search for invoice emails and save their attachments.

        Raises:
            playwright.sync_api.Error: If a selector, navigation or download fails
        """
        pass


class AccountingPortal(ABC):
    provider: ConnectionProvider

    @abstractmethod
    def submit_record(
        self,
        page: Page,
        credentials: PortalCredentials,
        record: AccountingRecord,
        document: Path | None,
        report: UploadReport,
    ) -> None:
        """Log in, fill the bill or expense form, attach the document and save."""
        pass


class _SearchResultsPortal(EmailPortal):
    """Webmail flow shared by providers: login, search, open each result."""

    url: str
    submit_selector: str
    search_selector: str
    search_query: str
    results_selector: str
    row_selector: str
    attachment_selector: str

    def _login(self, page: Page, credentials: PortalCredentials) -> None:
        page.fill('input[type="email"]', credentials.login_email)
        with page.expect_navigation():
            page.click(self.submit_selector)
        page.fill('input[type="password"]', credentials.password)
        with page.expect_navigation():
            page.click(self.submit_selector)

    def fetch_documents(
        self,
        page: Page,
        credentials: PortalCredentials,
        destination: Path,
        max_messages: int,
        report: DownloadReport,
    ) -> None:
        page.goto(self.url)
        self._login(page, credentials)

        page.fill(self.search_selector, self.search_query)
        page.keyboard.press("Enter")
        page.wait_for_selector(self.results_selector)

        for index in range(max_messages):
            rows = page.query_selector_all(self.row_selector)
            if len(rows) <= index:
                break

            outcome = MessageOutcome(index=index)
            report.messages.append(outcome)
            try:
                rows[index].click()
                page.wait_for_selector('div[role="main"]')
                for attachment in page.query_selector_all(self.attachment_selector):
                    outcome.files.append(save_download(page, attachment, destination))
                page.go_back()
                page.wait_for_selector(self.results_selector)
            except Exception as e:
                outcome.error = str(e)
                raise

            logger.info(
                f"{self.provider.value}: saved {len(outcome.files)} attachments "
                f"from message {index}"
            )


class GmailPortal(_SearchResultsPortal):
    provider = ConnectionProvider.GMAIL
    url = "https://mail.google.com"
    submit_selector = 'button[type="submit"]'
    search_selector = 'input[aria-label="Search mail"]'
    search_query = "has:attachment invoice OR receipt"
    results_selector = 'div[role="main"]'
    row_selector = 'tr[role="row"]'
    attachment_selector = 'div[role="listitem"] div[data-tooltip="Download"]'


class OutlookPortal(_SearchResultsPortal):
    provider = ConnectionProvider.OUTLOOK
    url = "https://outlook.office.com/mail/"
    submit_selector = 'input[type="submit"]'
    search_selector = 'input[placeholder="Search"]'
    search_query = "hasattachments:yes subject:invoice OR subject:receipt"
    results_selector = 'div[role="list"]'
    row_selector = 'div[role="listitem"]'
    attachment_selector = 'div[role="attachment"] button'


def _attach_document(page: Page, document: Path | None, report: UploadReport) -> None:
    if document is None:
        return
    if page.query_selector(FILE_INPUT_SELECTOR) is None:
        logger.warning(f"{report.provider.value}: no file input on the form")
        return
    if not document.exists():
        logger.warning(f"Invoice file not found: {document}")
        return
    report.document_attached = inject_file(page, document)


class QuickBooksPortal(AccountingPortal):
    provider = ConnectionProvider.QUICKBOOKS

    def submit_record(
        self,
        page: Page,
        credentials: PortalCredentials,
        record: AccountingRecord,
        document: Path | None,
        report: UploadReport,
    ) -> None:
        page.goto("https://qbo.intuit.com/app/login")
        page.fill("input#ius-userid", credentials.login)
        page.fill("input#ius-password", credentials.password)
        with page.expect_navigation():
            page.click("button#ius-sign-in-submit-btn")

        page.goto("https://qbo.intuit.com/app/expenses")
        page.click('button[data-testid="add-expense-btn"]')

        page.fill('input[data-testid="vendor-input"]', record.vendor)
        page.fill('input[data-testid="amount-input"]', str(record.amount))
        page.fill('input[data-testid="date-input"]', record.issue_date.isoformat())
        _attach_document(page, document, report)

        with page.expect_navigation():
            page.click('button[data-testid="expense-save-btn"]')
        report.submitted = True


class XeroPortal(AccountingPortal):
    provider = ConnectionProvider.XERO

    def submit_record(
        self,
        page: Page,
        credentials: PortalCredentials,
        record: AccountingRecord,
        document: Path | None,
        report: UploadReport,
    ) -> None:
        page.goto("https://login.xero.com/")
        page.fill('input[name="Username"]', credentials.login_email)
        page.fill('input[name="Password"]', credentials.password)
        with page.expect_navigation():
            page.click('button[type="submit"]')

        page.goto("https://go.xero.com/AccountsPayable/Edit.aspx?invoiceType=ACCPAY")

        page.fill("input#Contact_Name", record.vendor)
        page.fill("input#InvoiceNumber", record.invoice_number)
        page.fill("input#InvoiceDate", record.issue_date.isoformat())
        page.fill("input#DueDate", record.due_date.isoformat())
        page.fill("input#TotalAmount", str(record.amount))
        _attach_document(page, document, report)

        with page.expect_navigation():
            page.click("input#save-button")
        report.submitted = True


class PortalRegistry:
    """Maps providers to the portal script that drives them."""

    _email: dict[ConnectionProvider, type[EmailPortal]] = {
        ConnectionProvider.GMAIL: GmailPortal,
        ConnectionProvider.OUTLOOK: OutlookPortal,
    }
    _accounting: dict[ConnectionProvider, type[AccountingPortal]] = {
        ConnectionProvider.QUICKBOOKS: QuickBooksPortal,
        ConnectionProvider.XERO: XeroPortal,
    }

    @classmethod
    def email_portal(cls, provider: ConnectionProvider) -> EmailPortal:
        if provider not in cls._email:
            raise InvalidRequestError(f"Unsupported email provider: {provider.value}")
        return cls._email[provider]()

    @classmethod
    def accounting_portal(cls, provider: ConnectionProvider) -> AccountingPortal:
        if provider not in cls._accounting:
            raise InvalidRequestError(f"Unsupported accounting provider: {provider.value}")
        return cls._accounting[provider]()
