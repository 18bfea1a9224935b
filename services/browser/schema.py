"""Progress reports and inputs of browser automation runs."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field

from services.records.schema import ConnectionProvider, Invoice


class MessageOutcome(BaseModel):
    """What happened while handling one email message.

    Attributes:
        index: Position of the message in the search results
        files: Local paths of attachments saved from the message
        error: Failure raised while handling the message, if any
    """

    index: int
    files: list[str] = Field(default_factory=list)
    error: str | None = None


class DownloadReport(BaseModel):
    provider: ConnectionProvider
    messages: list[MessageOutcome] = Field(default_factory=list)
    error: str | None = None

    @property
    def files(self) -> list[str]:
        return [path for outcome in self.messages for path in outcome.files]

    @property
    def completed(self) -> bool:
        return self.error is None


class UploadReport(BaseModel):
    provider: ConnectionProvider
    submitted: bool = False
    document_attached: bool = False
    error: str | None = None


class AccountingRecord(BaseModel):
    """Fields typed into an accounting portal's expense or bill form."""

    vendor: str
    invoice_number: str = ""
    issue_date: date
    due_date: date
    amount: Decimal
    currency: str

    @classmethod
    def from_invoice(cls, invoice: Invoice) -> "AccountingRecord":
        return cls(
            vendor=invoice.vendor,
            invoice_number=invoice.invoice_number or "",
            issue_date=invoice.issue_date,
            due_date=invoice.due_date,
            amount=invoice.amount,
            currency=invoice.currency,
        )
