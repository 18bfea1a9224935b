"""Persisted entities of the invoice agent.

Each model maps 1:1 to a row in the hosted datastore. Field names follow the
table columns so rows can be validated directly with ``model_validate``.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator


class InvoiceStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    OVERDUE = "overdue"


class PaymentMethod(str, Enum):
    MANUAL = "manual"
    STRIPE = "stripe"


class ReminderStatus(str, Enum):
    SCHEDULED = "scheduled"


class ConnectionProvider(str, Enum):
    GMAIL = "gmail"
    OUTLOOK = "outlook"
    QUICKBOOKS = "quickbooks"
    XERO = "xero"

    @property
    def is_email(self) -> bool:
        return self in (ConnectionProvider.GMAIL, ConnectionProvider.OUTLOOK)

    @property
    def is_accounting(self) -> bool:
        return self in (ConnectionProvider.QUICKBOOKS, ConnectionProvider.XERO)


def normalize_currency(value: str) -> str:
    """Upper-case a currency code and check it is a 3-letter ISO code."""
    code = value.strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValueError(f"Invalid ISO currency code: {value!r}")
    return code


CurrencyCode = Annotated[str, AfterValidator(normalize_currency)]


class NewInvoice(BaseModel):
    """Invoice fields supplied on manual entry or after extraction."""

    user_id: str
    vendor: str = Field(..., min_length=1)
    invoice_number: str | None = None
    issue_date: date
    due_date: date
    amount: Decimal = Field(..., ge=0)
    tax: Decimal | None = Field(None, ge=0)
    currency: CurrencyCode = "USD"
    category: str | None = None
    notes: str | None = None
    file_path: str | None = None

    @model_validator(mode="after")
    def _due_after_issue(self) -> "NewInvoice":
        if self.due_date < self.issue_date:
            raise ValueError("due_date must be on or after issue_date")
        return self


class Invoice(NewInvoice):
    """Stored invoice row."""

    id: str
    status: InvoiceStatus = InvoiceStatus.PENDING
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PaymentRecord(BaseModel):
    """Append-only payment row, always tied to one invoice."""

    id: str | None = None
    invoice_id: str
    amount: Decimal = Field(..., ge=0)
    payment_date: datetime
    payment_method: PaymentMethod
    stripe_payment_id: str | None = None
    idempotency_key: str | None = None
    created_at: datetime | None = None


class Reminder(BaseModel):
    id: str | None = None
    invoice_id: str
    reminder_date: datetime
    message: str
    status: ReminderStatus = ReminderStatus.SCHEDULED
    created_at: datetime | None = None


class Profile(BaseModel):
    id: str
    email: str
    full_name: str | None = None


class PortalCredentials(BaseModel):
    """Login for a third-party portal. Only ever stored encrypted."""

    model_config = ConfigDict(frozen=True)

    username: str | None = None
    email: str | None = None
    password: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def _has_login(self) -> "PortalCredentials":
        if not (self.username or self.email):
            raise ValueError("username or email is required")
        return self

    @property
    def login(self) -> str:
        return self.username or self.email or ""

    @property
    def login_email(self) -> str:
        return self.email or self.username or ""


class AccountConnection(BaseModel):
    """One row per user and provider; ``credentials`` holds a Fernet token."""

    id: str | None = None
    user_id: str
    provider: ConnectionProvider
    credentials: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
