"""Request and response bodies of the HTTP API.

Bodies use camelCase keys on the wire; snake_case is accepted on input too.
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from services.agent.schema import ExtractedInvoiceData
from services.browser.schema import MessageOutcome
from services.records.schema import ConnectionProvider, Invoice, PortalCredentials


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool


class DetectAnomalyRequest(ApiModel):
    user_id: str | None = None
    invoice_data: dict[str, Any] | None = None


class DetectAnomalyResponse(ApiModel):
    is_anomaly: bool
    message: str


class EmailReminderRequest(ApiModel):
    invoice_id: str | None = None


class EmailReminderResponse(ApiModel):
    success: bool = True
    email_content: str


class ProcessInvoiceResponse(ApiModel):
    success: bool = True
    invoice: Invoice
    extracted_data: ExtractedInvoiceData
    suggested_category: str


class MarkOverdueRequest(ApiModel):
    user_id: str
    today: date | None = None


class MarkOverdueResponse(ApiModel):
    updated: list[Invoice]


class PaymentIntentResponse(ApiModel):
    client_secret: str


class ReminderRequest(ApiModel):
    reminder_date: datetime
    message: str | None = None


class ConnectionRequest(ApiModel):
    user_id: str
    provider: ConnectionProvider
    credentials: PortalCredentials


class ConnectionResponse(ApiModel):
    """Stored connection without its credentials."""

    id: str | None = None
    user_id: str
    provider: ConnectionProvider
    created_at: datetime | None = None
    updated_at: datetime | None = None


class DownloadRequest(ApiModel):
    user_id: str


class DownloadResponse(ApiModel):
    success: bool = True
    files: list[str] = Field(default_factory=list)
    messages: list[MessageOutcome] = Field(default_factory=list)


class UploadRequest(ApiModel):
    user_id: str
    invoice_id: str


class UploadResponse(ApiModel):
    success: bool = True
    submitted: bool
    document_attached: bool
