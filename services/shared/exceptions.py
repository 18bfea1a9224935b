"""Exception hierarchy shared by every service.

Exception Hierarchy:
    InvoiceAgentError (base)
    ├── InvalidRequestError
    ├── NotFoundError
    ├── ConfigurationError
    ├── UpstreamServiceError
    │   ├── CompletionError
    │   ├── PaymentGatewayError
    │   ├── DataStoreError
    │   └── BrowserSessionError
    ├── ResponseParseError
    │   └── IncompleteExtractionError
    └── AutomationError

The API layer maps InvalidRequestError to 400, NotFoundError to 404 and
everything else to 500.
"""

from typing import Any


class InvoiceAgentError(Exception):
    """Base exception for all invoice agent errors.

    Attributes:
        message: Human-readable error message
        details: Additional context for logs
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class InvalidRequestError(InvoiceAgentError):
    """Caller supplied missing or invalid input."""


class NotFoundError(InvoiceAgentError):
    """A referenced invoice, profile or connection does not exist."""


class ConfigurationError(InvoiceAgentError):
    """A required key, URL or secret is not configured."""


class UpstreamServiceError(InvoiceAgentError):
    """An external dependency failed or timed out.

    Attributes:
        service: Name of the failing dependency
    """

    service = "upstream"


class CompletionError(UpstreamServiceError):
    """Language-model completion request failed."""

    service = "completion"


class PaymentGatewayError(UpstreamServiceError):
    """Payment gateway rejected or failed a request."""

    service = "payment_gateway"


class DataStoreError(UpstreamServiceError):
    """Hosted datastore query failed."""

    service = "datastore"


class BrowserSessionError(UpstreamServiceError):
    """Remote browser provider could not create or stop a session."""

    service = "browser"


class ResponseParseError(InvoiceAgentError):
    """Language-model output did not match the expected contract."""


class IncompleteExtractionError(ResponseParseError):
    """Extraction succeeded but lacks fields required to store an invoice."""


class AutomationError(InvoiceAgentError):
    """A provider script failed part-way through.

    Attributes:
        provider: Provider whose script failed (e.g. 'gmail')
        report: Partial progress made before the failure
    """

    def __init__(self, provider: str, message: str, report: Any = None) -> None:
        super().__init__(message, {"provider": provider})
        self.provider = provider
        self.report = report
