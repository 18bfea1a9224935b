"""Invoice intake and bookkeeping.

Ties document extraction and category suggestion to persistence, and
provides the listing, dashboard and overdue sweeps used by the invoice screens.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ValidationError

from services.agent.categorization import CategorySuggester
from services.agent.extraction import InvoiceExtractor
from services.agent.schema import ExtractedInvoiceData
from services.records.repository import InvoiceRepository
from services.records.schema import Invoice, InvoiceStatus, NewInvoice
from services.shared.config import Settings
from services.shared.exceptions import (
    IncompleteExtractionError,
    InvalidRequestError,
    NotFoundError,
)
from services.storage.service import DocumentStore

logger = logging.getLogger(__name__)

SortField = Literal["issue_date", "due_date", "amount", "vendor", "created_at"]

UPCOMING_WINDOW = timedelta(days=7)


class IntakeResult(BaseModel):
    """Outcome of processing an uploaded document."""

    invoice: Invoice
    extracted: ExtractedInvoiceData
    suggested_category: str


class DashboardSummary(BaseModel):
    total_pending: Decimal = Decimal("0")
    total_paid: Decimal = Decimal("0")
    upcoming_due: int = 0
    invoice_count: int = 0


class InvoiceService:
    def __init__(
        self,
        settings: Settings,
        repository: InvoiceRepository,
        extractor: InvoiceExtractor,
        suggester: CategorySuggester,
        storage: DocumentStore | None = None,
    ) -> None:
        self.settings = settings
        self.repository = repository
        self.extractor = extractor
        self.suggester = suggester
        self.storage = storage

    def process_document(
        self,
        user_id: str,
        filename: str,
        content: bytes,
        content_type: str | None = None,
        today: date | None = None,
    ) -> IntakeResult:
        """Extract, categorise and store an uploaded invoice document.

        Args:
            user_id: Owner of the new invoice
            filename: Original file name
            content: Raw document bytes, decoded as UTF-8 on a best-effort basis
            content_type: MIME type reported by the client
            today: Upload date used when the document carries no issue date,
                capped at the extracted due date

        Returns:
            IntakeResult with the stored invoice, extracted fields and suggested category

        Raises:
            InvalidRequestError: If the document is empty or too large
            IncompleteExtractionError: If vendor or amount could not be extracted
            CompletionError: If a completion request fails
        """
        if not content:
            raise InvalidRequestError("Uploaded file is empty")
        if len(content) > self.settings.max_upload_bytes:
            raise InvalidRequestError(
                f"Uploaded file exceeds {self.settings.max_upload_bytes} bytes"
            )

        text = content.decode("utf-8", errors="replace")
        extracted = self.extractor.extract(text)
        suggested_category = self.suggester.suggest(f"{extracted.vendor or ''} {text[:500]}")

        new_invoice = self._to_new_invoice(user_id, extracted, suggested_category, today)
        invoice = self.repository.insert_invoice(new_invoice, InvoiceStatus.PENDING)
        logger.info(f"Stored invoice {invoice.id} for user {user_id} from {filename}")

        if self.storage is not None and self.storage.is_available():
            stored = self.storage.store_document(user_id, filename, content, content_type)
            if stored.success:
                invoice = self.repository.attach_invoice_file(invoice.id, stored.object_name)
            else:
                logger.warning(f"Document for invoice {invoice.id} was not stored: {stored.error}")

        return IntakeResult(
            invoice=invoice, extracted=extracted, suggested_category=suggested_category
        )

    def _to_new_invoice(
        self,
        user_id: str,
        extracted: ExtractedInvoiceData,
        suggested_category: str,
        today: date | None,
    ) -> NewInvoice:
        missing = [name for name in ("vendor", "amount") if getattr(extracted, name) is None]
        if missing:
            raise IncompleteExtractionError(
                f"Could not extract required invoice fields: {', '.join(missing)}",
                {"missing": missing},
            )

        issue_date = extracted.issue_date
        if issue_date is None:
            # Upload date, but never later than the stated due date
            issue_date = today or date.today()
            if extracted.due_date is not None:
                issue_date = min(issue_date, extracted.due_date)
        try:
            return NewInvoice(
                user_id=user_id,
                vendor=extracted.vendor,
                invoice_number=extracted.invoice_number,
                issue_date=issue_date,
                due_date=extracted.due_date or issue_date,
                amount=extracted.amount,
                tax=extracted.tax,
                currency=extracted.currency or self.settings.default_currency,
                category=extracted.category or suggested_category,
            )
        except ValidationError as e:
            raise IncompleteExtractionError(
                "Extracted invoice fields are inconsistent",
                {"errors": e.errors(include_url=False)},
            ) from e

    def create_invoice(self, new_invoice: NewInvoice) -> Invoice:
        invoice = self.repository.insert_invoice(new_invoice, InvoiceStatus.PENDING)
        logger.info(f"Created invoice {invoice.id} for user {new_invoice.user_id}")
        return invoice

    def get_invoice(self, invoice_id: str) -> Invoice:
        invoice = self.repository.get_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice not found", {"invoice_id": invoice_id})
        return invoice

    def list_invoices(
        self,
        user_id: str,
        status: InvoiceStatus | None = None,
        sort_by: SortField = "due_date",
        descending: bool = False,
    ) -> list[Invoice]:
        invoices = self.repository.list_invoices(user_id, status=status)
        if sort_by == "vendor":
            return sorted(invoices, key=lambda inv: inv.vendor.lower(), reverse=descending)
        # Rows without a value sort last in ascending order
        present = [inv for inv in invoices if getattr(inv, sort_by) is not None]
        absent = [inv for inv in invoices if getattr(inv, sort_by) is None]
        ordered = sorted(present, key=lambda inv: getattr(inv, sort_by), reverse=descending)
        return ordered + absent

    def dashboard_summary(self, user_id: str, today: date | None = None) -> DashboardSummary:
        """Totals shown on the dashboard.

        ``upcoming_due`` counts pending invoices due between today and seven days out.
        """
        today = today or date.today()
        invoices = self.repository.list_invoices(user_id)
        pending = [inv for inv in invoices if inv.status == InvoiceStatus.PENDING]
        paid = [inv for inv in invoices if inv.status == InvoiceStatus.PAID]

        return DashboardSummary(
            total_pending=sum((inv.amount for inv in pending), Decimal("0")),
            total_paid=sum((inv.amount for inv in paid), Decimal("0")),
            upcoming_due=sum(
                1 for inv in pending if today <= inv.due_date <= today + UPCOMING_WINDOW
            ),
            invoice_count=len(invoices),
        )

    def mark_overdue(self, user_id: str, today: date | None = None) -> list[Invoice]:
        """Move pending invoices whose due date has passed to ``overdue``."""
        today = today or date.today()
        updated = [
            self.repository.update_invoice_status(inv.id, InvoiceStatus.OVERDUE)
            for inv in self.repository.list_invoices(user_id, status=InvoiceStatus.PENDING)
            if inv.due_date < today
        ]
        if updated:
            logger.info(f"Marked {len(updated)} invoices overdue for user {user_id}")
        return updated
