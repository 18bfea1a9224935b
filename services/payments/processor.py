"""Payment intents, manual payments, reminders and payment reports."""

import logging
from datetime import UTC, date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from services.payments.gateway import PaymentGateway, PaymentIntentRequest, to_minor_units
from services.records.repository import InvoiceRepository
from services.records.schema import (
    Invoice,
    InvoiceStatus,
    PaymentMethod,
    PaymentRecord,
    Reminder,
    ReminderStatus,
)
from services.shared.exceptions import InvalidRequestError, NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_REMINDER_MESSAGE = "Payment reminder for your invoice"


class ReportRow(BaseModel):
    invoice: Invoice
    payments: list[PaymentRecord] = Field(default_factory=list)

    @property
    def paid(self) -> Decimal:
        return sum((p.amount for p in self.payments), Decimal("0"))


class PaymentReport(BaseModel):
    """Invoiced vs. paid totals over an inclusive issue-date range."""

    start: date
    end: date
    total_invoiced: Decimal = Decimal("0")
    total_paid: Decimal = Decimal("0")
    total_outstanding: Decimal = Decimal("0")
    invoices: list[ReportRow] = Field(default_factory=list)


def idempotency_key(invoice_id: str, attempt: int) -> str:
    return f"invoice-{invoice_id}-attempt-{attempt}"


class PaymentProcessor:
    """Payment operations on stored invoices.

    Gateway requests carry an idempotency key derived from the invoice id and
    the number of gateway attempts already recorded, so a retried request for
    the same attempt never creates a second charge.
    """

    def __init__(self, repository: InvoiceRepository, gateway: PaymentGateway) -> None:
        self.repository = repository
        self.gateway = gateway

    def _require_invoice(self, invoice_id: str) -> Invoice:
        invoice = self.repository.get_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice not found", {"invoice_id": invoice_id})
        return invoice

    def process_payment(self, invoice_id: str) -> str:
        """Create a gateway payment intent for an invoice.

        On success a ``stripe`` payment record is appended and the invoice
        moves to ``processing``. A gateway failure leaves both untouched.

        Args:
            invoice_id: Invoice to pay

        Returns:
            Client secret of the created payment intent

        Raises:
            NotFoundError: If the invoice or its owner's profile does not exist
            PaymentGatewayError: If the gateway rejects the request
        """
        invoice = self._require_invoice(invoice_id)
        if self.repository.get_profile(invoice.user_id) is None:
            raise NotFoundError("User not found", {"user_id": invoice.user_id})

        previous = [
            record
            for record in self.repository.list_payment_records([invoice.id])
            if record.payment_method == PaymentMethod.STRIPE
        ]
        key = idempotency_key(invoice.id, len(previous) + 1)

        intent = self.gateway.create_payment_intent(
            PaymentIntentRequest(
                amount=to_minor_units(invoice.amount, invoice.currency),
                currency=invoice.currency.lower(),
                description=f"Payment for invoice #{invoice.invoice_number or ''}",
                metadata={"invoice_id": invoice.id, "vendor": invoice.vendor},
                idempotency_key=key,
            )
        )

        self.repository.insert_payment_record(
            PaymentRecord(
                invoice_id=invoice.id,
                amount=invoice.amount,
                payment_date=datetime.now(UTC),
                payment_method=PaymentMethod.STRIPE,
                stripe_payment_id=intent.id,
                idempotency_key=key,
            )
        )
        self.repository.update_invoice_status(invoice.id, InvoiceStatus.PROCESSING)

        logger.info(f"Created payment intent {intent.id} for invoice {invoice.id} ({key})")
        return intent.client_secret

    def record_manual_payment(self, invoice_id: str) -> PaymentRecord:
        """Record an out-of-band payment for the full amount and mark the invoice paid."""
        invoice = self._require_invoice(invoice_id)
        record = self.repository.insert_payment_record(
            PaymentRecord(
                invoice_id=invoice.id,
                amount=invoice.amount,
                payment_date=datetime.now(UTC),
                payment_method=PaymentMethod.MANUAL,
            )
        )
        self.repository.update_invoice_status(invoice.id, InvoiceStatus.PAID)
        logger.info(f"Recorded manual payment for invoice {invoice.id}")
        return record

    def schedule_reminder(
        self, invoice_id: str, reminder_date: datetime, message: str | None = None
    ) -> Reminder:
        """Store a reminder for later delivery. Nothing is sent here."""
        self._require_invoice(invoice_id)
        return self.repository.insert_reminder(
            Reminder(
                invoice_id=invoice_id,
                reminder_date=reminder_date,
                message=message or DEFAULT_REMINDER_MESSAGE,
                status=ReminderStatus.SCHEDULED,
            )
        )

    def generate_payment_report(self, user_id: str, start: date, end: date) -> PaymentReport:
        """Summarise a user's invoices issued within ``[start, end]``.

        Every payment record of an invoice counts toward ``total_paid``.
        """
        if end < start:
            raise InvalidRequestError("Report end date must not precede start date")

        invoices = self.repository.list_invoices(user_id, issued_from=start, issued_to=end)
        by_invoice: dict[str, list[PaymentRecord]] = {invoice.id: [] for invoice in invoices}
        if invoices:
            for record in self.repository.list_payment_records(list(by_invoice)):
                by_invoice.setdefault(record.invoice_id, []).append(record)

        rows = [ReportRow(invoice=invoice, payments=by_invoice[invoice.id]) for invoice in invoices]
        total_invoiced = sum((row.invoice.amount for row in rows), Decimal("0"))
        total_paid = sum((row.paid for row in rows), Decimal("0"))

        return PaymentReport(
            start=start,
            end=end,
            total_invoiced=total_invoiced,
            total_paid=total_paid,
            total_outstanding=total_invoiced - total_paid,
            invoices=rows,
        )
