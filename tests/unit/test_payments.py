"""Unit tests for the payment gateway adapter and payment processor."""

from datetime import UTC, date, datetime
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import stripe

from services.payments.gateway import (
    PaymentGateway,
    PaymentIntent,
    PaymentIntentRequest,
    StripeGateway,
    to_minor_units,
)
from services.payments.processor import PaymentProcessor
from services.records.repository import InMemoryRepository
from services.records.schema import (
    Invoice,
    InvoiceStatus,
    NewInvoice,
    PaymentMethod,
    ReminderStatus,
)
from services.shared.config import Settings
from services.shared.exceptions import (
    ConfigurationError,
    InvalidRequestError,
    NotFoundError,
    PaymentGatewayError,
)


class RecordingGateway(PaymentGateway):
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.requests: list[PaymentIntentRequest] = []

    def create_payment_intent(self, request: PaymentIntentRequest) -> PaymentIntent:
        self.requests.append(request)
        if self.fail:
            raise PaymentGatewayError("Your card was declined.")
        return PaymentIntent(
            id=f"pi_{len(self.requests)}", client_secret=f"pi_{len(self.requests)}_secret_x"
        )

    def is_available(self) -> bool:
        return True


@pytest.fixture
def invoice(repository: InMemoryRepository) -> Invoice:
    return repository.insert_invoice(
        NewInvoice(
            user_id="user-1",
            vendor="Acme Corp",
            invoice_number="123",
            issue_date=date(2024, 3, 1),
            due_date=date(2024, 3, 31),
            amount=Decimal("1250.50"),
            currency="USD",
        ),
        InvoiceStatus.PENDING,
    )


class TestMinorUnits:
    def test_scales_two_decimal_currency(self) -> None:
        assert to_minor_units(Decimal("1250.50"), "USD") == 125050

    def test_rounds_half_up(self) -> None:
        assert to_minor_units(Decimal("10.005"), "EUR") == 1001

    def test_zero_decimal_currency_not_scaled(self) -> None:
        assert to_minor_units(Decimal("1500"), "JPY") == 1500


class TestStripeGateway:
    def _request(self) -> PaymentIntentRequest:
        return PaymentIntentRequest(
            amount=125050,
            currency="usd",
            description="Payment for invoice #123",
            metadata={"invoice_id": "inv-1", "vendor": "Acme Corp"},
            idempotency_key="invoice-inv-1-attempt-1",
        )

    @patch("services.payments.gateway.stripe.PaymentIntent.create")
    def test_creates_intent_with_idempotency_key(
        self, mock_create: MagicMock, settings: Settings
    ) -> None:
        mock_create.return_value = MagicMock(
            id="pi_1", client_secret="pi_1_secret", status="requires_payment_method"
        )

        intent = StripeGateway(settings).create_payment_intent(self._request())

        assert intent.client_secret == "pi_1_secret"
        kwargs = mock_create.call_args.kwargs
        assert kwargs["api_key"] == "sk_test_123"
        assert kwargs["idempotency_key"] == "invoice-inv-1-attempt-1"
        assert kwargs["amount"] == 125050
        assert kwargs["metadata"] == {"invoice_id": "inv-1", "vendor": "Acme Corp"}

    @patch("services.payments.gateway.stripe.PaymentIntent.create")
    def test_stripe_error_becomes_gateway_error(
        self, mock_create: MagicMock, settings: Settings
    ) -> None:
        mock_create.side_effect = stripe.CardError("declined", None, "card_declined")

        with pytest.raises(PaymentGatewayError):
            StripeGateway(settings).create_payment_intent(self._request())

    def test_missing_key_is_configuration_error(self) -> None:
        gateway = StripeGateway(Settings(_env_file=None, stripe_secret_key=""))

        assert gateway.is_available() is False
        with pytest.raises(ConfigurationError):
            gateway.create_payment_intent(self._request())


class TestProcessPayment:
    def test_creates_intent_records_attempt_and_marks_processing(
        self, repository: InMemoryRepository, invoice: Invoice
    ) -> None:
        gateway = RecordingGateway()

        secret = PaymentProcessor(repository, gateway).process_payment(invoice.id)

        assert secret == "pi_1_secret_x"
        request = gateway.requests[0]
        assert request.amount == 125050
        assert request.currency == "usd"
        assert request.description == "Payment for invoice #123"
        assert request.metadata == {"invoice_id": invoice.id, "vendor": "Acme Corp"}

        records = repository.list_payment_records([invoice.id])
        assert len(records) == 1
        assert records[0].payment_method == PaymentMethod.STRIPE
        assert records[0].stripe_payment_id == "pi_1"
        assert records[0].amount == Decimal("1250.50")
        assert repository.get_invoice(invoice.id).status == InvoiceStatus.PROCESSING

    def test_idempotency_key_advances_per_attempt(
        self, repository: InMemoryRepository, invoice: Invoice
    ) -> None:
        gateway = RecordingGateway()
        processor = PaymentProcessor(repository, gateway)

        processor.process_payment(invoice.id)
        processor.process_payment(invoice.id)

        keys = [request.idempotency_key for request in gateway.requests]
        assert keys == [
            f"invoice-{invoice.id}-attempt-1",
            f"invoice-{invoice.id}-attempt-2",
        ]

    def test_failed_attempt_reuses_key_on_retry(
        self, repository: InMemoryRepository, invoice: Invoice
    ) -> None:
        failing = RecordingGateway(fail=True)
        with pytest.raises(PaymentGatewayError):
            PaymentProcessor(repository, failing).process_payment(invoice.id)

        succeeding = RecordingGateway()
        PaymentProcessor(repository, succeeding).process_payment(invoice.id)

        assert failing.requests[0].idempotency_key == succeeding.requests[0].idempotency_key

    def test_gateway_failure_leaves_invoice_untouched(
        self, repository: InMemoryRepository, invoice: Invoice
    ) -> None:
        with pytest.raises(PaymentGatewayError):
            PaymentProcessor(repository, RecordingGateway(fail=True)).process_payment(invoice.id)

        assert repository.list_payment_records([invoice.id]) == []
        assert repository.get_invoice(invoice.id).status == InvoiceStatus.PENDING

    def test_missing_invoice(self, repository: InMemoryRepository) -> None:
        gateway = RecordingGateway()

        with pytest.raises(NotFoundError):
            PaymentProcessor(repository, gateway).process_payment("missing")
        assert gateway.requests == []

    def test_missing_owner_profile(self) -> None:
        repository = InMemoryRepository()
        orphan = repository.insert_invoice(
            NewInvoice(
                user_id="ghost",
                vendor="Acme",
                issue_date=date(2024, 3, 1),
                due_date=date(2024, 3, 1),
                amount=Decimal("5"),
            ),
            InvoiceStatus.PENDING,
        )

        with pytest.raises(NotFoundError, match="User not found"):
            PaymentProcessor(repository, RecordingGateway()).process_payment(orphan.id)


class TestManualPaymentAndReminders:
    def test_manual_payment_marks_paid(
        self, repository: InMemoryRepository, invoice: Invoice
    ) -> None:
        record = PaymentProcessor(repository, RecordingGateway()).record_manual_payment(invoice.id)

        assert record.payment_method == PaymentMethod.MANUAL
        assert record.amount == invoice.amount
        assert repository.get_invoice(invoice.id).status == InvoiceStatus.PAID

    def test_schedule_reminder_leaves_status(
        self, repository: InMemoryRepository, invoice: Invoice
    ) -> None:
        when = datetime(2024, 3, 25, 9, 0, tzinfo=UTC)

        reminder = PaymentProcessor(repository, RecordingGateway()).schedule_reminder(
            invoice.id, when
        )

        assert reminder.message == "Payment reminder for your invoice"
        assert reminder.status == ReminderStatus.SCHEDULED
        assert reminder.reminder_date == when
        assert repository.list_reminders(invoice.id) == [reminder]
        assert repository.get_invoice(invoice.id).status == InvoiceStatus.PENDING

    def test_schedule_reminder_custom_message(
        self, repository: InMemoryRepository, invoice: Invoice
    ) -> None:
        reminder = PaymentProcessor(repository, RecordingGateway()).schedule_reminder(
            invoice.id, datetime(2024, 3, 25, tzinfo=UTC), "Please pay Acme"
        )

        assert reminder.message == "Please pay Acme"

    def test_schedule_reminder_for_missing_invoice(self, repository: InMemoryRepository) -> None:
        with pytest.raises(NotFoundError):
            PaymentProcessor(repository, RecordingGateway()).schedule_reminder(
                "missing", datetime(2024, 3, 25, tzinfo=UTC)
            )


class TestPaymentReport:
    def test_totals_over_inclusive_range(
        self, repository: InMemoryRepository, invoice: Invoice
    ) -> None:
        later = repository.insert_invoice(
            NewInvoice(
                user_id="user-1",
                vendor="Globex",
                issue_date=date(2024, 3, 31),
                due_date=date(2024, 4, 30),
                amount=Decimal("200.00"),
            ),
            InvoiceStatus.PENDING,
        )
        repository.insert_invoice(
            NewInvoice(
                user_id="user-1",
                vendor="Initech",
                issue_date=date(2024, 4, 1),
                due_date=date(2024, 4, 30),
                amount=Decimal("999.00"),
            ),
            InvoiceStatus.PENDING,
        )
        processor = PaymentProcessor(repository, RecordingGateway())
        processor.record_manual_payment(invoice.id)

        report = processor.generate_payment_report("user-1", date(2024, 3, 1), date(2024, 3, 31))

        assert {row.invoice.id for row in report.invoices} == {invoice.id, later.id}
        assert report.total_invoiced == Decimal("1450.50")
        assert report.total_paid == Decimal("1250.50")
        assert report.total_outstanding == Decimal("200.00")

    def test_empty_range(self, repository: InMemoryRepository) -> None:
        report = PaymentProcessor(repository, RecordingGateway()).generate_payment_report(
            "user-1", date(2020, 1, 1), date(2020, 12, 31)
        )

        assert report.invoices == []
        assert report.total_invoiced == Decimal("0")
        assert report.total_outstanding == Decimal("0")

    def test_inverted_range_rejected(self, repository: InMemoryRepository) -> None:
        with pytest.raises(InvalidRequestError):
            PaymentProcessor(repository, RecordingGateway()).generate_payment_report(
                "user-1", date(2024, 3, 31), date(2024, 3, 1)
            )
