"""Unit tests for InvoiceService intake and bookkeeping."""

from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from services.agent.categorization import CategorySuggester
from services.agent.extraction import InvoiceExtractor
from services.invoices.service import InvoiceService
from services.records.repository import InMemoryRepository
from services.records.schema import InvoiceStatus, NewInvoice
from services.shared.config import Settings
from services.shared.exceptions import (
    CompletionError,
    IncompleteExtractionError,
    InvalidRequestError,
    NotFoundError,
)
from services.storage.service import DocumentStore, StoredDocument

ACME_TEXT = b"Invoice #123 from Acme Corp, total $1,250.50 due 2024-03-31"
ACME_JSON = (
    '{"vendor": "Acme Corp", "invoiceNumber": "123", "issueDate": null, '
    '"dueDate": "2024-03-31", "amount": 1250.50, "currency": "USD"}'
)


@pytest.fixture
def service(settings: Settings, repository: InMemoryRepository, backend) -> InvoiceService:
    return InvoiceService(
        settings, repository, InvoiceExtractor(backend), CategorySuggester(backend)
    )


def _new(user_id: str = "user-1", **overrides: object) -> NewInvoice:
    fields: dict[str, object] = {
        "user_id": user_id,
        "vendor": "Acme Corp",
        "issue_date": date(2024, 3, 1),
        "due_date": date(2024, 3, 31),
        "amount": Decimal("100.00"),
    }
    fields.update(overrides)
    return NewInvoice(**fields)  # type: ignore[arg-type]


class TestProcessDocument:
    def test_acme_upload_is_stored_pending(self, service: InvoiceService, backend) -> None:
        backend.replies.extend([ACME_JSON, "Professional Services"])

        result = service.process_document(
            "user-1", "acme.txt", ACME_TEXT, "text/plain", today=date(2024, 3, 5)
        )

        invoice = result.invoice
        assert invoice.vendor == "Acme Corp"
        assert invoice.invoice_number == "123"
        assert invoice.amount == Decimal("1250.5")
        assert invoice.currency == "USD"
        assert invoice.status == InvoiceStatus.PENDING
        assert invoice.issue_date == date(2024, 3, 5)
        assert invoice.due_date == date(2024, 3, 31)
        assert invoice.category == "Professional Services"
        assert result.suggested_category == "Professional Services"
        assert result.extracted.issue_date is None

    def test_missing_issue_date_never_after_due_date(
        self, service: InvoiceService, backend
    ) -> None:
        backend.replies.extend([ACME_JSON, "Other"])

        invoice = service.process_document("user-1", "acme.txt", ACME_TEXT).invoice

        # Uploaded after the due date: the due date stands in for the issue date
        assert invoice.issue_date == date(2024, 3, 31)
        assert invoice.due_date == date(2024, 3, 31)
        assert invoice.status == InvoiceStatus.PENDING

    def test_missing_issue_date_uses_upload_date_before_due(
        self, service: InvoiceService, backend
    ) -> None:
        backend.replies.extend([ACME_JSON.replace("2024-03-31", "2999-12-31"), "Other"])

        invoice = service.process_document("user-1", "acme.txt", ACME_TEXT).invoice

        assert invoice.issue_date == date.today()
        assert invoice.due_date == date(2999, 12, 31)

    def test_category_prompt_uses_vendor_and_leading_text(
        self, service: InvoiceService, backend
    ) -> None:
        backend.replies.extend([ACME_JSON, "Other"])
        long_document = ACME_TEXT + b" " + b"x" * 2000

        service.process_document("user-1", "acme.txt", long_document)

        category_prompt = backend.calls[1]["user"]
        assert "Acme Corp Invoice #123" in category_prompt
        assert "x" * 600 not in category_prompt

    def test_missing_amount_is_incomplete(self, service: InvoiceService, backend) -> None:
        backend.replies.extend(['{"vendor": "Acme Corp"}', "Other"])

        with pytest.raises(IncompleteExtractionError, match="amount"):
            service.process_document("user-1", "acme.txt", ACME_TEXT)

    def test_missing_due_date_defaults_to_issue_date(
        self, service: InvoiceService, backend, repository: InMemoryRepository
    ) -> None:
        backend.replies.extend(
            ['{"vendor": "Acme", "amount": 10, "issueDate": "2024-02-01"}', "Other"]
        )

        invoice = service.process_document("user-1", "a.txt", ACME_TEXT).invoice

        assert invoice.due_date == date(2024, 2, 1)
        assert repository.get_invoice(invoice.id) == invoice

    def test_undecodable_bytes_are_replaced(self, service: InvoiceService, backend) -> None:
        backend.replies.extend([ACME_JSON, "Other"])

        service.process_document("user-1", "acme.bin", b"\xff\xfe" + ACME_TEXT)

        assert "�" in backend.calls[0]["user"]

    def test_empty_file_rejected(self, service: InvoiceService) -> None:
        with pytest.raises(InvalidRequestError):
            service.process_document("user-1", "empty.txt", b"")

    def test_completion_failure_propagates(self, service: InvoiceService, backend) -> None:
        backend.replies.append(CompletionError("timeout"))

        with pytest.raises(CompletionError):
            service.process_document("user-1", "acme.txt", ACME_TEXT)

    def test_document_stored_when_storage_available(
        self, settings: Settings, repository: InMemoryRepository, backend
    ) -> None:
        storage = MagicMock(spec=DocumentStore)
        storage.is_available.return_value = True
        storage.store_document.return_value = StoredDocument(
            success=True, object_name="user-1/abc-acme.txt", size=len(ACME_TEXT)
        )
        service = InvoiceService(
            settings, repository, InvoiceExtractor(backend), CategorySuggester(backend), storage
        )
        backend.replies.extend([ACME_JSON, "Other"])

        invoice = service.process_document("user-1", "acme.txt", ACME_TEXT, "text/plain").invoice

        assert invoice.file_path == "user-1/abc-acme.txt"
        storage.store_document.assert_called_once_with(
            "user-1", "acme.txt", ACME_TEXT, "text/plain"
        )

    def test_storage_failure_keeps_invoice(
        self, settings: Settings, repository: InMemoryRepository, backend
    ) -> None:
        storage = MagicMock(spec=DocumentStore)
        storage.is_available.return_value = True
        storage.store_document.return_value = StoredDocument(
            success=False, object_name="user-1/abc-acme.txt", error="S3 error: SlowDown - busy"
        )
        service = InvoiceService(
            settings, repository, InvoiceExtractor(backend), CategorySuggester(backend), storage
        )
        backend.replies.extend([ACME_JSON, "Other"])

        invoice = service.process_document("user-1", "acme.txt", ACME_TEXT).invoice

        assert invoice.file_path is None
        assert repository.get_invoice(invoice.id) == invoice


class TestBookkeeping:
    def test_get_missing_invoice(self, service: InvoiceService) -> None:
        with pytest.raises(NotFoundError):
            service.get_invoice("missing")

    def test_list_sorted_by_amount_descending(self, service: InvoiceService) -> None:
        small = service.create_invoice(_new(amount=Decimal("5")))
        large = service.create_invoice(_new(amount=Decimal("500")))

        ordered = service.list_invoices("user-1", sort_by="amount", descending=True)

        assert [inv.id for inv in ordered] == [large.id, small.id]

    def test_list_filters_status(self, service: InvoiceService) -> None:
        service.create_invoice(_new())

        assert service.list_invoices("user-1", status=InvoiceStatus.PAID) == []

    def test_dashboard_summary(
        self, service: InvoiceService, repository: InMemoryRepository
    ) -> None:
        today = date(2024, 3, 25)
        service.create_invoice(_new(amount=Decimal("100"), due_date=date(2024, 3, 30)))
        service.create_invoice(_new(amount=Decimal("50"), due_date=date(2024, 5, 1)))
        paid = service.create_invoice(_new(amount=Decimal("70")))
        repository.update_invoice_status(paid.id, InvoiceStatus.PAID)

        summary = service.dashboard_summary("user-1", today)

        assert summary.total_pending == Decimal("150")
        assert summary.total_paid == Decimal("70")
        assert summary.upcoming_due == 1
        assert summary.invoice_count == 3

    def test_mark_overdue(self, service: InvoiceService) -> None:
        late = service.create_invoice(_new(due_date=date(2024, 3, 10)))
        service.create_invoice(_new(due_date=date(2024, 4, 10)))

        updated = service.mark_overdue("user-1", date(2024, 3, 20))

        assert [inv.id for inv in updated] == [late.id]
        assert updated[0].status == InvoiceStatus.OVERDUE
