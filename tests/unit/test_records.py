"""Unit tests for the record models, in-memory repository and factory."""

from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from services.records.factory import create_repository
from services.records.repository import InMemoryRepository
from services.records.schema import (
    AccountConnection,
    ConnectionProvider,
    InvoiceStatus,
    NewInvoice,
    PaymentMethod,
    PaymentRecord,
    PortalCredentials,
)
from services.records.supabase_repository import SupabaseRepository
from services.shared.config import Settings
from services.shared.exceptions import NotFoundError


def _invoice(**overrides: object) -> NewInvoice:
    fields: dict[str, object] = {
        "user_id": "user-1",
        "vendor": "Acme Corp",
        "invoice_number": "INV-001",
        "issue_date": date(2024, 3, 1),
        "due_date": date(2024, 3, 31),
        "amount": Decimal("1250.50"),
        "currency": "usd",
    }
    fields.update(overrides)
    return NewInvoice(**fields)  # type: ignore[arg-type]


class TestInvoiceModel:
    def test_currency_is_upper_cased(self) -> None:
        assert _invoice().currency == "USD"

    def test_rejects_non_iso_currency(self) -> None:
        with pytest.raises(ValidationError):
            _invoice(currency="dollars")

    def test_rejects_due_date_before_issue_date(self) -> None:
        with pytest.raises(ValidationError):
            _invoice(issue_date=date(2024, 3, 10), due_date=date(2024, 3, 1))

    def test_rejects_negative_amount(self) -> None:
        with pytest.raises(ValidationError):
            _invoice(amount=Decimal("-1"))

    def test_rejects_empty_vendor(self) -> None:
        with pytest.raises(ValidationError):
            _invoice(vendor="")


class TestPortalCredentials:
    def test_requires_username_or_email(self) -> None:
        with pytest.raises(ValidationError):
            PortalCredentials(password="secret")

    def test_login_prefers_username(self) -> None:
        credentials = PortalCredentials(username="acct", email="a@b.com", password="pw")
        assert credentials.login == "acct"
        assert credentials.login_email == "a@b.com"

    def test_login_falls_back_to_email(self) -> None:
        credentials = PortalCredentials(email="a@b.com", password="pw")
        assert credentials.login == "a@b.com"


class TestInMemoryRepository:
    def test_insert_assigns_id_and_status(self) -> None:
        repo = InMemoryRepository()
        stored = repo.insert_invoice(_invoice(), InvoiceStatus.PENDING)

        assert stored.id
        assert stored.status == InvoiceStatus.PENDING
        assert stored.created_at is not None
        assert repo.get_invoice(stored.id) == stored

    def test_list_filters_by_status_and_issue_range(self) -> None:
        repo = InMemoryRepository()
        march = repo.insert_invoice(_invoice(), InvoiceStatus.PENDING)
        april = repo.insert_invoice(
            _invoice(issue_date=date(2024, 4, 2), due_date=date(2024, 4, 30)),
            InvoiceStatus.PAID,
        )
        repo.insert_invoice(_invoice(user_id="someone-else"), InvoiceStatus.PENDING)

        assert {i.id for i in repo.list_invoices("user-1")} == {march.id, april.id}
        assert [i.id for i in repo.list_invoices("user-1", status=InvoiceStatus.PAID)] == [
            april.id
        ]
        in_march = repo.list_invoices(
            "user-1", issued_from=date(2024, 3, 1), issued_to=date(2024, 3, 31)
        )
        assert [i.id for i in in_march] == [march.id]

    def test_update_missing_invoice_raises(self) -> None:
        with pytest.raises(NotFoundError):
            InMemoryRepository().update_invoice_status("missing", InvoiceStatus.PAID)

    def test_payment_records_filtered_by_invoice(self) -> None:
        repo = InMemoryRepository()
        for invoice_id in ("a", "b"):
            repo.insert_payment_record(
                PaymentRecord(
                    invoice_id=invoice_id,
                    amount=Decimal("10"),
                    payment_date="2024-03-01T00:00:00Z",  # type: ignore[arg-type]
                    payment_method=PaymentMethod.MANUAL,
                )
            )

        records = repo.list_payment_records(["a"])
        assert [r.invoice_id for r in records] == ["a"]
        assert records[0].id is not None

    def test_upsert_connection_keeps_one_row_per_provider(self) -> None:
        repo = InMemoryRepository()
        first = repo.upsert_connection(
            AccountConnection(user_id="u", provider=ConnectionProvider.GMAIL, credentials="t1")
        )
        second = repo.upsert_connection(
            AccountConnection(user_id="u", provider=ConnectionProvider.GMAIL, credentials="t2")
        )

        assert second.id == first.id
        assert repo.list_connections("u") == [second]
        assert repo.get_connection("u", ConnectionProvider.GMAIL).credentials == "t2"

    def test_delete_connection(self) -> None:
        repo = InMemoryRepository()
        repo.upsert_connection(
            AccountConnection(user_id="u", provider=ConnectionProvider.XERO, credentials="t")
        )

        assert repo.delete_connection("u", ConnectionProvider.XERO) is True
        assert repo.delete_connection("u", ConnectionProvider.XERO) is False


class TestCreateRepository:
    def test_memory_backend(self) -> None:
        repo = create_repository(Settings(_env_file=None, datastore_backend="memory"))
        assert isinstance(repo, InMemoryRepository)

    def test_supabase_backend(self) -> None:
        repo = create_repository(Settings(_env_file=None, datastore_backend="supabase"))
        assert isinstance(repo, SupabaseRepository)

    def test_unknown_backend(self) -> None:
        settings = Settings(_env_file=None).model_copy(update={"datastore_backend": "mongo"})
        with pytest.raises(ValueError, match="Unknown datastore backend"):
            create_repository(settings)
