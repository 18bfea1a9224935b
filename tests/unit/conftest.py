"""Shared fixtures: settings, an in-memory repository and a scripted completion backend."""

from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

import pytest
from cryptography.fernet import Fernet

from services.llm.base import CompletionBackend
from services.records.repository import InMemoryRepository
from services.records.schema import InvoiceStatus, NewInvoice, Profile
from services.shared.config import Settings


class ScriptedBackend(CompletionBackend):
    """Completion backend returning queued replies and recording every call."""

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self.replies: list[str | Exception] = []
        self.calls: list[dict[str, object]] = []

    def complete(self, system_prompt: str, user_prompt: str, *, json_output: bool = False) -> str:
        self.calls.append(
            {"system": system_prompt, "user": user_prompt, "json_output": json_output}
        )
        if not self.replies:
            raise AssertionError("Unexpected completion request")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def is_available(self) -> bool:
        return True

    @property
    def provider_name(self) -> str:
        return "scripted"


@pytest.fixture
def settings(tmp_path) -> Settings:  # type: ignore[no-untyped-def]
    """Settings isolated from the environment and .env file."""
    return Settings(
        _env_file=None,
        datastore_backend="memory",
        openai_api_key="sk-test",
        stripe_secret_key="sk_test_123",
        hyperbrowser_api_key="hb-test",
        credentials_encryption_key=Fernet.generate_key().decode(),
        downloads_dir=str(tmp_path / "downloads"),
    )


@pytest.fixture
def repository() -> InMemoryRepository:
    repo = InMemoryRepository()
    repo.add_profile(Profile(id="user-1", email="owner@example.com", full_name="Owner"))
    return repo


@pytest.fixture
def backend(settings: Settings) -> ScriptedBackend:
    return ScriptedBackend(settings)


@pytest.fixture
def add_invoices(repository: InMemoryRepository):  # type: ignore[no-untyped-def]
    """Insert ``count`` invoices for a user with strictly increasing creation times."""

    def _add(count: int, user_id: str = "user-1", amount: str = "100.00") -> list:
        base = datetime(2024, 1, 1, tzinfo=UTC)
        stored = []
        for i in range(count):
            invoice = repository.insert_invoice(
                NewInvoice(
                    user_id=user_id,
                    vendor=f"Vendor {i}",
                    invoice_number=f"INV-{i}",
                    issue_date=date(2024, 1, 1) + timedelta(days=i),
                    due_date=date(2024, 1, 31) + timedelta(days=i),
                    amount=Decimal(amount),
                ),
                InvoiceStatus.PENDING,
            )
            # Pin creation order independent of wall-clock resolution
            invoice = invoice.model_copy(update={"created_at": base + timedelta(hours=i)})
            repository._invoices[invoice.id] = invoice
            stored.append(invoice)
        return stored

    return _add
