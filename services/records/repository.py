"""Abstract datastore interface and the in-memory backend.

Services receive an ``InvoiceRepository`` instead of reaching for a global
client, so the hosted datastore can be swapped for ``InMemoryRepository`` in
local development and tests.
"""

import threading
import uuid
from abc import ABC, abstractmethod
from datetime import UTC, date, datetime

from services.records.schema import (
    AccountConnection,
    ConnectionProvider,
    Invoice,
    InvoiceStatus,
    NewInvoice,
    PaymentRecord,
    Profile,
    Reminder,
)
from services.shared.exceptions import NotFoundError


class InvoiceRepository(ABC):
    """CRUD access to invoices, payments, reminders, connections and profiles.

    Implementations return validated models and raise ``DataStoreError`` when
    the backing store fails. Lookups of missing rows return ``None``.
    """

    @abstractmethod
    def get_invoice(self, invoice_id: str) -> Invoice | None:
        pass

    @abstractmethod
    def list_invoices(
        self,
        user_id: str,
        status: InvoiceStatus | None = None,
        issued_from: date | None = None,
        issued_to: date | None = None,
    ) -> list[Invoice]:
        """List a user's invoices, optionally by status and inclusive issue-date range."""
        pass

    @abstractmethod
    def insert_invoice(self, invoice: NewInvoice, status: InvoiceStatus) -> Invoice:
        pass

    @abstractmethod
    def update_invoice_status(self, invoice_id: str, status: InvoiceStatus) -> Invoice:
        pass

    @abstractmethod
    def attach_invoice_file(self, invoice_id: str, file_path: str) -> Invoice:
        pass

    @abstractmethod
    def get_profile(self, user_id: str) -> Profile | None:
        pass

    @abstractmethod
    def insert_payment_record(self, record: PaymentRecord) -> PaymentRecord:
        pass

    @abstractmethod
    def list_payment_records(self, invoice_ids: list[str]) -> list[PaymentRecord]:
        pass

    @abstractmethod
    def insert_reminder(self, reminder: Reminder) -> Reminder:
        pass

    @abstractmethod
    def list_reminders(self, invoice_id: str) -> list[Reminder]:
        pass

    @abstractmethod
    def get_connection(
        self, user_id: str, provider: ConnectionProvider
    ) -> AccountConnection | None:
        pass

    @abstractmethod
    def list_connections(self, user_id: str) -> list[AccountConnection]:
        pass

    @abstractmethod
    def upsert_connection(self, connection: AccountConnection) -> AccountConnection:
        """Insert or replace the single connection for ``(user_id, provider)``."""
        pass

    @abstractmethod
    def delete_connection(self, user_id: str, provider: ConnectionProvider) -> bool:
        pass


def _now() -> datetime:
    return datetime.now(UTC)


class InMemoryRepository(InvoiceRepository):
    """Process-local repository for development and tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._invoices: dict[str, Invoice] = {}
        self._profiles: dict[str, Profile] = {}
        self._payments: list[PaymentRecord] = []
        self._reminders: list[Reminder] = []
        self._connections: dict[tuple[str, ConnectionProvider], AccountConnection] = {}

    def add_profile(self, profile: Profile) -> Profile:
        with self._lock:
            self._profiles[profile.id] = profile
        return profile

    def get_invoice(self, invoice_id: str) -> Invoice | None:
        return self._invoices.get(invoice_id)

    def list_invoices(
        self,
        user_id: str,
        status: InvoiceStatus | None = None,
        issued_from: date | None = None,
        issued_to: date | None = None,
    ) -> list[Invoice]:
        invoices = [inv for inv in self._invoices.values() if inv.user_id == user_id]
        if status is not None:
            invoices = [inv for inv in invoices if inv.status == status]
        if issued_from is not None:
            invoices = [inv for inv in invoices if inv.issue_date >= issued_from]
        if issued_to is not None:
            invoices = [inv for inv in invoices if inv.issue_date <= issued_to]
        return invoices

    def insert_invoice(self, invoice: NewInvoice, status: InvoiceStatus) -> Invoice:
        now = _now()
        stored = Invoice(
            **invoice.model_dump(),
            id=str(uuid.uuid4()),
            status=status,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._invoices[stored.id] = stored
        return stored

    def update_invoice_status(self, invoice_id: str, status: InvoiceStatus) -> Invoice:
        return self._update_invoice(invoice_id, status=status)

    def attach_invoice_file(self, invoice_id: str, file_path: str) -> Invoice:
        return self._update_invoice(invoice_id, file_path=file_path)

    def _update_invoice(self, invoice_id: str, **changes: object) -> Invoice:
        with self._lock:
            current = self._invoices.get(invoice_id)
            if current is None:
                raise NotFoundError(f"Invoice {invoice_id} not found")
            updated = current.model_copy(update={**changes, "updated_at": _now()})
            self._invoices[invoice_id] = updated
        return updated

    def get_profile(self, user_id: str) -> Profile | None:
        return self._profiles.get(user_id)

    def insert_payment_record(self, record: PaymentRecord) -> PaymentRecord:
        stored = record.model_copy(update={"id": str(uuid.uuid4()), "created_at": _now()})
        with self._lock:
            self._payments.append(stored)
        return stored

    def list_payment_records(self, invoice_ids: list[str]) -> list[PaymentRecord]:
        wanted = set(invoice_ids)
        return [p for p in self._payments if p.invoice_id in wanted]

    def insert_reminder(self, reminder: Reminder) -> Reminder:
        stored = reminder.model_copy(update={"id": str(uuid.uuid4()), "created_at": _now()})
        with self._lock:
            self._reminders.append(stored)
        return stored

    def list_reminders(self, invoice_id: str) -> list[Reminder]:
        return [r for r in self._reminders if r.invoice_id == invoice_id]

    def get_connection(
        self, user_id: str, provider: ConnectionProvider
    ) -> AccountConnection | None:
        return self._connections.get((user_id, provider))

    def list_connections(self, user_id: str) -> list[AccountConnection]:
        return [c for (owner, _), c in self._connections.items() if owner == user_id]

    def upsert_connection(self, connection: AccountConnection) -> AccountConnection:
        key = (connection.user_id, connection.provider)
        now = _now()
        with self._lock:
            existing = self._connections.get(key)
            stored = connection.model_copy(
                update={
                    "id": existing.id if existing else str(uuid.uuid4()),
                    "created_at": existing.created_at if existing else now,
                    "updated_at": now,
                }
            )
            self._connections[key] = stored
        return stored

    def delete_connection(self, user_id: str, provider: ConnectionProvider) -> bool:
        with self._lock:
            return self._connections.pop((user_id, provider), None) is not None
