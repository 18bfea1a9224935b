"""Supabase (hosted Postgres via PostgREST) implementation of the repository.

Based on supabase-py:
https://supabase.com/docs/reference/python/introduction

Joins are performed client-side; every query failure surfaces as
``DataStoreError``.
"""

import logging
from collections.abc import Callable
from datetime import UTC, date, datetime
from typing import Any, TypeVar

from postgrest.exceptions import APIError
from pydantic import BaseModel
from supabase import Client, create_client

from services.records.repository import InvoiceRepository
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
from services.shared.config import Settings
from services.shared.exceptions import ConfigurationError, DataStoreError, NotFoundError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

INVOICES = "invoices"
PROFILES = "profiles"
PAYMENT_RECORDS = "payment_records"
REMINDERS = "reminders"
ACCOUNT_CONNECTIONS = "account_connections"


class SupabaseRepository(InvoiceRepository):
    """Repository backed by the Supabase tables of the invoice app."""

    def __init__(self, settings: Settings) -> None:
        """Initialize repository.

        Args:
            settings: Application settings with Supabase URL and service key
        """
        self.settings = settings
        self._client: Client | None = None

    def _get_client(self) -> Client:
        """Get or create the Supabase client (lazy initialization).

        Raises:
            ConfigurationError: If URL or service key are not configured
        """
        if self._client is None:
            if not self.settings.supabase_url or not self.settings.supabase_service_key:
                raise ConfigurationError(
                    "Supabase not configured. "
                    "Set APP_SUPABASE_URL and APP_SUPABASE_SERVICE_KEY environment variables."
                )
            self._client = create_client(
                self.settings.supabase_url, self.settings.supabase_service_key
            )
            logger.info("Supabase client initialized")
        return self._client

    def _run(self, description: str, query: Callable[[Client], Any]) -> list[dict[str, Any]]:
        """Execute a query builder and return its rows."""
        try:
            response = query(self._get_client())
        except APIError as e:
            logger.error(f"Supabase error while trying to {description}: {e.message}")
            raise DataStoreError(
                f"Failed to {description}", {"code": e.code, "message": e.message}
            ) from e
        rows: list[dict[str, Any]] = response.data or []
        return rows

    @staticmethod
    def _first(rows: list[dict[str, Any]], model: type[ModelT]) -> ModelT | None:
        if not rows:
            return None
        return model.model_validate(rows[0])

    def get_invoice(self, invoice_id: str) -> Invoice | None:
        rows = self._run(
            "load invoice",
            lambda c: c.table(INVOICES).select("*").eq("id", invoice_id).limit(1).execute(),
        )
        return self._first(rows, Invoice)

    def list_invoices(
        self,
        user_id: str,
        status: InvoiceStatus | None = None,
        issued_from: date | None = None,
        issued_to: date | None = None,
    ) -> list[Invoice]:
        def query(client: Client) -> Any:
            builder = client.table(INVOICES).select("*").eq("user_id", user_id)
            if status is not None:
                builder = builder.eq("status", status.value)
            if issued_from is not None:
                builder = builder.gte("issue_date", issued_from.isoformat())
            if issued_to is not None:
                builder = builder.lte("issue_date", issued_to.isoformat())
            return builder.execute()

        return [Invoice.model_validate(row) for row in self._run("list invoices", query)]

    def insert_invoice(self, invoice: NewInvoice, status: InvoiceStatus) -> Invoice:
        row = invoice.model_dump(mode="json", exclude_none=True)
        row["status"] = status.value
        rows = self._run("save invoice", lambda c: c.table(INVOICES).insert(row).execute())
        stored = self._first(rows, Invoice)
        if stored is None:
            raise DataStoreError("Failed to save invoice", {"reason": "no row returned"})
        return stored

    def update_invoice_status(self, invoice_id: str, status: InvoiceStatus) -> Invoice:
        return self._update_invoice(invoice_id, {"status": status.value})

    def attach_invoice_file(self, invoice_id: str, file_path: str) -> Invoice:
        return self._update_invoice(invoice_id, {"file_path": file_path})

    def _update_invoice(self, invoice_id: str, changes: dict[str, Any]) -> Invoice:
        changes = {**changes, "updated_at": datetime.now(UTC).isoformat()}
        rows = self._run(
            "update invoice",
            lambda c: c.table(INVOICES).update(changes).eq("id", invoice_id).execute(),
        )
        updated = self._first(rows, Invoice)
        if updated is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return updated

    def get_profile(self, user_id: str) -> Profile | None:
        rows = self._run(
            "load profile",
            lambda c: c.table(PROFILES).select("*").eq("id", user_id).limit(1).execute(),
        )
        return self._first(rows, Profile)

    def insert_payment_record(self, record: PaymentRecord) -> PaymentRecord:
        row = record.model_dump(mode="json", exclude_none=True)
        rows = self._run(
            "record payment", lambda c: c.table(PAYMENT_RECORDS).insert(row).execute()
        )
        return self._first(rows, PaymentRecord) or record

    def list_payment_records(self, invoice_ids: list[str]) -> list[PaymentRecord]:
        if not invoice_ids:
            return []
        rows = self._run(
            "list payment records",
            lambda c: c.table(PAYMENT_RECORDS)
            .select("*")
            .in_("invoice_id", invoice_ids)
            .order("payment_date", desc=True)
            .execute(),
        )
        return [PaymentRecord.model_validate(row) for row in rows]

    def insert_reminder(self, reminder: Reminder) -> Reminder:
        row = reminder.model_dump(mode="json", exclude_none=True)
        rows = self._run("schedule reminder", lambda c: c.table(REMINDERS).insert(row).execute())
        stored = self._first(rows, Reminder)
        if stored is None:
            raise DataStoreError("Failed to schedule reminder", {"reason": "no row returned"})
        return stored

    def list_reminders(self, invoice_id: str) -> list[Reminder]:
        rows = self._run(
            "list reminders",
            lambda c: c.table(REMINDERS).select("*").eq("invoice_id", invoice_id).execute(),
        )
        return [Reminder.model_validate(row) for row in rows]

    def get_connection(
        self, user_id: str, provider: ConnectionProvider
    ) -> AccountConnection | None:
        rows = self._run(
            "load account connection",
            lambda c: c.table(ACCOUNT_CONNECTIONS)
            .select("*")
            .eq("user_id", user_id)
            .eq("provider", provider.value)
            .limit(1)
            .execute(),
        )
        return self._first(rows, AccountConnection)

    def list_connections(self, user_id: str) -> list[AccountConnection]:
        rows = self._run(
            "list account connections",
            lambda c: c.table(ACCOUNT_CONNECTIONS).select("*").eq("user_id", user_id).execute(),
        )
        return [AccountConnection.model_validate(row) for row in rows]

    def upsert_connection(self, connection: AccountConnection) -> AccountConnection:
        row = connection.model_dump(mode="json", exclude_none=True)
        row["updated_at"] = datetime.now(UTC).isoformat()
        rows = self._run(
            "save account connection",
            lambda c: c.table(ACCOUNT_CONNECTIONS)
            .upsert(row, on_conflict="user_id,provider")
            .execute(),
        )
        return self._first(rows, AccountConnection) or connection

    def delete_connection(self, user_id: str, provider: ConnectionProvider) -> bool:
        rows = self._run(
            "remove account connection",
            lambda c: c.table(ACCOUNT_CONNECTIONS)
            .delete()
            .eq("user_id", user_id)
            .eq("provider", provider.value)
            .execute(),
        )
        return bool(rows)
