"""Anomaly detection against a user's invoice history.

The newest invoice is compared with the user's most recent invoices by the
language model. The model must answer with a typed JSON verdict; any other
answer is an error rather than a silent "not anomalous".
"""

import json
import logging
from datetime import UTC, date, datetime

from services.agent.parsing import parse_json_object
from services.agent.schema import AnomalyVerdict, ExtractedInvoiceData
from services.llm.base import CompletionBackend
from services.records.repository import InvoiceRepository
from services.records.schema import Invoice
from services.shared.config import Settings
from services.shared.exceptions import ResponseParseError

logger = logging.getLogger(__name__)

ANOMALY_SYSTEM_PROMPT = """You are an AI that detects financial anomalies in invoice data. \
Compare "newInvoice" with "invoiceHistory" (most recent first).

Respond with a JSON object and nothing else:
{"is_anomaly": true|false, "reason": "<one sentence>"}

Use true if the new invoice appears unusual compared to history (amount, vendor, \
currency, timing), or false if it seems normal."""

_OLDEST = datetime.min.replace(tzinfo=UTC)


def _recency(invoice: Invoice) -> tuple[datetime, date]:
    created = invoice.created_at or _OLDEST
    if created.tzinfo is None:
        created = created.replace(tzinfo=UTC)
    return created, invoice.issue_date


class AnomalyDetector:
    """Flags invoices that look unusual for the user who received them."""

    def __init__(
        self, settings: Settings, repository: InvoiceRepository, backend: CompletionBackend
    ) -> None:
        self.settings = settings
        self.repository = repository
        self.backend = backend

    def recent_history(self, user_id: str, exclude_id: str | None = None) -> list[Invoice]:
        """Return the user's invoices newest first, excluding the candidate itself."""
        history = [
            invoice
            for invoice in self.repository.list_invoices(user_id)
            if exclude_id is None or invoice.id != exclude_id
        ]
        return sorted(history, key=_recency, reverse=True)

    def detect(self, user_id: str, new_invoice: ExtractedInvoiceData) -> AnomalyVerdict:
        """Judge whether ``new_invoice`` is unusual for ``user_id``.

        Users with fewer than ``anomaly_min_history`` invoices are never
        flagged and no completion request is made.

        Raises:
            CompletionError: If the completion request fails
            ResponseParseError: If the verdict is not a JSON boolean field
        """
        history = self.recent_history(user_id, exclude_id=new_invoice.id)
        if len(history) < self.settings.anomaly_min_history:
            logger.info(
                f"Skipping anomaly check for user {user_id}: "
                f"{len(history)} invoices in history"
            )
            return AnomalyVerdict(is_anomaly=False, history_size=len(history), compared=False)

        window = history[: self.settings.anomaly_history_window]
        payload = json.dumps(
            {
                "newInvoice": new_invoice.model_dump(mode="json", by_alias=True, exclude_none=True),
                "invoiceHistory": [
                    invoice.model_dump(
                        mode="json",
                        include={
                            "id",
                            "vendor",
                            "invoice_number",
                            "issue_date",
                            "due_date",
                            "amount",
                            "tax",
                            "currency",
                            "category",
                            "status",
                        },
                    )
                    for invoice in window
                ],
            }
        )

        response_text = self.backend.complete(
            ANOMALY_SYSTEM_PROMPT, f"Analyze this invoice data: {payload}", json_output=True
        )
        answer = parse_json_object(response_text)

        flag = answer.get("is_anomaly")
        if not isinstance(flag, bool):
            raise ResponseParseError(
                "Anomaly verdict must contain a boolean 'is_anomaly'",
                {"response": response_text[:200]},
            )
        reason = answer.get("reason")

        logger.info(f"Anomaly check for user {user_id}: is_anomaly={flag}")
        return AnomalyVerdict(
            is_anomaly=flag,
            reason=reason if isinstance(reason, str) else "",
            history_size=len(window),
            compared=True,
        )
