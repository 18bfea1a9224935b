"""Payment reminder email drafting."""

from services.llm.base import CompletionBackend
from services.records.schema import Invoice
from services.shared.exceptions import ResponseParseError

REMINDER_SYSTEM_PROMPT = (
    "You are an AI assistant that drafts professional payment reminder emails. "
    "Be polite but firm."
)


class ReminderEmailDrafter:
    def __init__(self, backend: CompletionBackend) -> None:
        self.backend = backend

    def draft(self, invoice: Invoice) -> str:
        """Draft a follow-up email for an unpaid invoice.

        Failures of the completion request propagate; there is no template fallback.
        """
        number = invoice.invoice_number or "(no number)"
        prompt = (
            f"Draft a payment follow-up email for invoice #{number} from {invoice.vendor} "
            f"for {invoice.amount} {invoice.currency} due on {invoice.due_date.isoformat()}."
        )
        content = self.backend.complete(REMINDER_SYSTEM_PROMPT, prompt).strip()
        if not content:
            raise ResponseParseError("Model returned an empty email draft")
        return content
