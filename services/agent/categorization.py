"""Expense category suggestions."""

from services.llm.base import CompletionBackend
from services.shared.exceptions import ResponseParseError

# Options offered on the manual invoice entry form
CATEGORY_OPTIONS = (
    "Office Supplies",
    "Software/SaaS",
    "Marketing",
    "Travel",
    "Utilities",
    "Professional Services",
    "Equipment",
    "Rent",
    "Insurance",
    "Taxes",
    "Shipping",
    "Other",
)

CATEGORIZATION_SYSTEM_PROMPT = (
    "You are an AI assistant that categorizes business expenses. Categories include: "
    "Office Supplies, Software/SaaS, Marketing, Travel, Utilities, Professional Services, "
    "Equipment, and Other. Answer with the category name only."
)


class CategorySuggester:
    def __init__(self, backend: CompletionBackend) -> None:
        self.backend = backend
        self._canonical = {option.lower(): option for option in CATEGORY_OPTIONS}

    def suggest(self, description: str) -> str:
        """Suggest a category label for an invoice or expense description.

        Known categories come back in their canonical spelling; any other
        label the model chooses is returned as-is.
        """
        response_text = self.backend.complete(
            CATEGORIZATION_SYSTEM_PROMPT, f"Categorize this invoice/expense: {description}"
        )
        label = response_text.strip().strip(".\"'").strip()
        if not label:
            raise ResponseParseError("Model returned an empty category")
        return self._canonical.get(label.lower(), label)
