"""Invoice field extraction from raw document text."""

import logging

from pydantic import ValidationError

from services.agent.parsing import parse_json_object
from services.agent.schema import ExtractedInvoiceData
from services.llm.base import CompletionBackend
from services.shared.exceptions import InvalidRequestError, ResponseParseError

logger = logging.getLogger(__name__)

EXTRACTION_SYSTEM_PROMPT = """You are an AI assistant that extracts invoice data from text. \
Extract the following fields: vendor, invoice number, issue date, due date, amount, \
tax (if available), currency, and category.

Respond with a single JSON object using exactly these keys:
{"vendor": string|null, "invoiceNumber": string|null, "issueDate": "YYYY-MM-DD"|null, \
"dueDate": "YYYY-MM-DD"|null, "amount": number|null, "tax": number|null, \
"currency": "ISO 4217 code"|null, "category": string|null}

- "amount" is the total due including tax
- Drop leading labels from the invoice number ("Invoice #123" -> "123")
- Use null for any field not clearly present"""


class InvoiceExtractor:
    """Reads structured invoice fields out of document text with one completion."""

    def __init__(self, backend: CompletionBackend) -> None:
        self.backend = backend

    def extract(self, document_text: str) -> ExtractedInvoiceData:
        """Extract invoice fields from document text.

        Args:
            document_text: Decoded content of the uploaded document

        Returns:
            Extracted data; fields the model could not find are None

        Raises:
            InvalidRequestError: If the document text is empty
            CompletionError: If the completion request fails
            ResponseParseError: If the answer is not a JSON object of valid fields
        """
        if not document_text or not document_text.strip():
            raise InvalidRequestError("Document contains no text")

        response_text = self.backend.complete(
            EXTRACTION_SYSTEM_PROMPT,
            f"Extract the invoice data from the following content: {document_text}",
            json_output=True,
        )
        payload = parse_json_object(response_text)
        payload.pop("id", None)

        try:
            extracted = ExtractedInvoiceData.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Extraction response failed validation: {e.error_count()} errors")
            raise ResponseParseError(
                "Extracted invoice fields are invalid", {"errors": e.errors(include_url=False)}
            ) from e

        logger.info(
            f"Extracted invoice fields via {self.backend.provider_name}: "
            f"vendor={extracted.vendor!r}, number={extracted.invoice_number!r}"
        )
        return extracted
