"""Structured outputs of the language-model agent operations."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from services.records.schema import normalize_currency

CURRENCY_SYMBOLS = {"$": "USD", "€": "EUR", "£": "GBP", "¥": "JPY", "₹": "INR"}


class ExtractedInvoiceData(BaseModel):
    """Invoice fields read from an unstructured document.

    Every field is optional: a well-formed but incomplete answer is valid.
    Accepts camelCase or snake_case keys and serialises as camelCase.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str | None = Field(None, description="Set when the invoice is already stored")
    vendor: str | None = Field(None, description="Supplier/vendor name")
    invoice_number: str | None = Field(None, description="Invoice identifier")
    issue_date: date | None = Field(None, description="Date invoice was issued")
    due_date: date | None = Field(None, description="Payment due date")
    amount: Decimal | None = Field(None, ge=0, description="Total amount")
    tax: Decimal | None = Field(None, ge=0, description="Tax amount")
    currency: str | None = Field(None, description="Currency code (ISO 4217)")
    category: str | None = Field(None, description="Expense category")

    @field_validator("vendor", "invoice_number", "category", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        if isinstance(value, int | float) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("issue_date", "due_date", mode="before")
    @classmethod
    def _parse_date(cls, value: Any) -> Any:
        if isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            try:
                return date.fromisoformat(text)
            except ValueError:
                return date_parser.parse(text).date()
        if isinstance(value, datetime):
            return value.date()
        return value

    @field_validator("amount", "tax", mode="before")
    @classmethod
    def _parse_money(cls, value: Any) -> Any:
        if isinstance(value, str):
            cleaned = value.strip().lstrip("".join(CURRENCY_SYMBOLS)).replace(",", "").strip()
            return cleaned or None
        return value

    @field_validator("currency", mode="before")
    @classmethod
    def _parse_currency(cls, value: Any) -> Any:
        if isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            return normalize_currency(CURRENCY_SYMBOLS.get(text, text))
        return value


class AnomalyVerdict(BaseModel):
    """Outcome of comparing a new invoice against a user's history.

    Attributes:
        is_anomaly: Whether the invoice looks unusual
        reason: Model's short justification (empty when not compared)
        history_size: Number of historical invoices passed to the model
        compared: False when history was too short to compare
    """

    is_anomaly: bool
    reason: str = ""
    history_size: int = 0
    compared: bool = False
