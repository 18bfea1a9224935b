"""Integration tests for the agent operations against the OpenAI API.

These tests require:
- APP_OPENAI_API_KEY environment variable set
- Internet connection to OpenAI API

Tests are skipped if APP_OPENAI_API_KEY is not available.
"""

import os
from decimal import Decimal

import pytest

from services.agent.categorization import CATEGORY_OPTIONS, CategorySuggester
from services.agent.extraction import InvoiceExtractor
from services.llm.openai_backend import OpenAICompletionBackend
from services.shared.config import Settings

# Skip all tests in this module if no API key available
pytestmark = pytest.mark.skipif(
    not os.getenv("APP_OPENAI_API_KEY"),
    reason="APP_OPENAI_API_KEY not set - skipping integration tests",
)


@pytest.fixture
def backend() -> OpenAICompletionBackend:
    """Create a live completion backend for integration tests."""
    return OpenAICompletionBackend(Settings(_env_file=None, llm_max_attempts=2))


def test_extract_invoice_from_real_text(backend: OpenAICompletionBackend) -> None:
    """Test extraction with realistic invoice text."""
    invoice_text = """
    INVOICE

    Invoice Number: INV-2024-001
    Date: January 15, 2024
    Due Date: February 15, 2024

    From:
    XYZ Suppliers Inc.
    456 Oak Avenue
    Los Angeles, CA 90001

    Description                  Quantity    Price      Total
    Office Supplies                  10      $50.00    $500.00
    Computer Equipment                5     $100.00    $500.00

    Subtotal:                                        $1,000.00
    Tax (10%):                                         $100.00
    Total Amount Due:                                $1,100.00

    Currency: USD
    """

    extracted = InvoiceExtractor(backend).extract(invoice_text)

    assert extracted.vendor is not None
    assert "XYZ" in extracted.vendor
    assert extracted.invoice_number is not None
    assert "2024-001" in extracted.invoice_number
    assert extracted.amount == Decimal("1100")
    assert extracted.currency == "USD"
    assert extracted.due_date is not None
    assert extracted.due_date.month == 2


def test_suggests_known_category(backend: OpenAICompletionBackend) -> None:
    """Test that a plain expense maps onto one of the known categories."""
    category = CategorySuggester(backend).suggest("Adobe Creative Cloud monthly subscription")

    assert category in CATEGORY_OPTIONS
