"""Payment gateway adapters.

The processor talks to a ``PaymentGateway`` so tests and local setups can
run without a live gateway account.

Based on Stripe Python SDK:
https://docs.stripe.com/api/payment_intents/create?lang=python
"""

import logging
from abc import ABC, abstractmethod
from decimal import ROUND_HALF_UP, Decimal

import stripe
from pydantic import BaseModel, Field

from services.shared.config import Settings
from services.shared.exceptions import ConfigurationError, PaymentGatewayError

logger = logging.getLogger(__name__)

# Currencies the gateway charges in whole units
ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "BIF",
        "CLP",
        "DJF",
        "GNF",
        "JPY",
        "KMF",
        "KRW",
        "MGA",
        "PYG",
        "RWF",
        "UGX",
        "VND",
        "VUV",
        "XAF",
        "XOF",
        "XPF",
    }
)


def to_minor_units(amount: Decimal, currency: str) -> int:
    """Convert a decimal amount into the gateway's integer minor units.

    Args:
        amount: Amount in major units (e.g. 1250.50 dollars)
        currency: ISO 4217 code

    Returns:
        Amount in minor units, rounded half-up (e.g. 125050 cents)
    """
    if currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentIntentRequest(BaseModel):
    amount: int = Field(..., ge=0, description="Amount in minor units")
    currency: str
    description: str
    metadata: dict[str, str] = Field(default_factory=dict)
    idempotency_key: str


class PaymentIntent(BaseModel):
    id: str
    client_secret: str
    status: str | None = None


class PaymentGateway(ABC):
    @abstractmethod
    def create_payment_intent(self, request: PaymentIntentRequest) -> PaymentIntent:
        """Create a payment intent.

        Raises:
            PaymentGatewayError: If the gateway rejects or fails the request
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        pass


class StripeGateway(PaymentGateway):
    """Creates Stripe PaymentIntents with the configured secret key."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def is_available(self) -> bool:
        return bool(self.settings.stripe_secret_key)

    def create_payment_intent(self, request: PaymentIntentRequest) -> PaymentIntent:
        if not self.settings.stripe_secret_key:
            raise ConfigurationError(
                "Stripe secret key not configured. Set APP_STRIPE_SECRET_KEY environment variable."
            )

        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.settings.stripe_secret_key,
                idempotency_key=request.idempotency_key,
                amount=request.amount,
                currency=request.currency.lower(),
                description=request.description,
                metadata=request.metadata,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe rejected payment intent {request.idempotency_key}: {e}")
            raise PaymentGatewayError(
                f"Payment gateway error: {e.user_message or e}",
                {"idempotency_key": request.idempotency_key},
            ) from e

        if not intent.client_secret:
            raise PaymentGatewayError(
                "Payment gateway returned no client secret", {"payment_intent": intent.id}
            )
        return PaymentIntent(id=intent.id, client_secret=intent.client_secret, status=intent.status)
