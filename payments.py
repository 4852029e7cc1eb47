"""
Stripe client wrapper.

A gateway order is a Stripe PaymentIntent. Amounts cross this boundary in
minor units (paise for INR); ``to_minor_units`` does the conversion with
half-up rounding.
"""
import random
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

import stripe
import structlog

logger = structlog.get_logger(__name__)

RECEIPT_PREFIX = "receipt_"

# PaymentIntent states where the buyer's money has moved (or is held for capture)
SETTLED_STATUSES = ("succeeded", "requires_capture")


class GatewayError(Exception):
    """Raised when the payment gateway rejects a call or cannot be reached."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


def to_minor_units(amount: float) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def new_receipt_id() -> str:
    # collisions are possible; the receipt is only a correlation label
    return f"{RECEIPT_PREFIX}{random.randrange(10000)}"


class PaymentGateway:
    def __init__(self, secret_key: str, client: Optional[Any] = None):
        self.client = client if client is not None else stripe.StripeClient(secret_key)

    def create_order(self, amount: int, currency: str, receipt: str) -> Dict[str, Any]:
        """Create a PaymentIntent for ``amount`` minor units and return it as sent by Stripe."""
        try:
            intent = self.client.v1.payment_intents.create(params={
                "amount": amount,
                "currency": currency,
                "metadata": {"receipt": receipt},
            })
        except stripe.StripeError as e:
            logger.error("gateway_order_failed", amount=amount, currency=currency, error=str(e))
            raise GatewayError("Failed to create gateway order", e) from e
        order = intent.to_dict()
        logger.info("gateway_order_created", order_id=order.get("id"), amount=amount, receipt=receipt)
        return order

    def fetch_payment(self, payment_id: str) -> Dict[str, Any]:
        try:
            return self.client.v1.payment_intents.retrieve(payment_id).to_dict()
        except stripe.StripeError as e:
            logger.error("gateway_payment_fetch_failed", payment_id=payment_id, error=str(e))
            raise GatewayError("Failed to fetch payment", e) from e

    def is_settled(self, payment: Dict[str, Any], amount: int, currency: Optional[str] = None) -> bool:
        """True when ``payment`` went through for exactly ``amount`` (in ``currency``, if given)."""
        if payment.get("status") not in SETTLED_STATUSES:
            return False
        if payment.get("amount") != amount:
            return False
        if currency is not None and str(payment.get("currency", "")).lower() != currency.lower():
            return False
        return True
