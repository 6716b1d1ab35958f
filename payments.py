import logging
from typing import Protocol

import stripe

from errors import UpstreamError

logger = logging.getLogger(__name__)


class PaymentGateway(Protocol):
    def create_intent(self, amount: int) -> str: ...


class StripeGateway:
    """Creates Stripe payment intents; ``amount`` is in the currency's minor unit."""

    def __init__(self, api_key: str, currency: str = "usd"):
        self.api_key = api_key
        self.currency = currency

    def create_intent(self, amount: int) -> str:
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=self.currency,
                automatic_payment_methods={"enabled": True},
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            logger.exception("Payment intent creation failed")
            raise UpstreamError("Failed to create payment intent", error=str(e)) from e
        return intent.client_secret
