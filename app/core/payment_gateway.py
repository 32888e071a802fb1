"""
Payment gateway adapters.

Checkout talks to the gateway through `PaymentGateway.charge()`, which
either returns a `PaymentResult` or raises `PaymentGatewayError`. Every
charge carries an idempotency key so that retrying the same checkout after
an ambiguous failure (timeout, crash after charging) does not charge the
customer twice.

Two implementations:
- MockPaymentGateway: in-process simulation for development and tests
- StripePaymentGateway: confirms a Stripe PaymentIntent
"""
import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

import stripe

from app.core import config

logger = logging.getLogger(__name__)

# Payment method that the mock gateway always declines
MOCK_DECLINED_PAYMENT_METHOD = "pm_card_error"

# Charges the mock remembers for idempotent replay, oldest dropped first
MOCK_RESULT_CACHE_SIZE = 1000


class PaymentGatewayError(Exception):
    """The gateway refused the charge. `message` is safe to show to the payer."""

    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        self.code = code
        super().__init__(message)


@dataclass(frozen=True)
class PaymentResult:
    payment_id: str
    status: str
    amount: Decimal
    currency: str
    metadata: Dict[str, str] = field(default_factory=dict)


class PaymentGateway(ABC):
    """External payment provider."""

    name: str = "gateway"

    @abstractmethod
    async def charge(
        self,
        amount: Decimal,
        currency: str,
        payment_method_id: str,
        description: str,
        metadata: Dict[str, str],
        idempotency_key: str,
    ) -> PaymentResult:
        """
        Charge `amount` in `currency` to `payment_method_id`.

        Raises:
            PaymentGatewayError: If the charge is declined
        """


class MockPaymentGateway(PaymentGateway):
    """
    Simulated gateway.

    Declines MOCK_DECLINED_PAYMENT_METHOD, otherwise succeeds after an
    optional delay. A repeated idempotency key returns the stored result
    instead of charging again, like a real provider would.

    For development and tests only: results live in this process, and only
    the most recent `cache_size` of them are kept.
    """

    name = "mock"

    def __init__(self, delay_seconds: float = 0.0, cache_size: int = MOCK_RESULT_CACHE_SIZE):
        self.delay_seconds = delay_seconds
        self.cache_size = cache_size
        self._results: "OrderedDict[str, PaymentResult]" = OrderedDict()

    async def charge(
        self,
        amount: Decimal,
        currency: str,
        payment_method_id: str,
        description: str,
        metadata: Dict[str, str],
        idempotency_key: str,
    ) -> PaymentResult:
        if idempotency_key in self._results:
            logger.info("[PAYMENT] Replaying mock charge for key %s", idempotency_key)
            self._results.move_to_end(idempotency_key)
            return self._results[idempotency_key]

        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        if payment_method_id == MOCK_DECLINED_PAYMENT_METHOD:
            raise PaymentGatewayError("Your card was declined.", code="card_declined")

        result = PaymentResult(
            payment_id=f"pi_mock_{uuid.uuid4().hex[:16]}",
            status="succeeded",
            amount=amount,
            currency=currency,
            metadata=dict(metadata),
        )
        self._results[idempotency_key] = result
        if len(self._results) > self.cache_size:
            self._results.popitem(last=False)
        return result


def to_minor_units(amount: Decimal) -> int:
    """Decimal amount -> integer cents for the Stripe API."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class StripePaymentGateway(PaymentGateway):
    """
    Charges through a confirmed Stripe PaymentIntent.

    The Stripe SDK is blocking, so calls run in a worker thread.
    """

    name = "stripe"

    def __init__(self, api_key: str):
        if not api_key:
            raise ValueError("STRIPE_SECRET_KEY is required for the stripe payment gateway")
        self.api_key = api_key

    def _create_intent(self, **params):
        return stripe.PaymentIntent.create(api_key=self.api_key, **params)

    async def charge(
        self,
        amount: Decimal,
        currency: str,
        payment_method_id: str,
        description: str,
        metadata: Dict[str, str],
        idempotency_key: str,
    ) -> PaymentResult:
        try:
            intent = await asyncio.to_thread(
                self._create_intent,
                amount=to_minor_units(amount),
                currency=currency.lower(),
                payment_method=payment_method_id,
                confirm=True,
                description=description,
                metadata=metadata,
                automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
                idempotency_key=idempotency_key,
            )
        except stripe.CardError as e:
            raise PaymentGatewayError(e.user_message or "Your card was declined.", code=e.code)
        except stripe.StripeError as e:
            logger.warning("[PAYMENT] Stripe error for key %s: %s", idempotency_key, e)
            raise PaymentGatewayError(
                e.user_message or "Payment could not be processed",
                code=getattr(e, "code", None),
            )

        if intent.status != "succeeded":
            raise PaymentGatewayError(
                f"Payment was not completed (status: {intent.status})",
                code=intent.status,
            )

        return PaymentResult(
            payment_id=intent.id,
            status=intent.status,
            amount=amount,
            currency=currency,
            metadata=dict(metadata),
        )


_gateway: Optional[PaymentGateway] = None


def build_payment_gateway(kind: str = config.PAYMENT_GATEWAY) -> PaymentGateway:
    if kind == "stripe":
        return StripePaymentGateway(config.STRIPE_SECRET_KEY)
    if kind == "mock":
        return MockPaymentGateway(delay_seconds=config.MOCK_PAYMENT_DELAY_SECONDS)
    raise ValueError(f"Unknown PAYMENT_GATEWAY '{kind}' (expected 'mock' or 'stripe')")


def get_payment_gateway() -> PaymentGateway:
    """
    FastAPI dependency returning the process-wide gateway client.
    """
    global _gateway

    if _gateway is None:
        _gateway = build_payment_gateway()
        logger.info("[PAYMENT] Using %s payment gateway", _gateway.name)

    return _gateway
