"""
Payment gateway adapters.

The shipment core only needs two things from a gateway: issue a settlement
intent, and later report whether it settled. Protocol details stay here.
"""

import asyncio
import logging
from decimal import Decimal, ROUND_HALF_UP

import stripe

from backend.app.core.config import settings
from backend.app.core.exceptions import UpstreamServiceError
from backend.app.core.reliability import CircuitBreaker, CircuitOpenError, payment_circuit_breaker
from backend.app.domain.payments.settlement import (
    SettlementIntent,
    IntentHandle,
    SettlementConfirmation,
    SETTLEMENT_SUCCEEDED,
    SETTLEMENT_FAILED,
    SETTLEMENT_PENDING,
)

logger = logging.getLogger(__name__)


class PaymentGateway:
    """Gateway interface consumed by PaymentService."""
    
    method = "card"
    
    async def create_intent(self, intent: SettlementIntent) -> IntentHandle:
        raise NotImplementedError
    
    async def retrieve_confirmation(self, intent_id: str) -> SettlementConfirmation:
        raise NotImplementedError


class StripePaymentGateway(PaymentGateway):
    """
    Stripe PaymentIntents adapter.
    
    Stripe calls are blocking, so they run in a worker thread. Every call goes
    through the circuit breaker; any Stripe or breaker error is reported as
    UpstreamServiceError.
    """
    
    method = "stripe"
    
    def __init__(self, api_key: str, breaker: CircuitBreaker = payment_circuit_breaker):
        self.api_key = api_key
        self.breaker = breaker
    
    async def _call(self, operation: str, func, *args, **kwargs):
        async def run():
            return await asyncio.to_thread(func, *args, api_key=self.api_key, **kwargs)
        
        try:
            return await self.breaker.call(run)
        except CircuitOpenError as exc:
            logger.error("Payment gateway unavailable during %s: %s", operation, exc)
            raise UpstreamServiceError("Payment gateway temporarily unavailable")
        except stripe.StripeError as exc:
            logger.error("Stripe %s failed: %s", operation, exc)
            raise UpstreamServiceError("Payment gateway error", details={"operation": operation})
    
    async def create_intent(self, intent: SettlementIntent) -> IntentHandle:
        amount_minor = int((intent.amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        payment_intent = await self._call(
            "create_intent",
            stripe.PaymentIntent.create,
            amount=amount_minor,
            currency=intent.currency.lower(),
            metadata=intent.metadata,
            automatic_payment_methods={"enabled": True},
        )
        return IntentHandle(intent_id=payment_intent.id, client_secret=payment_intent.client_secret)
    
    async def retrieve_confirmation(self, intent_id: str) -> SettlementConfirmation:
        payment_intent = await self._call("retrieve", stripe.PaymentIntent.retrieve, intent_id)
        if payment_intent.status == "succeeded":
            status = SETTLEMENT_SUCCEEDED
        elif payment_intent.status == "canceled":
            status = SETTLEMENT_FAILED
        else:
            status = SETTLEMENT_PENDING
        return SettlementConfirmation(
            intent_id=payment_intent.id,
            status=status,
            transaction_id=payment_intent.get("latest_charge") or payment_intent.id,
            method=self.method,
        )


def get_payment_gateway() -> PaymentGateway:
    """
    FastAPI dependency for the configured gateway.
    
    Raises:
        UpstreamServiceError: no gateway credentials configured
    """
    if not settings.stripe_secret_key:
        raise UpstreamServiceError("Payment gateway not configured")
    return StripePaymentGateway(settings.stripe_secret_key)
