"""
Settlement value objects exchanged with the payment gateway.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Optional

SETTLEMENT_SUCCEEDED = "succeeded"
SETTLEMENT_FAILED = "failed"
SETTLEMENT_PENDING = "pending"


@dataclass(frozen=True)
class SettlementIntent:
    """Request to collect `amount` for a shipment."""
    amount: Decimal
    currency: str
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class IntentHandle:
    """Gateway-side reference for an issued intent."""
    intent_id: str
    client_secret: str


@dataclass(frozen=True)
class SettlementConfirmation:
    """Gateway's verdict on an intent: succeeded, failed or still pending."""
    intent_id: str
    status: str
    transaction_id: Optional[str] = None
    method: str = "card"
    
    @property
    def succeeded(self) -> bool:
        return self.status == SETTLEMENT_SUCCEEDED
    
    @property
    def failed(self) -> bool:
        return self.status == SETTLEMENT_FAILED
