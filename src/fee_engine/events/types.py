"""Domain event types for payment lifecycle operations.

All events are immutable (frozen dataclasses), carry ``EventMetadata`` for
tracing, and serialize to plain dicts/JSON for notification and audit
handlers.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    PAYMENT = "payment"
    FEE = "fee"
    PERMIT = "permit"
    RECEIPT = "receipt"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    correlation_id: UUID  # Links events from one submission or callback
    actor_type: str  # 'resident', 'admin', 'system', 'webhook'
    source_service: str
    version: int = 1

    @classmethod
    def create(
        cls,
        correlation_id: UUID | None = None,
        actor_type: str = "system",
        source_service: str = "fee_engine",
    ) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=datetime.now(timezone.utc),
            correlation_id=correlation_id or uuid4(),
            actor_type=actor_type,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        """Event category for filtering."""
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        data = _serialize_dict(asdict(self))
        data["event_type"] = self.event_type
        return data

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), default=str)


def _serialize_dict(obj: Any) -> Any:
    """Recursively convert values to JSON-compatible types."""
    if isinstance(obj, dict):
        return {k: _serialize_dict(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_serialize_dict(v) for v in obj]
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    return obj


# =============================================================================
# Payment Events
# =============================================================================


@dataclass(frozen=True)
class PaymentAttemptCreated(DomainEvent):
    """An attempt acquired the single-flight lock for a fee."""

    attempt_id: UUID
    fee_id: UUID
    target_type: str
    target_id: UUID
    gateway_category: str
    amount: Decimal
    currency: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYMENT


@dataclass(frozen=True)
class PaymentPending(DomainEvent):
    """Processor accepted the intent; outcome arrives later by callback."""

    attempt_id: UUID
    fee_id: UUID
    gateway_category: str
    intent_id: str | None
    redirect_url: str | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYMENT


@dataclass(frozen=True)
class PaymentSucceeded(DomainEvent):
    """Payment confirmed and applied to its fee."""

    attempt_id: UUID
    fee_id: UUID
    gateway_category: str
    amount: Decimal
    gateway_transaction_id: str | None
    fee_status: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYMENT


@dataclass(frozen=True)
class PaymentFailed(DomainEvent):
    """Processor declined or the payer abandoned the payment."""

    attempt_id: UUID
    fee_id: UUID
    gateway_category: str
    intent_id: str | None
    reason: str | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYMENT


@dataclass(frozen=True)
class PaymentAlreadySatisfied(DomainEvent):
    """Money captured for a fee that had nothing left to pay.

    Needs manual refund review.
    """

    attempt_id: UUID
    fee_id: UUID
    gateway_category: str
    intent_id: str | None
    gateway_transaction_id: str | None
    amount: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYMENT


# =============================================================================
# Fee / Permit / Receipt Events
# =============================================================================


@dataclass(frozen=True)
class FeeWaived(DomainEvent):
    """An administrator waived a fee."""

    fee_id: UUID
    reason: str
    previous_status: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.FEE


@dataclass(frozen=True)
class PermitActivated(DomainEvent):
    """Road fee paid on an approved permit; construction may start."""

    permit_id: UUID
    fee_id: UUID
    attempt_id: UUID

    @property
    def category(self) -> EventCategory:
        return EventCategory.PERMIT


@dataclass(frozen=True)
class ReceiptIssued(DomainEvent):
    """Receipt generated for an applied payment."""

    receipt_id: UUID
    receipt_number: str
    attempt_id: UUID
    fee_id: UUID
    total_amount: Decimal
    currency: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.RECEIPT
