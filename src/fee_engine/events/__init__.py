"""Domain events for the payment lifecycle."""

from fee_engine.events.emitter import AsyncEventEmitter, HandlerRegistration
from fee_engine.events.types import (
    DomainEvent,
    EventCategory,
    EventMetadata,
    FeeWaived,
    PaymentAlreadySatisfied,
    PaymentAttemptCreated,
    PaymentFailed,
    PaymentPending,
    PaymentSucceeded,
    PermitActivated,
    ReceiptIssued,
)

__all__ = [
    "AsyncEventEmitter",
    "DomainEvent",
    "EventCategory",
    "EventMetadata",
    "FeeWaived",
    "HandlerRegistration",
    "PaymentAlreadySatisfied",
    "PaymentAttemptCreated",
    "PaymentFailed",
    "PaymentPending",
    "PaymentSucceeded",
    "PermitActivated",
    "ReceiptIssued",
]
