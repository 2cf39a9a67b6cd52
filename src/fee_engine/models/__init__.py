"""SQLAlchemy ORM models."""

from fee_engine.models.base import Base, TimestampMixin
from fee_engine.models.fees import ConstructionPermit, Fee, WorkerPass
from fee_engine.models.payments import PaymentAttempt, Receipt

__all__ = [
    "Base",
    "TimestampMixin",
    "Fee",
    "ConstructionPermit",
    "WorkerPass",
    "PaymentAttempt",
    "Receipt",
]
