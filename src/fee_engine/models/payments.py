"""Payment attempt and receipt models (owned by the engine)."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from fee_engine.models.base import Base, TimestampMixin, utcnow

_ACTIVE_ATTEMPT = text("status IN ('initiated', 'processing')")


class PaymentAttempt(Base, TimestampMixin):
    """One payment against a fee or permit: a gateway round-trip, or an
    office payment recorded by an administrator (category ``offline``).

    ``late_fee_at_payment`` and ``paid_before`` freeze the ledger as the
    payer saw it at submission; receipts are derived from them.
    """

    __tablename__ = "payment_attempt"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    target_type: Mapped[str] = mapped_column(String, nullable=False)
    target_id: Mapped[UUID] = mapped_column(nullable=False)
    fee_id: Mapped[UUID] = mapped_column(
        ForeignKey("fee.id", ondelete="CASCADE"),
        nullable=False,
    )
    category: Mapped[str] = mapped_column(String, nullable=False)
    payment_method: Mapped[str] = mapped_column(String, nullable=False)
    method_description: Mapped[str] = mapped_column(String, nullable=False, default="")
    status: Mapped[str] = mapped_column(String, nullable=False, default="initiated")
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="PHP")
    intent_id: Mapped[str | None] = mapped_column(String, nullable=True)
    redirect_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    gateway_transaction_id: Mapped[str | None] = mapped_column(String, nullable=True)
    receipt_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String, nullable=True)
    prior_fee_status: Mapped[str] = mapped_column(String, nullable=False)
    late_fee_at_payment: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    paid_before: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    applied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('initiated', 'processing', 'succeeded', 'failed')",
            name="payment_attempt_status_check",
        ),
        CheckConstraint(
            "target_type IN ('fee', 'permit')",
            name="payment_attempt_target_type_check",
        ),
        CheckConstraint(
            "category IN ('card', 'wallet', 'bank_transfer', 'offline')",
            name="payment_attempt_category_check",
        ),
        CheckConstraint("amount > 0", name="payment_attempt_amount_positive"),
        UniqueConstraint("idempotency_key", name="uq_payment_attempt_idempotency_key"),
        # Single-flight lock: one active attempt per payable fee
        Index(
            "uq_payment_attempt_active_fee",
            "fee_id",
            unique=True,
            postgresql_where=_ACTIVE_ATTEMPT,
            sqlite_where=_ACTIVE_ATTEMPT,
        ),
        Index("ix_payment_attempt_intent", "category", "intent_id"),
        Index("ix_payment_attempt_target", "target_type", "target_id"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in ("succeeded", "failed")


class Receipt(Base):
    """Immutable proof of a successful payment."""

    __tablename__ = "receipt"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    receipt_number: Mapped[str] = mapped_column(String, nullable=False)
    payment_attempt_id: Mapped[UUID] = mapped_column(
        ForeignKey("payment_attempt.id", ondelete="RESTRICT"),
        nullable=False,
    )
    fee_id: Mapped[UUID] = mapped_column(
        ForeignKey("fee.id", ondelete="RESTRICT"),
        nullable=False,
    )
    base_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    late_fee_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payment_method: Mapped[str] = mapped_column(String, nullable=False)
    gateway_transaction_id: Mapped[str | None] = mapped_column(String, nullable=True)
    receipt_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    issued_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("payment_attempt_id", name="uq_receipt_payment_attempt"),
        UniqueConstraint("receipt_number", name="uq_receipt_number"),
        CheckConstraint("total_amount > 0", name="receipt_total_positive"),
    )
