"""Fee, construction permit and worker pass models.

These rows are created by upstream workflows (billing runs, permit
approval); the payment engine only mutates their status and payment fields.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from fee_engine.models.base import Base, TimestampMixin


class Fee(Base, TimestampMixin):
    """A billable obligation: association dues or a permit road fee."""

    __tablename__ = "fee"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    household_id: Mapped[UUID | None] = mapped_column(nullable=True)
    title: Mapped[str] = mapped_column(String, nullable=False, default="")
    fee_type: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="unpaid")
    paid_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String, nullable=True)
    linked_permit_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("construction_permit.id", ondelete="SET NULL"),
        nullable=True,
    )
    waiver_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "fee_type IN ('monthly', 'quarterly', 'annual', 'special', "
            "'late_fee', 'construction_road_fee')",
            name="fee_type_check",
        ),
        CheckConstraint(
            "status IN ('unpaid', 'processing', 'paid', 'overdue', 'partial', "
            "'waived', 'cancelled')",
            name="fee_status_check",
        ),
        CheckConstraint("amount > 0", name="fee_amount_positive"),
        CheckConstraint("paid_amount >= 0", name="fee_paid_amount_non_negative"),
        Index("ix_fee_household_due", "household_id", "due_date"),
        Index("ix_fee_linked_permit", "linked_permit_id"),
    )

    @property
    def is_road_fee(self) -> bool:
        return self.fee_type == "construction_road_fee" and self.linked_permit_id is not None


class ConstructionPermit(Base, TimestampMixin):
    """Construction project authorization gated by road fee payment."""

    __tablename__ = "construction_permit"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    household_id: Mapped[UUID | None] = mapped_column(nullable=True)
    contractor_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    road_fee_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    road_fee_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    road_fee_paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'in_progress', 'completed')",
            name="construction_permit_status_check",
        ),
    )


class WorkerPass(Base, TimestampMixin):
    """Gate pass for a contractor's worker on a permitted project."""

    __tablename__ = "worker_pass"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    permit_id: Mapped[UUID] = mapped_column(
        ForeignKey("construction_permit.id", ondelete="CASCADE"),
        nullable=False,
    )
    worker_name: Mapped[str] = mapped_column(String, nullable=False)
    valid_from: Mapped[date] = mapped_column(Date, nullable=False)
    valid_until: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="scheduled")

    __table_args__ = (
        CheckConstraint(
            "status IN ('scheduled', 'active', 'completed', 'cancelled')",
            name="worker_pass_status_check",
        ),
        CheckConstraint("valid_until >= valid_from", name="worker_pass_dates_check"),
    )
