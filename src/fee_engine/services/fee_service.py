"""Fee read models and administrative fee operations."""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fee_engine.calculators.fee_ledger import (
    DEFAULT_POLICY,
    ZERO,
    LateFeePolicy,
    LedgerView,
    format_amount,
    quantize_amount,
    view_for,
)
from fee_engine.errors import (
    FeeNotWaivableError,
    PaymentInProgressError,
    TargetNotFoundError,
    ValidationError,
)
from fee_engine.events import AsyncEventEmitter, EventMetadata, FeeWaived
from fee_engine.gateways.base import SUCCEEDED, ConfirmResult
from fee_engine.models import Fee, PaymentAttempt
from fee_engine.models.base import utcnow
from fee_engine.models.enums import (
    ACTIVE_ATTEMPT_STATUSES,
    OFFLINE_CATEGORY,
    PAYABLE_FEE_STATUSES,
    FeeStatus,
    FeeType,
    OfflineMethod,
    TargetType,
)
from fee_engine.services.state_machine import ApplyOutcome, PaymentStateMachine

logger = logging.getLogger(__name__)

MIN_WAIVER_REASON_LENGTH = 10

SORT_COLUMNS = {
    "due_date": Fee.due_date,
    "amount": Fee.amount,
    "created_at": Fee.created_at,
}


@dataclass(frozen=True)
class FeeFilter:
    """Filters for ``FeeService.list_fees``.

    ``status`` matches the display status, so "overdue" includes unpaid
    fees past their due date.
    """

    household_id: UUID | None = None
    status: str | None = None
    fee_type: str | None = None
    due_from: date | None = None
    due_to: date | None = None
    sort_by: str = "due_date"
    descending: bool = False

    def __post_init__(self) -> None:
        """Validate filter values."""
        if self.status is not None:
            FeeStatus(self.status)
        if self.fee_type is not None:
            FeeType(self.fee_type)
        if self.sort_by not in SORT_COLUMNS:
            raise ValueError(f"sort_by must be one of {sorted(SORT_COLUMNS)}")
        if self.due_from and self.due_to and self.due_from > self.due_to:
            raise ValueError("due_from must not be after due_to")


@dataclass(frozen=True)
class FeeView:
    """A fee together with its ledger evaluation."""

    fee: Fee
    ledger: LedgerView

    @property
    def display_status(self) -> str:
        return self.ledger.display_status


@dataclass(frozen=True)
class FeeStatistics:
    """Aggregate fee figures for a household or the whole community."""

    total_fees: int = 0
    counts_by_status: dict[str, int] = field(default_factory=dict)
    total_amount: Decimal = ZERO
    total_paid: Decimal = ZERO
    total_late_fees: Decimal = ZERO
    total_outstanding: Decimal = ZERO
    outstanding_by_type: dict[str, Decimal] = field(default_factory=dict)

    @property
    def overdue_count(self) -> int:
        return self.counts_by_status.get("overdue", 0)


class FeeService:
    """Fee queries evaluated through the ledger, plus administrator actions
    (waivers and office payments)."""

    def __init__(
        self,
        session: AsyncSession,
        emitter: AsyncEventEmitter | None = None,
        clock: Callable[[], datetime] = utcnow,
        policy: LateFeePolicy = DEFAULT_POLICY,
        currency: str = "PHP",
    ):
        self.session = session
        self.emitter = emitter
        self.clock = clock
        self.policy = policy
        self.currency = currency

    async def get_fee(self, fee_id: UUID) -> Fee:
        fee = await self.session.get(Fee, fee_id)
        if fee is None:
            raise TargetNotFoundError("fee", fee_id)
        return fee

    async def get_fee_view(self, fee_id: UUID, as_of: date | datetime | None = None) -> FeeView:
        fee = await self.get_fee(fee_id)
        return FeeView(fee, view_for(fee, as_of=as_of or self.clock(), policy=self.policy))

    async def list_fees(
        self,
        fee_filter: FeeFilter | None = None,
        as_of: date | datetime | None = None,
    ) -> list[FeeView]:
        """Fees matching the filter, each with its ledger view."""
        f = fee_filter or FeeFilter()
        as_of = as_of or self.clock()

        stmt = select(Fee)
        if f.household_id is not None:
            stmt = stmt.where(Fee.household_id == f.household_id)
        if f.fee_type is not None:
            stmt = stmt.where(Fee.fee_type == f.fee_type)
        if f.due_from is not None:
            stmt = stmt.where(Fee.due_date >= f.due_from)
        if f.due_to is not None:
            stmt = stmt.where(Fee.due_date <= f.due_to)

        column = SORT_COLUMNS[f.sort_by]
        stmt = stmt.order_by(column.desc() if f.descending else column.asc(), Fee.id)

        result = await self.session.execute(stmt)
        views = [
            FeeView(fee, view_for(fee, as_of=as_of, policy=self.policy))
            for fee in result.scalars().all()
        ]
        if f.status is not None:
            views = [v for v in views if v.display_status == f.status]
        return views

    async def get_statistics(
        self,
        household_id: UUID | None = None,
        as_of: date | datetime | None = None,
    ) -> FeeStatistics:
        views = await self.list_fees(FeeFilter(household_id=household_id), as_of=as_of)

        counts: Counter[str] = Counter()
        by_type: defaultdict[str, Decimal] = defaultdict(lambda: ZERO)
        total_amount = total_paid = total_late = total_outstanding = ZERO
        for v in views:
            counts[v.display_status] += 1
            total_amount += v.ledger.amount
            total_paid += v.ledger.paid_amount
            if v.fee.status not in ("waived", "cancelled"):
                total_late += v.ledger.late_fee
            outstanding = v.ledger.amount_payable
            total_outstanding += outstanding
            if outstanding > 0:
                by_type[v.fee.fee_type] += outstanding

        return FeeStatistics(
            total_fees=len(views),
            counts_by_status=dict(counts),
            total_amount=total_amount,
            total_paid=total_paid,
            total_late_fees=total_late,
            total_outstanding=total_outstanding,
            outstanding_by_type=dict(by_type),
        )

    async def waive_fee(self, fee_id: UUID, reason: str) -> Fee:
        """Waive a fee (administrator action).

        Raises:
            ValidationError: Reason shorter than 10 characters.
            PaymentInProgressError: A payment attempt holds the fee's lock.
            FeeNotWaivableError: Fee already paid, waived or cancelled.
        """
        reason = (reason or "").strip()
        if len(reason) < MIN_WAIVER_REASON_LENGTH:
            raise ValidationError(
                [f"Waiver reason must be at least {MIN_WAIVER_REASON_LENGTH} characters"]
            )

        fee = await self.get_fee(fee_id)
        await self._ensure_unlocked(fee)
        if not PaymentStateMachine.can_transition("fee", fee.status, "waived"):
            raise FeeNotWaivableError(fee_id, f"fee is {fee.status}")

        previous_status = fee.status
        fee.status = "waived"
        fee.waiver_reason = reason
        await self.session.commit()

        logger.info("Fee %s waived (was %s): %s", fee_id, previous_status, reason)
        if self.emitter is not None:
            await self.emitter.emit(
                FeeWaived(
                    metadata=EventMetadata.create(actor_type="admin"),
                    fee_id=fee_id,
                    reason=reason,
                    previous_status=previous_status,
                )
            )
        return fee

    async def record_payment(
        self,
        fee_id: UUID,
        amount: Decimal,
        method: str,
        paid_on: date | None = None,
        reference: str | None = None,
    ) -> ApplyOutcome:
        """Record a payment collected at the office (administrator action).

        The payment is stored as an ``offline`` attempt and resolved through
        ``PaymentStateMachine.apply`` in the same transaction that creates it,
        so it moves the fee to paid or partial, activates a road-fee permit
        and issues a receipt exactly like a gateway payment. The ledger is
        evaluated on ``paid_on``.

        Raises:
            ValidationError: Unknown method, bad amount, future date or a fee
                that cannot be paid.
            PaymentInProgressError: A payment attempt holds the fee's lock.
            TargetNotFoundError: Unknown fee.
        """
        errors: list[str] = []
        try:
            method = OfflineMethod(method).value
        except ValueError:
            errors.append(f"Unknown offline payment method: {method}")
        amount = quantize_amount(amount)
        if amount <= 0:
            errors.append("Amount must be greater than zero")
        now = self.clock()
        paid_on = paid_on or now.date()
        if paid_on > now.date():
            errors.append("Payment date cannot be in the future")
        if errors:
            raise ValidationError(errors)

        fee = await self.get_fee(fee_id)
        await self._ensure_unlocked(fee)
        if fee.status not in PAYABLE_FEE_STATUSES:
            raise ValidationError([f"Fee is {fee.status} and cannot be paid"])
        view = view_for(fee, as_of=paid_on, policy=self.policy)
        if amount > view.amount_payable:
            raise ValidationError(
                [f"Amount exceeds amount due ({format_amount(view.amount_payable, self.currency)})"]
            )

        attempt = PaymentAttempt(
            target_type=TargetType.FEE.value,
            target_id=fee.id,
            fee_id=fee.id,
            category=OFFLINE_CATEGORY,
            payment_method=method,
            method_description=f"{method.replace('_', ' ')} (recorded at office)",
            status="initiated",
            amount=amount,
            currency=self.currency,
            prior_fee_status=fee.status,
            late_fee_at_payment=view.late_fee,
            paid_before=quantize_amount(fee.paid_amount),
        )
        self.session.add(attempt)
        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            raise PaymentInProgressError(fee_id) from None

        paid_at = now if paid_on == now.date() else datetime.combine(paid_on, time(), tzinfo=timezone.utc)
        machine = PaymentStateMachine(self.session, emitter=self.emitter, clock=lambda: paid_at)
        outcome = await machine.apply(
            attempt,
            ConfirmResult(status=SUCCEEDED, gateway_transaction_id=reference or None),
        )
        logger.info(
            "Recorded %s payment of %s for fee %s (attempt %s, fee now %s)",
            method,
            amount,
            fee_id,
            attempt.id,
            outcome.fee_status,
        )
        return outcome

    async def _ensure_unlocked(self, fee: Fee) -> None:
        active = await self.session.execute(
            select(PaymentAttempt.id).where(
                PaymentAttempt.fee_id == fee.id,
                PaymentAttempt.status.in_(ACTIVE_ATTEMPT_STATUSES),
            )
        )
        attempt_id = active.scalars().first()
        if attempt_id is not None or fee.status == "processing":
            raise PaymentInProgressError(fee.id, attempt_id)

    async def payment_history(
        self,
        fee_id: UUID | None = None,
        household_id: UUID | None = None,
    ) -> list[PaymentAttempt]:
        """Payment attempts for a fee or a household, newest first."""
        if fee_id is None and household_id is None:
            raise ValueError("fee_id or household_id is required")

        stmt = select(PaymentAttempt)
        if fee_id is not None:
            stmt = stmt.where(PaymentAttempt.fee_id == fee_id)
        if household_id is not None:
            stmt = stmt.join(Fee, Fee.id == PaymentAttempt.fee_id).where(
                Fee.household_id == household_id
            )
        result = await self.session.execute(stmt.order_by(PaymentAttempt.created_at.desc()))
        return list(result.scalars().all())
