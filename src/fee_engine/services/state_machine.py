"""Status transitions for fees, permits, worker passes and payment attempts.

``PaymentStateMachine.apply`` is the single entry point for payment
outcomes: direct confirm results, webhook callbacks and manual refreshes
all resolve through it, so they share one consistency rule.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fee_engine.calculators.fee_ledger import ZERO, quantize_amount
from fee_engine.errors import InvalidTransitionError
from fee_engine.events import (
    AsyncEventEmitter,
    DomainEvent,
    EventMetadata,
    PaymentAlreadySatisfied,
    PaymentFailed,
    PaymentSucceeded,
    PermitActivated,
    ReceiptIssued,
)
from fee_engine.gateways.base import FAILED, SUCCEEDED, ConfirmResult
from fee_engine.models import ConstructionPermit, Fee, PaymentAttempt, Receipt
from fee_engine.models.base import utcnow
from fee_engine.models.enums import ACTIVE_ATTEMPT_STATUSES
from fee_engine.services.receipt_generator import ReceiptGenerator

logger = logging.getLogger(__name__)


class OutcomeKind(str, Enum):
    """Outcome values returned by ``PaymentStateMachine.apply``."""

    APPLIED = "applied"
    FAILED = "failed"
    ALREADY_SATISFIED = "already_satisfied"
    DUPLICATE = "duplicate"


@dataclass
class ApplyOutcome:
    """Result of applying a terminal gateway outcome to an attempt."""

    outcome: OutcomeKind
    attempt: PaymentAttempt
    fee_status: str | None = None
    receipt: Receipt | None = None
    permit_activated: bool = False
    events: list[DomainEvent] = field(default_factory=list)


class PaymentStateMachine:
    """State machine for payment-driven status transitions.

    Fee:
    - unpaid/overdue/partial → processing (attempt created)
    - processing → paid | partial (payment succeeded)
    - processing → prior status (payment failed)
    - unpaid/overdue/partial → waived, unpaid/overdue → cancelled

    Permit:
    - approved → in_progress, only when its road fee is paid

    Worker pass transitions never follow from payment outcomes.
    """

    # {entity: {from_status: [allowed_to_statuses]}}
    VALID_TRANSITIONS: dict[str, dict[str, list[str]]] = {
        "fee": {
            "unpaid": ["processing", "overdue", "waived", "cancelled"],
            "overdue": ["processing", "waived", "cancelled"],
            "partial": ["processing", "waived"],
            "processing": ["paid", "partial", "unpaid", "overdue"],
            "paid": [],
            "waived": [],
            "cancelled": [],
        },
        "permit": {
            "pending": ["approved", "rejected"],
            "approved": ["in_progress", "rejected"],
            "in_progress": ["completed"],
            "rejected": [],
            "completed": [],
        },
        "worker_pass": {
            "scheduled": ["active", "cancelled"],
            "active": ["completed", "cancelled"],
            "completed": [],
            "cancelled": [],
        },
        "payment_attempt": {
            "initiated": ["processing", "failed"],
            "processing": ["succeeded", "failed"],
            "succeeded": [],
            "failed": [],
        },
    }

    # Permit statuses that allow worker passes to be issued
    WORKER_PASS_ALLOWED = {"approved", "in_progress"}

    # Fee statuses with nothing left to collect
    SETTLED_FEE_STATUSES = {"paid", "waived", "cancelled"}

    @classmethod
    def can_transition(cls, entity: str, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS[entity].get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, entity: str, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(entity, from_status, to_status):
            raise InvalidTransitionError(entity, from_status, to_status)

    @classmethod
    def get_next_statuses(cls, entity: str, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS[entity].get(current_status, [])

    @classmethod
    def can_issue_worker_pass(cls, permit_status: str) -> bool:
        return permit_status in cls.WORKER_PASS_ALLOWED

    def __init__(
        self,
        session: AsyncSession,
        emitter: AsyncEventEmitter | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.emitter = emitter
        self.clock = clock
        self.receipts = ReceiptGenerator(session, clock=clock)

    async def apply(
        self,
        attempt: PaymentAttempt,
        result: ConfirmResult,
        correlation_id: UUID | None = None,
    ) -> ApplyOutcome:
        """Apply a terminal gateway outcome to an attempt and its fee.

        All mutations commit in one transaction; events are emitted only
        after the commit succeeds.

        Raises:
            ValueError: If the result is still pending.
        """
        if not result.is_terminal:
            raise ValueError("Only succeeded/failed results can be applied")

        attempt_id, intent_id = attempt.id, attempt.intent_id
        if attempt.is_terminal:
            logger.info(
                "Ignoring duplicate %s outcome for attempt %s (intent %s, already %s)",
                result.status,
                attempt_id,
                intent_id,
                attempt.status,
            )
            return ApplyOutcome(OutcomeKind.DUPLICATE, attempt)

        metadata = EventMetadata.create(correlation_id=correlation_id or attempt_id)
        new_status = "succeeded" if result.status == SUCCEEDED else "failed"
        try:
            if not await self._claim(attempt, new_status):
                await self.session.rollback()
                await self.session.refresh(attempt)
                logger.info("Attempt %s was resolved concurrently (intent %s)", attempt_id, intent_id)
                return ApplyOutcome(OutcomeKind.DUPLICATE, attempt)

            fee = await self._load_fee(attempt.fee_id)
            attempt.resolved_at = self.clock()

            if result.status == FAILED:
                outcome = self._apply_failure(attempt, fee, result, metadata)
            elif self._is_satisfied(fee, attempt):
                outcome = self._apply_already_satisfied(attempt, fee, result, metadata)
            else:
                outcome = await self._apply_success(attempt, fee, result, metadata)

            await self.session.commit()
        except Exception:
            await self.session.rollback()
            logger.exception(
                "Failed to apply %s outcome for attempt %s (intent %s, transaction %s)",
                result.status,
                attempt_id,
                intent_id,
                result.gateway_transaction_id,
            )
            raise

        if self.emitter is not None:
            await self.emitter.emit_all(outcome.events)
        return outcome

    async def _claim(self, attempt: PaymentAttempt, new_status: str) -> bool:
        """Move the attempt out of an active status; False if someone else did."""
        self.validate_transition("payment_attempt", "processing", new_status)
        result = await self.session.execute(
            update(PaymentAttempt)
            .where(
                PaymentAttempt.id == attempt.id,
                PaymentAttempt.status.in_(ACTIVE_ATTEMPT_STATUSES),
            )
            .values(status=new_status)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        attempt.status = new_status
        return True

    async def _load_fee(self, fee_id: UUID) -> Fee:
        result = await self.session.execute(
            select(Fee).where(Fee.id == fee_id).with_for_update()
        )
        return result.scalar_one()

    def _is_satisfied(self, fee: Fee, attempt: PaymentAttempt) -> bool:
        if fee.status in self.SETTLED_FEE_STATUSES:
            return True
        owed = Decimal(fee.amount) + Decimal(attempt.late_fee_at_payment)
        return Decimal(fee.paid_amount) >= owed

    def _release_fee(self, fee: Fee, attempt: PaymentAttempt) -> None:
        """Return a fee held in ``processing`` to its pre-attempt status."""
        if fee.status == "processing":
            self.validate_transition("fee", fee.status, attempt.prior_fee_status)
            fee.status = attempt.prior_fee_status

    def _apply_failure(
        self,
        attempt: PaymentAttempt,
        fee: Fee,
        result: ConfirmResult,
        metadata: EventMetadata,
    ) -> ApplyOutcome:
        attempt.failure_reason = result.failure_reason or "Payment failed"
        self._release_fee(fee, attempt)

        logger.warning(
            "Payment attempt %s failed (intent %s): %s",
            attempt.id,
            attempt.intent_id,
            attempt.failure_reason,
        )
        event = PaymentFailed(
            metadata=metadata,
            attempt_id=attempt.id,
            fee_id=fee.id,
            gateway_category=attempt.category,
            intent_id=attempt.intent_id,
            reason=attempt.failure_reason,
        )
        return ApplyOutcome(OutcomeKind.FAILED, attempt, fee_status=fee.status, events=[event])

    def _apply_already_satisfied(
        self,
        attempt: PaymentAttempt,
        fee: Fee,
        result: ConfirmResult,
        metadata: EventMetadata,
    ) -> ApplyOutcome:
        self._record_gateway_refs(attempt, result)
        attempt.applied = False
        self._release_fee(fee, attempt)

        logger.warning(
            "Payment attempt %s succeeded for already-settled fee %s "
            "(intent %s, transaction %s); not applied, needs refund review",
            attempt.id,
            fee.id,
            attempt.intent_id,
            attempt.gateway_transaction_id,
        )
        event = PaymentAlreadySatisfied(
            metadata=metadata,
            attempt_id=attempt.id,
            fee_id=fee.id,
            gateway_category=attempt.category,
            intent_id=attempt.intent_id,
            gateway_transaction_id=attempt.gateway_transaction_id,
            amount=attempt.amount,
        )
        return ApplyOutcome(
            OutcomeKind.ALREADY_SATISFIED,
            attempt,
            fee_status=fee.status,
            events=[event],
        )

    async def _apply_success(
        self,
        attempt: PaymentAttempt,
        fee: Fee,
        result: ConfirmResult,
        metadata: EventMetadata,
    ) -> ApplyOutcome:
        now = attempt.resolved_at
        self._record_gateway_refs(attempt, result)
        attempt.applied = True

        paid = quantize_amount(Decimal(fee.paid_amount) + Decimal(attempt.amount))
        remaining = max(ZERO, Decimal(fee.amount) + Decimal(attempt.late_fee_at_payment) - paid)
        new_status = "paid" if remaining == ZERO else "partial"

        if fee.status == "processing":
            self.validate_transition("fee", fee.status, new_status)
        fee.status = new_status
        fee.paid_amount = paid
        fee.paid_at = now
        fee.payment_method = attempt.payment_method

        events: list[DomainEvent] = [
            PaymentSucceeded(
                metadata=metadata,
                attempt_id=attempt.id,
                fee_id=fee.id,
                gateway_category=attempt.category,
                amount=attempt.amount,
                gateway_transaction_id=attempt.gateway_transaction_id,
                fee_status=new_status,
            )
        ]

        permit_activated = False
        if fee.is_road_fee and new_status == "paid":
            permit_activated = await self._mark_road_fee_paid(fee, attempt, now)
            if permit_activated:
                events.append(
                    PermitActivated(
                        metadata=metadata,
                        permit_id=fee.linked_permit_id,
                        fee_id=fee.id,
                        attempt_id=attempt.id,
                    )
                )

        await self.session.flush()
        receipt = await self.receipts.issue(attempt)
        events.append(
            ReceiptIssued(
                metadata=metadata,
                receipt_id=receipt.id,
                receipt_number=receipt.receipt_number,
                attempt_id=attempt.id,
                fee_id=fee.id,
                total_amount=receipt.total_amount,
                currency=receipt.currency,
            )
        )

        logger.info(
            "Applied payment attempt %s to fee %s: %s (transaction %s)",
            attempt.id,
            fee.id,
            new_status,
            attempt.gateway_transaction_id,
        )
        return ApplyOutcome(
            OutcomeKind.APPLIED,
            attempt,
            fee_status=new_status,
            receipt=receipt,
            permit_activated=permit_activated,
            events=events,
        )

    async def _mark_road_fee_paid(self, fee: Fee, attempt: PaymentAttempt, now: datetime) -> bool:
        """Record the road fee on its permit; True if the permit was activated."""
        result = await self.session.execute(
            select(ConstructionPermit)
            .where(ConstructionPermit.id == fee.linked_permit_id)
            .with_for_update()
        )
        permit = result.scalar_one_or_none()
        if permit is None:
            logger.warning(
                "Road fee %s references missing permit %s (attempt %s)",
                fee.id,
                fee.linked_permit_id,
                attempt.id,
            )
            return False

        permit.road_fee_paid = True
        permit.road_fee_paid_at = now
        if permit.status != "approved":
            return False

        self.validate_transition("permit", permit.status, "in_progress")
        permit.status = "in_progress"
        return True

    @staticmethod
    def _record_gateway_refs(attempt: PaymentAttempt, result: ConfirmResult) -> None:
        if result.gateway_transaction_id:
            attempt.gateway_transaction_id = result.gateway_transaction_id
        if result.receipt_url:
            attempt.receipt_url = result.receipt_url
