"""Payment Gateway Router - submission and resolution of payment attempts.

Routes a payment through:
1. Target resolution (fee, or a permit's road fee) and validation
2. Single-flight lock: one active attempt per payable fee
3. Gateway round-trip (initiate, confirm) with attempt tracking
4. Outcome application via ``PaymentStateMachine``, whether the outcome
   arrives from confirm, a webhook callback, or a manual refresh

Transient gateway errors never trigger a retry: the attempt stays
``processing`` and is resolved by callback or refresh, so a payer is never
charged twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fee_engine.calculators.fee_ledger import (
    DEFAULT_POLICY,
    LateFeePolicy,
    format_amount,
    quantize_amount,
    view_for,
)
from fee_engine.errors import (
    AttemptNotFoundError,
    GatewayError,
    PaymentInProgressError,
    PaymentValidationError,
    TargetNotFoundError,
)
from fee_engine.events import (
    AsyncEventEmitter,
    EventMetadata,
    PaymentAttemptCreated,
    PaymentPending,
)
from fee_engine.gateways.base import FAILED, PENDING, ConfirmResult, GatewayAdapter, GatewayCallback
from fee_engine.gateways.methods import PaymentMethod
from fee_engine.models import ConstructionPermit, Fee, PaymentAttempt
from fee_engine.models.base import utcnow
from fee_engine.models.enums import (
    ACTIVE_ATTEMPT_STATUSES,
    PAYABLE_FEE_STATUSES,
    GatewayCategory,
    TargetType,
)
from fee_engine.services.state_machine import ApplyOutcome, OutcomeKind, PaymentStateMachine

logger = logging.getLogger(__name__)

_ALL_CATEGORIES = frozenset(c.value for c in GatewayCategory)


@dataclass(frozen=True)
class RouterConfig:
    """Routing policy.

    Attributes:
        currency: ISO code every attempt is charged in.
        fee_categories: Gateway categories accepted for fee targets.
        permit_categories: Gateway categories accepted for permit targets.
        stale_after: Age after which a ``processing`` attempt is reported
            by ``list_stale_attempts``.
        late_fee_policy: Penalty policy used to compute the amount due.
    """

    currency: str = "PHP"
    fee_categories: frozenset[str] = _ALL_CATEGORIES
    permit_categories: frozenset[str] = _ALL_CATEGORIES
    stale_after: timedelta = timedelta(hours=24)
    late_fee_policy: LateFeePolicy = field(default=DEFAULT_POLICY)

    def __post_init__(self) -> None:
        """Validate configuration."""
        if len(self.currency) != 3 or not self.currency.isupper():
            raise ValueError(f"currency must be a 3-letter ISO code, got {self.currency!r}")
        for name in ("fee_categories", "permit_categories"):
            categories = getattr(self, name)
            if not categories:
                raise ValueError(f"{name} cannot be empty")
            unknown = set(categories) - _ALL_CATEGORIES
            if unknown:
                raise ValueError(f"{name} has unknown categories: {sorted(unknown)}")
        if self.stale_after <= timedelta(0):
            raise ValueError("stale_after must be positive")

    def allowed_categories(self, target_type: str) -> frozenset[str]:
        if target_type == TargetType.PERMIT.value:
            return self.permit_categories
        return self.fee_categories

    @classmethod
    def from_settings(cls, settings: Any) -> RouterConfig:
        return cls(
            currency=settings.currency,
            stale_after=timedelta(hours=settings.stale_attempt_hours),
        )


@dataclass(frozen=True)
class SubmissionResult:
    """What the caller sees after a submit, refresh or callback.

    ``status`` is one of succeeded, failed, pending, already_satisfied.
    """

    attempt_id: UUID
    fee_id: UUID
    status: str
    attempt_status: str
    intent_id: str | None = None
    redirect_url: str | None = None
    gateway_transaction_id: str | None = None
    failure_reason: str | None = None
    fee_status: str | None = None
    receipt_id: UUID | None = None
    receipt_number: str | None = None
    permit_activated: bool = False
    was_duplicate: bool = False

    @property
    def is_pending(self) -> bool:
        return self.status == PENDING


class PaymentGatewayRouter:
    """Routes payment requests to gateway adapters and tracks attempts.

    Usage:
        router = PaymentGatewayRouter(session, build_gateways())
        result = await router.submit(fee_id, "fee", CardMethod(...), Decimal("1100"))
    """

    def __init__(
        self,
        session: AsyncSession,
        gateways: Mapping[GatewayCategory, GatewayAdapter],
        config: RouterConfig | None = None,
        emitter: AsyncEventEmitter | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.gateways = gateways
        self.config = config or RouterConfig()
        self.emitter = emitter
        self.clock = clock
        self.state_machine = PaymentStateMachine(session, emitter=emitter, clock=clock)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(
        self,
        target_id: UUID,
        target_type: str,
        method: PaymentMethod,
        amount: Decimal,
        details: dict[str, Any] | None = None,
        *,
        idempotency_key: str | None = None,
    ) -> SubmissionResult:
        """Submit a payment for a fee or a permit's road fee.

        Args:
            target_id: Fee or permit id.
            target_type: "fee" or "permit".
            method: Card, wallet or bank transfer details.
            amount: Amount to pay, at most the current amount due.
            details: Extra references forwarded to the gateway as metadata.
            idempotency_key: Client key; retries with the same key resume the
                recorded attempt instead of creating a new one.

        Raises:
            PaymentValidationError: Invalid request; no attempt created.
            PaymentInProgressError: Another attempt holds the fee's lock.
            TargetNotFoundError: Unknown fee or permit.
        """
        try:
            target_type = TargetType(target_type).value
        except ValueError:
            raise PaymentValidationError([f"Unknown target type: {target_type}"]) from None

        if idempotency_key:
            existing = await self._find_by_idempotency_key(idempotency_key)
            if existing is not None:
                return await self._resume(existing, method)

        fee = await self._resolve_fee(target_id, target_type)
        adapter = self.gateways.get(method.category)
        errors = self._validate_method(target_type, method, adapter)
        if errors:
            raise PaymentValidationError(errors)

        active = await self._find_active_attempt(fee.id)
        if active is not None or fee.status == "processing":
            raise PaymentInProgressError(fee.id, active.id if active else None)

        now = self.clock()
        view = view_for(fee, as_of=now, policy=self.config.late_fee_policy)
        amount = quantize_amount(amount)
        errors = self._validate_amount(fee, view.amount_payable, method, amount, adapter)
        if errors:
            raise PaymentValidationError(errors)

        fee_id = fee.id
        attempt = PaymentAttempt(
            target_type=target_type,
            target_id=target_id,
            fee_id=fee_id,
            category=method.category.value,
            payment_method=method.code,
            method_description=method.describe(),
            status="initiated",
            amount=amount,
            currency=self.config.currency,
            idempotency_key=idempotency_key,
            prior_fee_status=fee.status,
            late_fee_at_payment=view.late_fee,
            paid_before=quantize_amount(fee.paid_amount),
        )
        self.session.add(attempt)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            if idempotency_key:
                existing = await self._find_by_idempotency_key(idempotency_key)
                if existing is not None:
                    return await self._resume(existing, method)
            logger.info("Single-flight lock for fee %s taken by a concurrent submission", fee_id)
            raise PaymentInProgressError(fee_id) from None

        logger.info(
            "Created payment attempt %s for %s %s (fee %s, %s %s via %s)",
            attempt.id,
            target_type,
            target_id,
            fee_id,
            attempt.currency,
            amount,
            attempt.category,
        )
        metadata = EventMetadata.create(correlation_id=attempt.id, actor_type="resident")
        await self._emit(
            PaymentAttemptCreated(
                metadata=metadata,
                attempt_id=attempt.id,
                fee_id=fee_id,
                target_type=target_type,
                target_id=target_id,
                gateway_category=attempt.category,
                amount=amount,
                currency=attempt.currency,
            )
        )

        try:
            initiated = await adapter.initiate(
                amount,
                attempt.currency,
                fee.title or f"{fee.fee_type.replace('_', ' ')} fee",
                {
                    **(details or {}),
                    "attempt_id": str(attempt.id),
                    "fee_id": str(fee_id),
                    "target_type": target_type,
                    "target_id": str(target_id),
                },
            )
        except GatewayError as e:
            # No intent exists, so nothing can have been charged
            logger.warning("Gateway %s rejected initiate for attempt %s: %s", attempt.category, attempt.id, e)
            outcome = await self.state_machine.apply(
                attempt,
                ConfirmResult(status=FAILED, failure_reason=f"Could not start payment: {e}"),
            )
            return await self._result_from_outcome(outcome)
        except BaseException as e:
            # Still no intent; release the lock before propagating
            logger.warning(
                "Initiate for attempt %s aborted (%s); marking it failed",
                attempt.id,
                type(e).__name__,
            )
            await self.state_machine.apply(
                attempt,
                ConfirmResult(
                    status=FAILED,
                    failure_reason=f"Payment could not be started ({type(e).__name__})",
                ),
            )
            raise

        attempt.intent_id = initiated.intent_id
        attempt.redirect_url = initiated.redirect_url
        self.state_machine.validate_transition("payment_attempt", attempt.status, "processing")
        attempt.status = "processing"
        self.state_machine.validate_transition("fee", fee.status, "processing")
        fee.status = "processing"
        await self.session.commit()

        return await self._confirm(attempt, adapter, method)

    async def _resume(self, attempt: PaymentAttempt, method: PaymentMethod) -> SubmissionResult:
        """Answer a retried submission from its recorded attempt."""
        if attempt.is_terminal:
            return await self._result_from_attempt(attempt, was_duplicate=True)
        if method.category.value != attempt.category:
            raise PaymentValidationError(
                [f"Idempotency key already used for a {attempt.category} payment"]
            )
        if attempt.intent_id is None:
            # Still initiating in another request
            raise PaymentInProgressError(attempt.fee_id, attempt.id)

        logger.info(
            "Resuming attempt %s with existing intent %s",
            attempt.id,
            attempt.intent_id,
        )
        adapter = self.gateways[GatewayCategory(attempt.category)]
        return await self._confirm(attempt, adapter, method, was_duplicate=True)

    async def _confirm(
        self,
        attempt: PaymentAttempt,
        adapter: GatewayAdapter,
        method: PaymentMethod,
        was_duplicate: bool = False,
    ) -> SubmissionResult:
        try:
            result = await adapter.confirm(attempt.intent_id, method)
        except GatewayError as e:
            logger.warning(
                "Gateway error confirming attempt %s (intent %s); left processing: %s",
                attempt.id,
                attempt.intent_id,
                e,
            )
            return self._pending_result(attempt, was_duplicate=was_duplicate)

        if result.status == PENDING:
            if result.redirect_url and result.redirect_url != attempt.redirect_url:
                attempt.redirect_url = result.redirect_url
                await self.session.commit()
            logger.info(
                "Payment attempt %s pending at gateway (intent %s)",
                attempt.id,
                attempt.intent_id,
            )
            await self._emit(
                PaymentPending(
                    metadata=EventMetadata.create(correlation_id=attempt.id),
                    attempt_id=attempt.id,
                    fee_id=attempt.fee_id,
                    gateway_category=attempt.category,
                    intent_id=attempt.intent_id,
                    redirect_url=attempt.redirect_url,
                )
            )
            return self._pending_result(attempt, was_duplicate=was_duplicate)

        outcome = await self.state_machine.apply(attempt, result)
        return await self._result_from_outcome(outcome, was_duplicate=was_duplicate)

    # ------------------------------------------------------------------
    # Resolution paths
    # ------------------------------------------------------------------

    async def refresh(self, attempt_id: UUID) -> SubmissionResult:
        """Ask the gateway for the attempt's status and apply a terminal outcome."""
        attempt = await self.get_attempt(attempt_id)
        if attempt.is_terminal:
            return await self._result_from_attempt(attempt)
        if attempt.intent_id is None:
            return self._pending_result(attempt)

        adapter = self.gateways[GatewayCategory(attempt.category)]
        try:
            result = await adapter.retrieve(attempt.intent_id)
        except GatewayError as e:
            logger.warning(
                "Gateway error refreshing attempt %s (intent %s): %s",
                attempt.id,
                attempt.intent_id,
                e,
            )
            return self._pending_result(attempt)

        if result.status == PENDING:
            return self._pending_result(attempt)
        outcome = await self.state_machine.apply(attempt, result)
        return await self._result_from_outcome(outcome)

    async def handle_callback(self, callback: GatewayCallback) -> SubmissionResult:
        """Resolve a gateway webhook to its attempt and apply it.

        Raises:
            AttemptNotFoundError: No attempt carries the callback's intent id.
        """
        result = await self.session.execute(
            select(PaymentAttempt).where(
                PaymentAttempt.category == GatewayCategory(callback.category).value,
                PaymentAttempt.intent_id == callback.intent_id,
            )
        )
        attempt = result.scalar_one_or_none()
        if attempt is None:
            logger.warning(
                "Callback for unknown intent %s (%s, transaction %s)",
                callback.intent_id,
                callback.category,
                callback.gateway_transaction_id,
            )
            raise AttemptNotFoundError(callback.intent_id)

        outcome = await self.state_machine.apply(attempt, callback.to_result())
        return await self._result_from_outcome(outcome)

    async def list_stale_attempts(self, older_than: timedelta | None = None) -> list[PaymentAttempt]:
        """Active attempts created before ``now - older_than`` (oldest first)."""
        cutoff = self.clock() - (older_than or self.config.stale_after)
        result = await self.session.execute(
            select(PaymentAttempt)
            .where(
                PaymentAttempt.status.in_(ACTIVE_ATTEMPT_STATUSES),
                PaymentAttempt.created_at < cutoff,
            )
            .order_by(PaymentAttempt.created_at)
        )
        return list(result.scalars().all())

    async def refresh_stale(self, older_than: timedelta | None = None) -> list[SubmissionResult]:
        """Refresh every stale attempt; one failure does not stop the rest."""
        results: list[SubmissionResult] = []
        for attempt_id in [a.id for a in await self.list_stale_attempts(older_than)]:
            try:
                results.append(await self.refresh(attempt_id))
            except Exception:
                logger.exception("Failed to refresh stale attempt %s", attempt_id)
        return results

    async def get_attempt(self, attempt_id: UUID) -> PaymentAttempt:
        attempt = await self.session.get(PaymentAttempt, attempt_id)
        if attempt is None:
            raise AttemptNotFoundError(attempt_id)
        return attempt

    async def get_status(self, attempt_id: UUID) -> SubmissionResult:
        """Recorded status of an attempt, without contacting the gateway."""
        attempt = await self.get_attempt(attempt_id)
        if attempt.is_terminal:
            return await self._result_from_attempt(attempt)
        return self._pending_result(attempt)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _resolve_fee(self, target_id: UUID, target_type: str) -> Fee:
        if target_type == TargetType.FEE.value:
            fee = await self.session.get(Fee, target_id)
            if fee is None:
                raise TargetNotFoundError(target_type, target_id)
            return fee

        permit = await self.session.get(ConstructionPermit, target_id)
        if permit is None:
            raise TargetNotFoundError(target_type, target_id)
        if permit.status == "rejected":
            raise PaymentValidationError(["Permit was rejected"])

        result = await self.session.execute(
            select(Fee)
            .where(
                Fee.linked_permit_id == permit.id,
                Fee.fee_type == "construction_road_fee",
            )
            .order_by(Fee.created_at.desc())
            .limit(1)
        )
        fee = result.scalar_one_or_none()
        if fee is None:
            raise PaymentValidationError(["Permit has no road fee to pay"])
        return fee

    def _validate_method(
        self,
        target_type: str,
        method: PaymentMethod,
        adapter: GatewayAdapter | None,
    ) -> list[str]:
        errors: list[str] = []
        category = method.category.value
        if category not in self.config.allowed_categories(target_type):
            errors.append(f"{category} payments are not accepted for {target_type} targets")
        elif adapter is None:
            errors.append(f"No gateway configured for {category} payments")
        errors.extend(method.validate())
        return errors

    def _validate_amount(
        self,
        fee: Fee,
        amount_payable: Decimal,
        method: PaymentMethod,
        amount: Decimal,
        adapter: GatewayAdapter,
    ) -> list[str]:
        currency = self.config.currency
        if fee.status not in PAYABLE_FEE_STATUSES:
            return [f"Fee is {fee.status} and cannot be paid"]

        errors: list[str] = []
        if amount <= 0:
            errors.append("Amount must be greater than zero")
        elif amount > amount_payable:
            errors.append(f"Amount exceeds amount due ({format_amount(amount_payable, currency)})")

        minimum = adapter.minimum_amount(method)
        if amount < minimum:
            errors.append(
                f"Minimum amount for {method.describe()} is {format_amount(minimum, currency)}"
            )
        return errors

    async def _find_active_attempt(self, fee_id: UUID) -> PaymentAttempt | None:
        result = await self.session.execute(
            select(PaymentAttempt).where(
                PaymentAttempt.fee_id == fee_id,
                PaymentAttempt.status.in_(ACTIVE_ATTEMPT_STATUSES),
            )
        )
        return result.scalars().first()

    async def _find_by_idempotency_key(self, key: str) -> PaymentAttempt | None:
        result = await self.session.execute(
            select(PaymentAttempt).where(PaymentAttempt.idempotency_key == key)
        )
        return result.scalar_one_or_none()

    def _pending_result(self, attempt: PaymentAttempt, was_duplicate: bool = False) -> SubmissionResult:
        return SubmissionResult(
            attempt_id=attempt.id,
            fee_id=attempt.fee_id,
            status=PENDING,
            attempt_status=attempt.status,
            intent_id=attempt.intent_id,
            redirect_url=attempt.redirect_url,
            fee_status="processing" if attempt.status == "processing" else None,
            was_duplicate=was_duplicate,
        )

    async def _result_from_outcome(
        self,
        outcome: ApplyOutcome,
        was_duplicate: bool = False,
    ) -> SubmissionResult:
        if outcome.outcome is OutcomeKind.DUPLICATE:
            return await self._result_from_attempt(outcome.attempt, was_duplicate=True)

        attempt = outcome.attempt
        status = {
            OutcomeKind.APPLIED: "succeeded",
            OutcomeKind.FAILED: "failed",
            OutcomeKind.ALREADY_SATISFIED: "already_satisfied",
        }[outcome.outcome]
        return SubmissionResult(
            attempt_id=attempt.id,
            fee_id=attempt.fee_id,
            status=status,
            attempt_status=attempt.status,
            intent_id=attempt.intent_id,
            redirect_url=attempt.redirect_url,
            gateway_transaction_id=attempt.gateway_transaction_id,
            failure_reason=attempt.failure_reason,
            fee_status=outcome.fee_status,
            receipt_id=outcome.receipt.id if outcome.receipt else None,
            receipt_number=outcome.receipt.receipt_number if outcome.receipt else None,
            permit_activated=outcome.permit_activated,
            was_duplicate=was_duplicate,
        )

    async def _result_from_attempt(
        self,
        attempt: PaymentAttempt,
        was_duplicate: bool = False,
    ) -> SubmissionResult:
        """Rebuild the result of an already-terminal attempt."""
        if attempt.status == "failed":
            status = "failed"
        elif attempt.applied:
            status = "succeeded"
        else:
            status = "already_satisfied"

        receipt = await self.state_machine.receipts.get_receipt_for_attempt(attempt.id)
        fee = await self.session.get(Fee, attempt.fee_id)
        return SubmissionResult(
            attempt_id=attempt.id,
            fee_id=attempt.fee_id,
            status=status,
            attempt_status=attempt.status,
            intent_id=attempt.intent_id,
            redirect_url=attempt.redirect_url,
            gateway_transaction_id=attempt.gateway_transaction_id,
            failure_reason=attempt.failure_reason,
            fee_status=fee.status if fee else None,
            receipt_id=receipt.id if receipt else None,
            receipt_number=receipt.receipt_number if receipt else None,
            was_duplicate=was_duplicate,
        )

    async def _emit(self, event: Any) -> None:
        if self.emitter is not None:
            await self.emitter.emit(event)
