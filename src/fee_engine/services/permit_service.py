"""Construction permit operations around road fee payment."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fee_engine.calculators.fee_ledger import ZERO, quantize_amount
from fee_engine.errors import TargetNotFoundError, ValidationError, WorkerPassNotAllowedError
from fee_engine.models import ConstructionPermit, Fee, WorkerPass
from fee_engine.models.base import utcnow
from fee_engine.models.enums import FeeStatus, FeeType, PermitStatus, WorkerPassStatus
from fee_engine.services.state_machine import PaymentStateMachine

logger = logging.getLogger(__name__)

ROAD_FEE_DUE_DAYS = 7


@dataclass(frozen=True)
class PermitStatistics:
    """Permit counts and road fee totals."""

    total_permits: int = 0
    counts_by_status: dict[str, int] = field(default_factory=dict)
    total_road_fees: Decimal = ZERO
    paid_road_fees: Decimal = ZERO

    @property
    def unpaid_road_fees(self) -> Decimal:
        return self.total_road_fees - self.paid_road_fees


class PermitService:
    """Creates road fees for approved permits and gates worker passes."""

    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.clock = clock

    async def get_permit(self, permit_id: UUID) -> ConstructionPermit:
        permit = await self.session.get(ConstructionPermit, permit_id)
        if permit is None:
            raise TargetNotFoundError("permit", permit_id)
        return permit

    async def get_road_fee(self, permit_id: UUID) -> Fee | None:
        result = await self.session.execute(
            select(Fee).where(
                Fee.linked_permit_id == permit_id,
                Fee.fee_type == FeeType.CONSTRUCTION_ROAD_FEE.value,
            )
        )
        return result.scalars().first()

    async def create_road_fee(
        self,
        permit_id: UUID,
        amount: Decimal | None = None,
        as_of: date | datetime | None = None,
    ) -> Fee:
        """Create the road fee billed when a permit is approved.

        The fee is due seven days after ``as_of``. ``amount`` defaults to the
        permit's ``road_fee_amount``.
        """
        permit = await self.get_permit(permit_id)
        if permit.status != PermitStatus.APPROVED.value:
            raise ValidationError(
                [f"Road fee can only be billed for approved permits (permit is {permit.status})"]
            )
        if await self.get_road_fee(permit_id) is not None:
            raise ValidationError(["Permit already has a road fee"])

        amount = amount if amount is not None else permit.road_fee_amount
        if amount is None or amount <= 0:
            raise ValidationError(["Road fee amount must be greater than zero"])
        amount = quantize_amount(amount)

        as_of = as_of or self.clock()
        start = as_of.date() if isinstance(as_of, datetime) else as_of
        fee = Fee(
            household_id=permit.household_id,
            title=f"Construction road fee - {permit.contractor_name}".rstrip(" -"),
            fee_type=FeeType.CONSTRUCTION_ROAD_FEE.value,
            amount=amount,
            due_date=start + timedelta(days=ROAD_FEE_DUE_DAYS),
            status=FeeStatus.UNPAID.value,
            paid_amount=ZERO,
            linked_permit_id=permit.id,
        )
        permit.road_fee_amount = amount
        self.session.add(fee)
        await self.session.commit()

        logger.info("Created road fee %s for permit %s (%s)", fee.id, permit_id, amount)
        return fee

    async def issue_worker_pass(
        self,
        permit_id: UUID,
        worker_name: str,
        valid_from: date,
        valid_until: date,
    ) -> WorkerPass:
        """Issue a worker gate pass; the permit must be approved or in progress."""
        permit = await self.get_permit(permit_id)
        if not PaymentStateMachine.can_issue_worker_pass(permit.status):
            raise WorkerPassNotAllowedError(permit_id, permit.status)

        errors = []
        if not worker_name or not worker_name.strip():
            errors.append("Worker name is required")
        if valid_until < valid_from:
            errors.append("valid_until must not be before valid_from")
        if errors:
            raise ValidationError(errors)

        worker_pass = WorkerPass(
            permit_id=permit_id,
            worker_name=worker_name.strip(),
            valid_from=valid_from,
            valid_until=valid_until,
            status=WorkerPassStatus.SCHEDULED.value,
        )
        self.session.add(worker_pass)
        await self.session.commit()
        return worker_pass

    async def list_worker_passes(self, permit_id: UUID) -> list[WorkerPass]:
        result = await self.session.execute(
            select(WorkerPass)
            .where(WorkerPass.permit_id == permit_id)
            .order_by(WorkerPass.valid_from)
        )
        return list(result.scalars().all())

    async def get_statistics(self, household_id: UUID | None = None) -> PermitStatistics:
        stmt = select(ConstructionPermit)
        if household_id is not None:
            stmt = stmt.where(ConstructionPermit.household_id == household_id)
        permits = (await self.session.execute(stmt)).scalars().all()

        counts = Counter(p.status for p in permits)
        total = sum((Decimal(p.road_fee_amount) for p in permits if p.road_fee_amount), ZERO)
        paid = sum(
            (Decimal(p.road_fee_amount) for p in permits if p.road_fee_amount and p.road_fee_paid),
            ZERO,
        )
        return PermitStatistics(
            total_permits=len(permits),
            counts_by_status=dict(counts),
            total_road_fees=quantize_amount(total),
            paid_road_fees=quantize_amount(paid),
        )
