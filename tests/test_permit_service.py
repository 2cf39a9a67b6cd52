"""Tests for road fee billing and worker pass gating."""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from fee_engine.errors import TargetNotFoundError, ValidationError, WorkerPassNotAllowedError
from fee_engine.services import PermitService

from .conftest import TODAY, card, fixed_clock


@pytest.fixture
def permits(session):
    return PermitService(session, clock=fixed_clock)


class TestCreateRoadFee:
    """Test road fee creation for approved permits."""

    async def test_creates_fee_due_in_seven_days(self, permits, make_permit):
        permit, _ = await make_permit(road_fee_amount="750.00", with_road_fee=False)

        fee = await permits.create_road_fee(permit.id)

        assert fee.fee_type == "construction_road_fee"
        assert fee.linked_permit_id == permit.id
        assert fee.household_id == permit.household_id
        assert fee.amount == Decimal("750.00")
        assert fee.status == "unpaid"
        assert fee.due_date == TODAY + timedelta(days=7)
        assert fee.title == "Construction road fee - BuildRight Co."
        assert fee.is_road_fee

    async def test_amount_override(self, permits, make_permit):
        permit, _ = await make_permit(with_road_fee=False)

        fee = await permits.create_road_fee(permit.id, amount=Decimal("999.995"), as_of=date(2024, 1, 1))

        assert fee.amount == Decimal("1000.00")
        assert fee.due_date == date(2024, 1, 8)
        assert permit.road_fee_amount == Decimal("1000.00")

    async def test_only_one_road_fee(self, permits, make_permit):
        permit, _ = await make_permit()

        with pytest.raises(ValidationError, match="already has a road fee"):
            await permits.create_road_fee(permit.id)

    async def test_pending_permit(self, permits, make_permit):
        permit, _ = await make_permit(status="pending", with_road_fee=False)

        with pytest.raises(ValidationError, match="approved"):
            await permits.create_road_fee(permit.id)

    async def test_missing_amount(self, permits, make_permit):
        permit, _ = await make_permit(road_fee_amount=None)

        with pytest.raises(ValidationError):
            await permits.create_road_fee(permit.id)

    async def test_unknown_permit(self, permits):
        with pytest.raises(TargetNotFoundError):
            await permits.create_road_fee(uuid4())


class TestWorkerPasses:
    """Test worker pass gating on permit status."""

    async def test_issue_for_approved_permit(self, permits, make_permit):
        permit, _ = await make_permit()

        worker_pass = await permits.issue_worker_pass(
            permit.id, " Pedro Santos ", TODAY, TODAY + timedelta(days=30)
        )

        assert worker_pass.status == "scheduled"
        assert worker_pass.worker_name == "Pedro Santos"
        assert [p.id for p in await permits.list_worker_passes(permit.id)] == [worker_pass.id]

    @pytest.mark.parametrize("status", ["pending", "rejected", "completed"])
    async def test_refused_for_other_statuses(self, permits, make_permit, status):
        permit, _ = await make_permit(status=status)

        with pytest.raises(WorkerPassNotAllowedError) as exc_info:
            await permits.issue_worker_pass(permit.id, "Pedro Santos", TODAY, TODAY)

        assert exc_info.value.permit_status == status

    async def test_invalid_dates(self, permits, make_permit):
        permit, _ = await make_permit()

        with pytest.raises(ValidationError):
            await permits.issue_worker_pass(permit.id, "", TODAY, TODAY - timedelta(days=1))

    async def test_allowed_after_road_fee_paid(self, permits, router, make_permit):
        """Paying the road fee moves the permit to in_progress, which still allows passes."""
        permit, _ = await make_permit()
        await router.submit(permit.id, "permit", card(), Decimal("500.00"))

        worker_pass = await permits.issue_worker_pass(permit.id, "Pedro Santos", TODAY, TODAY)

        assert worker_pass.permit_id == permit.id


class TestPermitStatistics:
    """Test permit aggregates."""

    async def test_statistics(self, permits, router, make_permit):
        paid_permit, _ = await make_permit(road_fee_amount="500.00")
        await make_permit(road_fee_amount="300.00")
        await make_permit(status="pending", road_fee_amount=None)
        await router.submit(paid_permit.id, "permit", card(), Decimal("500.00"))

        stats = await permits.get_statistics()

        assert stats.total_permits == 3
        assert stats.counts_by_status == {"in_progress": 1, "approved": 1, "pending": 1}
        assert stats.total_road_fees == Decimal("800.00")
        assert stats.paid_road_fees == Decimal("500.00")
        assert stats.unpaid_road_fees == Decimal("300.00")
