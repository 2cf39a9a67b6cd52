"""Tests for receipt issuance and rendering."""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from fee_engine.errors import ReceiptNotIssuableError
from fee_engine.models import Receipt
from fee_engine.services.receipt_generator import (
    ReceiptGenerator,
    receipt_number_for,
    render_receipt_text,
)

from .conftest import count_rows, fixed_clock


@pytest.fixture
def generator(session):
    return ReceiptGenerator(session, clock=fixed_clock)


@pytest.fixture
def succeeded_attempt(session, make_fee, make_attempt):
    """Factory for an attempt resolved as succeeded and applied."""

    async def _make(amount="1100.00", late_fee="100.00"):
        fee = await make_fee("1000.00")
        attempt = await make_attempt(fee, amount, late_fee=late_fee)
        attempt.status = "succeeded"
        attempt.applied = True
        attempt.gateway_transaction_id = "PI_CARDTXN0001"
        await session.commit()
        return fee, attempt

    return _make


class TestReceiptNumber:
    """Test receipt numbering."""

    def test_format(self):
        attempt_id = UUID("1a2b3c4d-0000-0000-0000-000000000000")
        issued = datetime(2024, 3, 15, tzinfo=timezone.utc)

        assert receipt_number_for(attempt_id, issued) == "RCPT-20240315-1A2B3C4D"


class TestReceiptGenerator:
    """Test receipt issuance."""

    async def test_issue_uses_payment_snapshot(self, generator, succeeded_attempt):
        """Base and late fee come from the ledger frozen on the attempt."""
        _, attempt = await succeeded_attempt()

        receipt = await generator.issue(attempt)

        assert receipt.base_amount == Decimal("1000.00")
        assert receipt.late_fee_amount == Decimal("100.00")
        assert receipt.total_amount == Decimal("1100.00")
        assert receipt.currency == "PHP"
        assert receipt.payment_method == "card payment"
        assert receipt.gateway_transaction_id == "PI_CARDTXN0001"
        assert receipt.receipt_number == receipt_number_for(attempt.id, fixed_clock())

    async def test_issue_is_idempotent(self, session, generator, succeeded_attempt):
        _, attempt = await succeeded_attempt()

        first = await generator.issue(attempt)
        second = await generator.issue(attempt)

        assert second.id == first.id
        assert await count_rows(session, Receipt) == 1

    async def test_failed_attempt_gets_no_receipt(self, session, generator, make_fee, make_attempt):
        fee = await make_fee()
        attempt = await make_attempt(fee, "100.00")
        attempt.status = "failed"
        await session.commit()

        with pytest.raises(ReceiptNotIssuableError):
            await generator.issue(attempt)

    async def test_unapplied_success_gets_no_receipt(self, session, generator, succeeded_attempt):
        """Money for an already-settled fee is not receipted."""
        _, attempt = await succeeded_attempt()
        attempt.applied = False

        with pytest.raises(ReceiptNotIssuableError) as exc_info:
            await generator.issue(attempt)

        assert exc_info.value.applied is False

    async def test_list_receipts_for_fee(self, session, generator, succeeded_attempt):
        fee, attempt = await succeeded_attempt()
        await generator.issue(attempt)
        await session.commit()

        receipts = await generator.list_receipts_for_fee(fee.id)

        assert [r.payment_attempt_id for r in receipts] == [attempt.id]


class TestRenderReceiptText:
    """Test shareable receipt text."""

    async def test_includes_breakdown(self, generator, succeeded_attempt):
        fee, attempt = await succeeded_attempt()
        receipt = await generator.issue(attempt)

        text = render_receipt_text(receipt, fee)

        assert text.splitlines()[0] == "Payment Receipt"
        assert f"Receipt No: {receipt.receipt_number}" in text
        assert "Fee: Monthly association dues" in text
        assert "Base Amount: PHP 1,000.00" in text
        assert "Late Fee: PHP 100.00" in text
        assert "Total Paid: PHP 1,100.00" in text
        assert "Date: March 15, 2024 09:30 AM" in text
        assert text.endswith("Status: Paid")

    async def test_omits_zero_late_fee(self, generator, succeeded_attempt):
        _, attempt = await succeeded_attempt(amount="1000.00", late_fee="0")
        receipt = await generator.issue(attempt)

        text = render_receipt_text(receipt)

        assert "Late Fee" not in text
        assert "Fee:" not in text
