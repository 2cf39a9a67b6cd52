"""Receipt generation for applied payments.

A receipt is derived from the ledger snapshot frozen on the attempt at
submission time, never from a late fee recomputed at issue time.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fee_engine.calculators.fee_ledger import format_amount, split_payment
from fee_engine.errors import ReceiptNotIssuableError
from fee_engine.models import Fee, PaymentAttempt, Receipt
from fee_engine.models.base import utcnow

logger = logging.getLogger(__name__)


def receipt_number_for(attempt_id: UUID, issued_at: datetime) -> str:
    """Deterministic receipt number, e.g. ``RCPT-20240315-1A2B3C4D``."""
    return f"RCPT-{issued_at:%Y%m%d}-{attempt_id.hex[:8].upper()}"


class ReceiptGenerator:
    """Issues exactly one receipt per applied, succeeded payment attempt.

    ``issue`` only adds and flushes; the caller owns the transaction so the
    receipt commits together with the fee update it documents.
    """

    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.clock = clock

    async def issue(self, attempt: PaymentAttempt) -> Receipt:
        """Issue the receipt for an attempt, or return the existing one."""
        if attempt.status != "succeeded" or not attempt.applied:
            raise ReceiptNotIssuableError(attempt.id, attempt.status, attempt.applied)

        existing = await self.get_receipt_for_attempt(attempt.id)
        if existing is not None:
            return existing

        split = split_payment(attempt.amount, attempt.late_fee_at_payment, attempt.paid_before)
        issued_at = self.clock()
        receipt = Receipt(
            receipt_number=receipt_number_for(attempt.id, issued_at),
            payment_attempt_id=attempt.id,
            fee_id=attempt.fee_id,
            base_amount=split.base,
            late_fee_amount=split.late_fee,
            total_amount=split.total,
            currency=attempt.currency,
            payment_method=attempt.method_description or attempt.payment_method,
            gateway_transaction_id=attempt.gateway_transaction_id,
            receipt_url=attempt.receipt_url,
            issued_at=issued_at,
        )
        self.session.add(receipt)
        await self.session.flush()

        logger.info(
            "Issued receipt %s for attempt %s (transaction %s)",
            receipt.receipt_number,
            attempt.id,
            attempt.gateway_transaction_id,
        )
        return receipt

    async def get_receipt_for_attempt(self, attempt_id: UUID) -> Receipt | None:
        result = await self.session.execute(
            select(Receipt).where(Receipt.payment_attempt_id == attempt_id)
        )
        return result.scalar_one_or_none()

    async def list_receipts_for_fee(self, fee_id: UUID) -> list[Receipt]:
        result = await self.session.execute(
            select(Receipt).where(Receipt.fee_id == fee_id).order_by(Receipt.issued_at)
        )
        return list(result.scalars().all())


def render_receipt_text(receipt: Receipt, fee: Fee | None = None) -> str:
    """Plain-text receipt for sharing (messaging apps, email body)."""
    lines = [
        "Payment Receipt",
        f"Receipt No: {receipt.receipt_number}",
        f"Transaction ID: {receipt.gateway_transaction_id or 'N/A'}",
    ]
    if fee is not None:
        lines.append(f"Fee: {fee.title or fee.fee_type}")
    lines.append(f"Base Amount: {format_amount(receipt.base_amount, receipt.currency)}")
    if receipt.late_fee_amount > 0:
        lines.append(f"Late Fee: {format_amount(receipt.late_fee_amount, receipt.currency)}")
    lines.extend(
        [
            f"Total Paid: {format_amount(receipt.total_amount, receipt.currency)}",
            f"Payment Method: {receipt.payment_method}",
            f"Date: {receipt.issued_at:%B %d, %Y %I:%M %p}",
            "Status: Paid",
        ]
    )
    return "\n".join(lines)
