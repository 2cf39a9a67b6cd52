"""Payment API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Header, HTTPException, Path, status

from fee_engine.api.dependencies import DbSession, Router
from fee_engine.api.schemas import ErrorResponse, PaymentCreate, PaymentResponse, ReceiptResponse
from fee_engine.models import Fee
from fee_engine.services.receipt_generator import ReceiptGenerator, render_receipt_text

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post(
    "",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def submit_payment(
    payment_router: Router,
    payload: PaymentCreate,
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
) -> PaymentResponse:
    """Submit a payment for a fee or a permit's road fee.

    Card payments resolve immediately. Wallet and bank transfer payments
    return ``pending`` with a ``redirect_url``; the outcome arrives by webhook.
    """
    result = await payment_router.submit(
        payload.target_id,
        payload.target_type.value,
        payload.method.to_method(),
        payload.amount,
        payload.metadata,
        idempotency_key=idempotency_key,
    )
    return PaymentResponse.model_validate(result)


@router.get(
    "/{attempt_id}",
    response_model=PaymentResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payment(
    payment_router: Router,
    attempt_id: Annotated[UUID, Path()],
) -> PaymentResponse:
    """Recorded status of a payment attempt."""
    return PaymentResponse.model_validate(await payment_router.get_status(attempt_id))


@router.post(
    "/{attempt_id}/refresh",
    response_model=PaymentResponse,
    responses={404: {"model": ErrorResponse}},
)
async def refresh_payment(
    payment_router: Router,
    attempt_id: Annotated[UUID, Path()],
) -> PaymentResponse:
    """Ask the gateway for the latest status of a pending payment."""
    return PaymentResponse.model_validate(await payment_router.refresh(attempt_id))


@router.get(
    "/{attempt_id}/receipt",
    response_model=ReceiptResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_receipt(
    db: DbSession,
    attempt_id: Annotated[UUID, Path()],
) -> ReceiptResponse:
    """Receipt for a successful payment, with shareable text."""
    receipt = await ReceiptGenerator(db).get_receipt_for_attempt(attempt_id)
    if receipt is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Receipt not found",
        )
    fee = await db.get(Fee, receipt.fee_id)
    response = ReceiptResponse.model_validate(receipt)
    response.share_text = render_receipt_text(receipt, fee)
    return response
