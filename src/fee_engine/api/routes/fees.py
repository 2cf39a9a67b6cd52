"""Fee API endpoints."""

from datetime import date
from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, Query, status

from fee_engine.api.dependencies import Fees
from fee_engine.api.schemas import (
    ErrorResponse,
    FeeDetailResponse,
    FeeListResponse,
    FeeResponse,
    FeeStatisticsResponse,
    LedgerResponse,
    PaymentResponse,
    RecordPaymentRequest,
    WaiveRequest,
)
from fee_engine.services.fee_service import FeeFilter, FeeView

router = APIRouter(prefix="/fees", tags=["fees"])


def _detail(view: FeeView) -> FeeDetailResponse:
    base = FeeResponse.model_validate(view.fee)
    return FeeDetailResponse(
        **base.model_dump(),
        ledger=LedgerResponse.model_validate(view.ledger),
    )


@router.get(
    "",
    response_model=FeeListResponse,
    responses={422: {"model": ErrorResponse}},
)
async def list_fees(
    fees: Fees,
    household_id: UUID | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    fee_type: str | None = None,
    due_from: date | None = None,
    due_to: date | None = None,
    sort_by: Literal["due_date", "amount", "created_at"] = "due_date",
    order: Literal["asc", "desc"] = "asc",
) -> FeeListResponse:
    """List fees with live ledger amounts; ``status=overdue`` uses the live status."""
    try:
        fee_filter = FeeFilter(
            household_id=household_id,
            status=status_filter,
            fee_type=fee_type,
            due_from=due_from,
            due_to=due_to,
            sort_by=sort_by,
            descending=order == "desc",
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    views = await fees.list_fees(fee_filter)
    return FeeListResponse(items=[_detail(v) for v in views], total=len(views))


@router.get("/statistics", response_model=FeeStatisticsResponse)
async def fee_statistics(
    fees: Fees,
    household_id: UUID | None = None,
) -> FeeStatisticsResponse:
    """Counts and totals by status, including accrued late fees."""
    stats = await fees.get_statistics(household_id=household_id)
    return FeeStatisticsResponse.model_validate(stats)


@router.get(
    "/{fee_id}",
    response_model=FeeDetailResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_fee(
    fees: Fees,
    fee_id: Annotated[UUID, Path()],
) -> FeeDetailResponse:
    """Get a fee with its current amount due."""
    return _detail(await fees.get_fee_view(fee_id))


@router.post(
    "/{fee_id}/waive",
    response_model=FeeResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def waive_fee(
    fees: Fees,
    fee_id: Annotated[UUID, Path()],
    payload: WaiveRequest,
) -> FeeResponse:
    """Waive a fee. Not allowed while a payment is in progress."""
    fee = await fees.waive_fee(fee_id, payload.reason)
    return FeeResponse.model_validate(fee)


@router.post(
    "/{fee_id}/payments",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def record_payment(
    fees: Fees,
    fee_id: Annotated[UUID, Path()],
    payload: RecordPaymentRequest,
) -> PaymentResponse:
    """Record a cash, check or deposit payment taken at the office."""
    outcome = await fees.record_payment(
        fee_id,
        payload.amount,
        payload.method.value,
        paid_on=payload.paid_on,
        reference=payload.reference,
    )
    attempt = outcome.attempt
    return PaymentResponse(
        attempt_id=attempt.id,
        fee_id=attempt.fee_id,
        status=attempt.status,
        attempt_status=attempt.status,
        gateway_transaction_id=attempt.gateway_transaction_id,
        fee_status=outcome.fee_status,
        receipt_id=outcome.receipt.id if outcome.receipt else None,
        receipt_number=outcome.receipt.receipt_number if outcome.receipt else None,
        permit_activated=outcome.permit_activated,
    )
