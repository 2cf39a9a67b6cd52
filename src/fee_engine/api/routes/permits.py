"""Construction permit API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from fee_engine.api.dependencies import Permits
from fee_engine.api.schemas import (
    ErrorResponse,
    FeeResponse,
    PermitStatisticsResponse,
    RoadFeeCreate,
    WorkerPassCreate,
    WorkerPassResponse,
)

router = APIRouter(prefix="/permits", tags=["permits"])


@router.get("/statistics", response_model=PermitStatisticsResponse)
async def permit_statistics(
    permits: Permits,
    household_id: UUID | None = None,
) -> PermitStatisticsResponse:
    """Permit counts by status and road fee totals."""
    return PermitStatisticsResponse.model_validate(await permits.get_statistics(household_id))


@router.post(
    "/{permit_id}/road-fee",
    response_model=FeeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def create_road_fee(
    permits: Permits,
    permit_id: Annotated[UUID, Path()],
    payload: RoadFeeCreate,
) -> FeeResponse:
    """Bill the road fee for an approved permit (due in seven days)."""
    fee = await permits.create_road_fee(permit_id, amount=payload.amount, as_of=payload.as_of)
    return FeeResponse.model_validate(fee)


@router.post(
    "/{permit_id}/worker-passes",
    response_model=WorkerPassResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def issue_worker_pass(
    permits: Permits,
    permit_id: Annotated[UUID, Path()],
    payload: WorkerPassCreate,
) -> WorkerPassResponse:
    """Issue a worker pass; the permit must be approved or in progress."""
    worker_pass = await permits.issue_worker_pass(
        permit_id,
        payload.worker_name,
        payload.valid_from,
        payload.valid_until,
    )
    return WorkerPassResponse.model_validate(worker_pass)
