"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from fee_engine.gateways.methods import (
    BankTransferMethod,
    CardMethod,
    PaymentMethod,
    WalletMethod,
)
from fee_engine.models.enums import OfflineMethod, TargetType, WalletBrand

# ============================================================================
# Fee schemas
# ============================================================================


class LedgerResponse(BaseModel):
    """Live ledger evaluation of a fee."""

    model_config = ConfigDict(from_attributes=True)

    days_overdue: int
    months_overdue: int
    late_fee: Decimal
    total_due: Decimal
    amount_payable: Decimal
    is_overdue: bool
    display_status: str


class FeeResponse(BaseModel):
    """Schema for fee response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    household_id: UUID | None = None
    title: str
    fee_type: str
    amount: Decimal
    due_date: date
    status: str
    paid_amount: Decimal
    paid_at: datetime | None = None
    payment_method: str | None = None
    linked_permit_id: UUID | None = None
    waiver_reason: str | None = None
    created_at: datetime


class FeeDetailResponse(FeeResponse):
    """Fee with its ledger view."""

    ledger: LedgerResponse


class FeeListResponse(BaseModel):
    """Schema for listing fees."""

    items: list[FeeDetailResponse]
    total: int


class FeeStatisticsResponse(BaseModel):
    """Aggregate fee figures."""

    model_config = ConfigDict(from_attributes=True)

    total_fees: int
    counts_by_status: dict[str, int]
    total_amount: Decimal
    total_paid: Decimal
    total_late_fees: Decimal
    total_outstanding: Decimal
    outstanding_by_type: dict[str, Decimal]
    overdue_count: int


class WaiveRequest(BaseModel):
    """Schema for waiving a fee."""

    reason: str


class RecordPaymentRequest(BaseModel):
    """Schema for recording a payment collected at the office."""

    amount: Decimal = Field(gt=0)
    method: OfflineMethod
    paid_on: date | None = None
    reference: str | None = Field(default=None, max_length=100)


# ============================================================================
# Payment schemas
# ============================================================================


class CardDetails(BaseModel):
    """Card payment details."""

    type: Literal["card"] = "card"
    card_number: str
    exp_month: int
    exp_year: int
    cvc: str
    cardholder_name: str
    postal_code: str | None = None

    def to_method(self) -> PaymentMethod:
        return CardMethod(
            card_number=self.card_number,
            exp_month=self.exp_month,
            exp_year=self.exp_year,
            cvc=self.cvc,
            cardholder_name=self.cardholder_name,
            postal_code=self.postal_code,
        )


class WalletDetails(BaseModel):
    """E-wallet payment details."""

    type: Literal["wallet"] = "wallet"
    wallet: WalletBrand
    phone_number: str | None = None
    email: str | None = None

    def to_method(self) -> PaymentMethod:
        return WalletMethod(wallet=self.wallet, phone_number=self.phone_number, email=self.email)


class BankTransferDetails(BaseModel):
    """Online bank transfer details."""

    type: Literal["bank_transfer"] = "bank_transfer"
    bank_code: str
    account_name: str | None = None

    def to_method(self) -> PaymentMethod:
        return BankTransferMethod(bank_code=self.bank_code, account_name=self.account_name)


MethodDetails = Annotated[
    Union[CardDetails, WalletDetails, BankTransferDetails],
    Field(discriminator="type"),
]


class PaymentCreate(BaseModel):
    """Schema for submitting a payment."""

    target_id: UUID
    target_type: TargetType = TargetType.FEE
    amount: Decimal
    method: MethodDetails
    metadata: dict[str, str] | None = None


class PaymentResponse(BaseModel):
    """Outcome of a submission, refresh or status lookup."""

    model_config = ConfigDict(from_attributes=True)

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


class ReceiptResponse(BaseModel):
    """Schema for receipt response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    receipt_number: str
    payment_attempt_id: UUID
    fee_id: UUID
    base_amount: Decimal
    late_fee_amount: Decimal
    total_amount: Decimal
    currency: str
    payment_method: str
    gateway_transaction_id: str | None = None
    receipt_url: str | None = None
    issued_at: datetime
    share_text: str = ""


class WebhookAck(BaseModel):
    """Acknowledgement returned to the gateway."""

    received: bool = True
    intent_id: str


# ============================================================================
# Permit schemas
# ============================================================================


class RoadFeeCreate(BaseModel):
    """Schema for billing a permit's road fee."""

    amount: Decimal | None = None
    as_of: date | None = None


class WorkerPassCreate(BaseModel):
    """Schema for issuing a worker pass."""

    worker_name: str
    valid_from: date
    valid_until: date


class WorkerPassResponse(BaseModel):
    """Schema for worker pass response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    permit_id: UUID
    worker_name: str
    valid_from: date
    valid_until: date
    status: str


class PermitStatisticsResponse(BaseModel):
    """Permit counts and road fee totals."""

    model_config = ConfigDict(from_attributes=True)

    total_permits: int
    counts_by_status: dict[str, int]
    total_road_fees: Decimal
    paid_road_fees: Decimal
    unpaid_road_fees: Decimal


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
