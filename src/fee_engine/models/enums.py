"""Status and category values shared by models, services and gateways."""

from __future__ import annotations

from enum import Enum


class FeeType(str, Enum):
    """Kinds of billable obligations."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"
    SPECIAL = "special"
    LATE_FEE = "late_fee"
    CONSTRUCTION_ROAD_FEE = "construction_road_fee"


class FeeStatus(str, Enum):
    """Fee payment status values."""

    UNPAID = "unpaid"
    PROCESSING = "processing"
    PAID = "paid"
    OVERDUE = "overdue"
    PARTIAL = "partial"
    WAIVED = "waived"
    CANCELLED = "cancelled"


class PermitStatus(str, Enum):
    """Construction permit status values."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class WorkerPassStatus(str, Enum):
    """Worker pass status values."""

    SCHEDULED = "scheduled"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AttemptStatus(str, Enum):
    """Payment attempt status values."""

    INITIATED = "initiated"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class TargetType(str, Enum):
    """Entity a payment attempt is submitted against."""

    FEE = "fee"
    PERMIT = "permit"


class GatewayCategory(str, Enum):
    """Payment processor categories, one adapter each."""

    CARD = "card"
    WALLET = "wallet"
    BANK_TRANSFER = "bank_transfer"


class WalletBrand(str, Enum):
    """E-wallets routed through the wallet gateway."""

    GCASH = "gcash"
    GRAB_PAY = "grab_pay"
    MAYA = "paymaya"


# Attempt statuses holding the single-flight lock
ACTIVE_ATTEMPT_STATUSES = (AttemptStatus.INITIATED.value, AttemptStatus.PROCESSING.value)

# Fee statuses that accept a new payment attempt
PAYABLE_FEE_STATUSES = frozenset(
    {FeeStatus.UNPAID.value, FeeStatus.OVERDUE.value, FeeStatus.PARTIAL.value}
)


class OfflineMethod(str, Enum):
    """Payments collected at the association office and recorded by an administrator."""

    CASH = "cash"
    CHECK = "check"
    BANK_DEPOSIT = "bank_deposit"


# Attempt category for payments recorded without a gateway
OFFLINE_CATEGORY = "offline"
