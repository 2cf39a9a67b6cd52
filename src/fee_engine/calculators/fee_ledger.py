"""Late fee accrual and amount-due computation.

Everything in this module is a pure function of its arguments: no database
access, no clock reads unless ``as_of`` is omitted. It runs on every read
that displays or validates an amount.

Formula (defaults of ``LateFeePolicy``):

    days_overdue   = max(0, as_of - due_date)          (0 once paid)
    months_overdue = days_overdue // 30 + 1            (0 when not overdue)
    late_fee       = max(amount * 0.02 * months_overdue, 100)
    total_due      = max(0, amount + late_fee - paid_amount)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
ZERO = Decimal("0")

# Statuses for which a fee can never be overdue
_SETTLED_STATUSES = frozenset({"paid", "cancelled", "waived"})

# Statuses with nothing left to collect regardless of the ledger
_NOT_COLLECTABLE = frozenset({"waived", "cancelled"})


def quantize_amount(value: Decimal | int | str) -> Decimal:
    """Round to two fraction digits (half-up)."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(value: Decimal, currency: str = "PHP") -> str:
    """Render an amount for display, e.g. ``PHP 1,100.00``."""
    return f"{currency} {quantize_amount(value):,.2f}"


@dataclass(frozen=True)
class LateFeePolicy:
    """Penalty accrual parameters.

    Attributes:
        monthly_rate: Fraction of the base amount charged per started period.
        minimum: Floor applied to any non-zero late fee.
        period_days: Length of one penalty period in days.
    """

    monthly_rate: Decimal = Decimal("0.02")
    minimum: Decimal = Decimal("100")
    period_days: int = 30

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.monthly_rate < 0:
            raise ValueError("monthly_rate cannot be negative")
        if self.minimum < 0:
            raise ValueError("minimum cannot be negative")
        if self.period_days < 1:
            raise ValueError("period_days must be at least 1")


DEFAULT_POLICY = LateFeePolicy()


@dataclass(frozen=True)
class LedgerView:
    """Derived amounts for a fee at a point in time."""

    amount: Decimal
    paid_amount: Decimal
    days_overdue: int
    months_overdue: int
    late_fee: Decimal
    total_due: Decimal
    is_overdue: bool
    status: str

    @property
    def amount_payable(self) -> Decimal:
        """What a new payment may settle; zero for waived/cancelled fees."""
        if self.status in _NOT_COLLECTABLE:
            return ZERO
        return self.total_due

    @property
    def display_status(self) -> str:
        """Status shown to residents: unpaid fees past due read as overdue."""
        if self.is_overdue and self.status in ("unpaid", "overdue"):
            return "overdue"
        return self.status


@dataclass(frozen=True)
class PaymentSplit:
    """Allocation of one payment between penalty and base amount."""

    base: Decimal
    late_fee: Decimal
    total: Decimal


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def days_overdue(due_date: date, status: str, as_of: date | datetime) -> int:
    """Whole days past the due date; zero for paid fees."""
    if status == "paid":
        return 0
    return max(0, (_as_date(as_of) - due_date).days)


def months_overdue(days: int, policy: LateFeePolicy = DEFAULT_POLICY) -> int:
    """Started penalty periods for a number of overdue days."""
    if days <= 0:
        return 0
    return days // policy.period_days + 1


def late_fee(
    amount: Decimal,
    days: int,
    policy: LateFeePolicy = DEFAULT_POLICY,
) -> Decimal:
    """Penalty accrued after ``days`` overdue."""
    if days <= 0:
        return ZERO
    accrued = Decimal(amount) * policy.monthly_rate * months_overdue(days, policy)
    return quantize_amount(max(accrued, policy.minimum))


def compute(
    amount: Decimal,
    due_date: date,
    status: str,
    paid_amount: Decimal | None = None,
    as_of: date | datetime | None = None,
    policy: LateFeePolicy = DEFAULT_POLICY,
) -> LedgerView:
    """Evaluate the ledger for one fee."""
    if as_of is None:
        as_of = datetime.now(timezone.utc)
    amount = Decimal(amount)
    paid = Decimal(paid_amount) if paid_amount is not None else ZERO

    days = days_overdue(due_date, status, as_of)
    penalty = late_fee(amount, days, policy)
    total = max(ZERO, quantize_amount(amount + penalty - paid))

    return LedgerView(
        amount=quantize_amount(amount),
        paid_amount=quantize_amount(paid),
        days_overdue=days,
        months_overdue=months_overdue(days, policy),
        late_fee=penalty,
        total_due=total,
        is_overdue=status not in _SETTLED_STATUSES and _as_date(as_of) > due_date,
        status=status,
    )


def view_for(fee, as_of: date | datetime | None = None, policy: LateFeePolicy = DEFAULT_POLICY) -> LedgerView:
    """Evaluate the ledger for a ``Fee`` row (or anything shaped like one)."""
    return compute(
        amount=fee.amount,
        due_date=fee.due_date,
        status=fee.status,
        paid_amount=fee.paid_amount,
        as_of=as_of,
        policy=policy,
    )


def split_payment(payment: Decimal, late_fee_due: Decimal, paid_before: Decimal) -> PaymentSplit:
    """Allocate a payment; earlier payments and this one settle the penalty first.

    Args:
        payment: Amount of this payment.
        late_fee_due: Late fee accrued when the payment was made.
        paid_before: Amount already paid on the fee before this payment.
    """
    payment = quantize_amount(payment)
    late_outstanding = max(ZERO, quantize_amount(late_fee_due) - quantize_amount(paid_before))
    late_portion = min(payment, late_outstanding)
    return PaymentSplit(
        base=payment - late_portion,
        late_fee=late_portion,
        total=payment,
    )
