"""Fee ledger calculations."""

from fee_engine.calculators.fee_ledger import (
    DEFAULT_POLICY,
    LateFeePolicy,
    LedgerView,
    PaymentSplit,
    compute,
    format_amount,
    quantize_amount,
    split_payment,
    view_for,
)

__all__ = [
    "DEFAULT_POLICY",
    "LateFeePolicy",
    "LedgerView",
    "PaymentSplit",
    "compute",
    "format_amount",
    "quantize_amount",
    "split_payment",
    "view_for",
]
