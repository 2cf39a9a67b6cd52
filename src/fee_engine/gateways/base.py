"""Base protocol and types for payment gateway adapters.

Every processor (card acquirer, e-wallet aggregator, online banking) is
normalized to the same initiate/confirm contract. The router uses these
adapters without knowing processor-specific details.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from fee_engine.gateways.methods import PaymentMethod
from fee_engine.models.enums import GatewayCategory

SUCCEEDED = "succeeded"
FAILED = "failed"
PENDING = "pending"


@dataclass(frozen=True)
class InitiateResult:
    """Result of creating a payment intent with a processor."""

    intent_id: str
    redirect_url: str | None = None


@dataclass(frozen=True)
class ConfirmResult:
    """Outcome reported by a processor for an intent."""

    status: str  # succeeded/failed/pending
    gateway_transaction_id: str | None = None
    receipt_url: str | None = None
    redirect_url: str | None = None
    failure_reason: str | None = None

    def __post_init__(self) -> None:
        if self.status not in (SUCCEEDED, FAILED, PENDING):
            raise ValueError(f"Unknown confirm status: {self.status}")

    @property
    def is_terminal(self) -> bool:
        return self.status in (SUCCEEDED, FAILED)


@dataclass(frozen=True)
class GatewayCallback:
    """Asynchronous notification from a processor (webhook payload).

    Callbacks resolve ``pending`` confirmations out of band.
    """

    category: GatewayCategory
    intent_id: str
    status: str  # succeeded/failed
    gateway_transaction_id: str | None = None
    receipt_url: str | None = None
    failure_reason: str | None = None
    raw_payload: dict[str, Any] = field(default_factory=dict)

    def to_result(self) -> ConfirmResult:
        return ConfirmResult(
            status=self.status,
            gateway_transaction_id=self.gateway_transaction_id,
            receipt_url=self.receipt_url,
            failure_reason=self.failure_reason,
        )

    @classmethod
    def from_payload(cls, category: GatewayCategory, payload: dict[str, Any]) -> GatewayCallback:
        """Build a callback from a normalized webhook body.

        Expected keys: ``intent_id``, ``status`` and optionally
        ``transaction_id``, ``receipt_url``, ``failure_reason``.
        """
        intent_id = payload.get("intent_id")
        status = payload.get("status")
        if not intent_id or status not in (SUCCEEDED, FAILED):
            raise ValueError("Callback payload requires intent_id and a terminal status")
        return cls(
            category=category,
            intent_id=str(intent_id),
            status=str(status),
            gateway_transaction_id=payload.get("transaction_id"),
            receipt_url=payload.get("receipt_url"),
            failure_reason=payload.get("failure_reason"),
            raw_payload=dict(payload),
        )


@runtime_checkable
class GatewayAdapter(Protocol):
    """Protocol for payment processor adapters.

    Card confirmation resolves synchronously (succeeded/failed). Wallet and
    bank transfer confirmation usually return ``pending`` and are resolved
    later by a ``GatewayCallback``.
    """

    category: GatewayCategory
    gateway_name: str

    def minimum_amount(self, method: PaymentMethod) -> Decimal:
        """Smallest amount this processor accepts for the method."""
        ...

    async def initiate(
        self,
        amount: Decimal,
        currency: str,
        description: str,
        metadata: dict[str, Any],
    ) -> InitiateResult:
        """Create a payment intent.

        Args:
            amount: Amount to collect in major currency units.
            currency: ISO currency code, e.g. "PHP".
            description: Human-readable statement descriptor.
            metadata: Engine references (attempt id, fee id, target).

        Returns:
            InitiateResult with the processor-issued intent id.
        """
        ...

    async def confirm(self, intent_id: str, method: PaymentMethod) -> ConfirmResult:
        """Attach the payer's instrument to an intent and confirm it.

        Confirming the same intent twice must not charge twice; processors
        return the recorded outcome.
        """
        ...

    async def retrieve(self, intent_id: str) -> ConfirmResult:
        """Current status of an intent (manual refresh / reconciliation)."""
        ...
