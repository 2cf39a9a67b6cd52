"""Shared in-memory intent store for stub gateways.

Replace the concrete stubs with real processor adapters for production; the
router only depends on the ``GatewayAdapter`` protocol.
"""

from __future__ import annotations

import datetime
import uuid
from decimal import Decimal
from typing import Any

from fee_engine.errors import GatewayError, GatewayTimeoutError
from fee_engine.gateways.base import (
    FAILED,
    PENDING,
    SUCCEEDED,
    ConfirmResult,
    GatewayCallback,
    InitiateResult,
)
from fee_engine.models.enums import GatewayCategory


class StubGateway:
    """Base for stub adapters.

    Intents are tracked in ``self._intents`` keyed by intent id, so repeated
    confirms of one intent return the recorded outcome instead of charging
    again.
    """

    category: GatewayCategory
    gateway_name = "stub"
    intent_prefix = "pi"
    checkout_base_url = "https://checkout.example.test"

    def __init__(self, fail_with_timeout: bool = False):
        """Initialize stub gateway.

        Args:
            fail_with_timeout: If True, ``confirm`` raises
                ``GatewayTimeoutError`` after recording the intent as
                pending, as a processor that stopped answering would.
        """
        self.fail_with_timeout = fail_with_timeout
        self._intents: dict[str, dict[str, Any]] = {}

    async def initiate(
        self,
        amount: Decimal,
        currency: str,
        description: str,
        metadata: dict[str, Any],
    ) -> InitiateResult:
        """Create an intent (stub implementation)."""
        intent_id = f"{self.intent_prefix}_{uuid.uuid4().hex[:24]}"
        self._intents[intent_id] = {
            "amount": Decimal(amount),
            "currency": currency,
            "description": description,
            "metadata": dict(metadata),
            "created_at": datetime.datetime.now(datetime.timezone.utc),
            "status": "requires_payment_method",
            "confirm_count": 0,
            "result": None,
        }
        return InitiateResult(intent_id=intent_id, redirect_url=self._redirect_url(intent_id))

    async def retrieve(self, intent_id: str) -> ConfirmResult:
        """Current status of an intent."""
        record = self._get(intent_id)
        if record["result"] is not None:
            return record["result"]
        return ConfirmResult(status=PENDING, redirect_url=self._redirect_url(intent_id))

    def confirm_count(self, intent_id: str) -> int:
        """How many times an intent was confirmed (for tests)."""
        return self._get(intent_id)["confirm_count"]

    def intent(self, intent_id: str) -> dict[str, Any]:
        """Raw intent record (for tests)."""
        return self._get(intent_id)

    def simulate_success(self, intent_id: str) -> GatewayCallback:
        """Resolve an intent as paid and return the webhook a processor would send."""
        record = self._get(intent_id)
        result = ConfirmResult(
            status=SUCCEEDED,
            gateway_transaction_id=self._transaction_id(),
            receipt_url=None,
        )
        record["status"] = SUCCEEDED
        record["result"] = result
        return GatewayCallback(
            category=self.category,
            intent_id=intent_id,
            status=SUCCEEDED,
            gateway_transaction_id=result.gateway_transaction_id,
            raw_payload={"intent_id": intent_id, "status": SUCCEEDED},
        )

    def simulate_failure(self, intent_id: str, reason: str = "Payment was not completed") -> GatewayCallback:
        """Resolve an intent as failed and return the webhook a processor would send."""
        record = self._get(intent_id)
        result = ConfirmResult(status=FAILED, failure_reason=reason)
        record["status"] = FAILED
        record["result"] = result
        return GatewayCallback(
            category=self.category,
            intent_id=intent_id,
            status=FAILED,
            failure_reason=reason,
            raw_payload={"intent_id": intent_id, "status": FAILED, "failure_reason": reason},
        )

    def _begin_confirm(self, intent_id: str) -> dict[str, Any]:
        record = self._get(intent_id)
        record["confirm_count"] += 1
        if self.fail_with_timeout and record["result"] is None:
            record["status"] = "processing"
            raise GatewayTimeoutError(
                self.category.value,
                f"{self.gateway_name} did not respond",
                intent_id=intent_id,
            )
        return record

    def _get(self, intent_id: str) -> dict[str, Any]:
        if intent_id not in self._intents:
            raise GatewayError(
                self.category.value,
                f"Intent {intent_id} not found",
                intent_id=intent_id,
            )
        return self._intents[intent_id]

    def _redirect_url(self, intent_id: str) -> str | None:
        return None

    def _transaction_id(self) -> str:
        return f"{self.intent_prefix.upper()}TXN{uuid.uuid4().hex[:16].upper()}"
