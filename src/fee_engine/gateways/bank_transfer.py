"""Online bank transfer gateway stub."""

from __future__ import annotations

from decimal import Decimal

from fee_engine.gateways.base import PENDING, ConfirmResult
from fee_engine.gateways.methods import BankTransferMethod, PaymentMethod
from fee_engine.gateways.stub import StubGateway
from fee_engine.models.enums import GatewayCategory


class BankTransferStubGateway(StubGateway):
    """Stub online banking processor.

    Always returns ``pending``: the payer authorizes the debit on the bank's
    page and settlement is reported by webhook, sometimes hours later.
    """

    category = GatewayCategory.BANK_TRANSFER
    gateway_name = "bank_transfer_stub"
    intent_prefix = "pi_bank"

    def minimum_amount(self, method: PaymentMethod) -> Decimal:
        return Decimal("1")

    async def confirm(self, intent_id: str, method: PaymentMethod) -> ConfirmResult:
        """Start a bank authorization (stub implementation)."""
        record = self._begin_confirm(intent_id)
        if record["result"] is not None:
            return record["result"]

        if not isinstance(method, BankTransferMethod):
            raise TypeError(f"{self.gateway_name} cannot confirm {type(method).__name__}")
        record["bank_code"] = method.bank_code
        record["status"] = "awaiting_authorization"
        return ConfirmResult(status=PENDING, redirect_url=self._redirect_url(intent_id))

    def _redirect_url(self, intent_id: str) -> str:
        return f"{self.checkout_base_url}/bank/{intent_id}"
