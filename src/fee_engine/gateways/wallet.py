"""E-wallet gateway stub (GCash, GrabPay, Maya)."""

from __future__ import annotations

from decimal import Decimal

from fee_engine.gateways.base import PENDING, SUCCEEDED, ConfirmResult
from fee_engine.gateways.methods import PaymentMethod, WalletMethod
from fee_engine.gateways.stub import StubGateway
from fee_engine.models.enums import GatewayCategory, WalletBrand

WALLET_MINIMUMS = {
    WalletBrand.GCASH: Decimal("1"),
    WalletBrand.GRAB_PAY: Decimal("1"),
    WalletBrand.MAYA: Decimal("100"),
}


class WalletStubGateway(StubGateway):
    """Stub e-wallet aggregator.

    Confirmation returns ``pending`` with a checkout URL; the payer finishes
    in the wallet app and the processor reports the outcome by webhook.
    """

    category = GatewayCategory.WALLET
    gateway_name = "wallet_stub"
    intent_prefix = "pi_wallet"

    def __init__(self, auto_complete: bool = False, fail_with_timeout: bool = False):
        """Initialize stub wallet gateway.

        Args:
            auto_complete: If True, confirmation succeeds immediately
                instead of waiting for a callback.
            fail_with_timeout: See ``StubGateway``.
        """
        super().__init__(fail_with_timeout=fail_with_timeout)
        self.auto_complete = auto_complete

    def minimum_amount(self, method: PaymentMethod) -> Decimal:
        if isinstance(method, WalletMethod):
            return WALLET_MINIMUMS[method.wallet]
        return Decimal("1")

    async def confirm(self, intent_id: str, method: PaymentMethod) -> ConfirmResult:
        """Create a wallet checkout session (stub implementation)."""
        record = self._begin_confirm(intent_id)
        if record["result"] is not None:
            return record["result"]

        if not isinstance(method, WalletMethod):
            raise TypeError(f"{self.gateway_name} cannot confirm {type(method).__name__}")
        record["wallet"] = method.wallet.value

        if self.auto_complete:
            result = ConfirmResult(status=SUCCEEDED, gateway_transaction_id=self._transaction_id())
            record["status"] = SUCCEEDED
            record["result"] = result
            return result

        record["status"] = "awaiting_next_action"
        return ConfirmResult(status=PENDING, redirect_url=self._redirect_url(intent_id))

    def _redirect_url(self, intent_id: str) -> str:
        return f"{self.checkout_base_url}/wallet/{intent_id}"
