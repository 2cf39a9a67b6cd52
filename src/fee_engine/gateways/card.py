"""Card gateway stub for local development and testing."""

from __future__ import annotations

from decimal import Decimal

from fee_engine.gateways.base import FAILED, SUCCEEDED, ConfirmResult
from fee_engine.gateways.methods import CardMethod, PaymentMethod
from fee_engine.gateways.stub import StubGateway
from fee_engine.models.enums import GatewayCategory

# Well-known processor test numbers that always decline
DECLINED_CARDS = {
    "4000000000000002": "Your card was declined.",
    "4000000000009995": "Your card has insufficient funds.",
}


class CardStubGateway(StubGateway):
    """Stub card acquirer.

    Confirmation resolves synchronously: the test decline numbers fail,
    every other well-formed card succeeds.

    In production, this would:
    - Attach a tokenized payment method to the intent
    - Handle 3-D Secure redirects
    - Map acquirer decline codes to failure reasons
    """

    category = GatewayCategory.CARD
    gateway_name = "card_stub"
    intent_prefix = "pi_card"

    def minimum_amount(self, method: PaymentMethod) -> Decimal:
        return Decimal("0")

    async def confirm(self, intent_id: str, method: PaymentMethod) -> ConfirmResult:
        """Charge the card (stub implementation)."""
        record = self._begin_confirm(intent_id)
        if record["result"] is not None:
            return record["result"]

        if not isinstance(method, CardMethod):
            raise TypeError(f"{self.gateway_name} cannot confirm {type(method).__name__}")

        number = method.card_number.replace(" ", "")
        if number in DECLINED_CARDS:
            result = ConfirmResult(status=FAILED, failure_reason=DECLINED_CARDS[number])
        else:
            transaction_id = self._transaction_id()
            result = ConfirmResult(
                status=SUCCEEDED,
                gateway_transaction_id=transaction_id,
                receipt_url=f"https://pay.example.test/receipts/{transaction_id}",
            )

        record["status"] = result.status
        record["result"] = result
        return result
