"""Payment gateway adapters.

One adapter per processor category, all implementing ``GatewayAdapter``.
"""

from __future__ import annotations

from fee_engine.gateways.bank_transfer import BankTransferStubGateway
from fee_engine.gateways.base import (
    ConfirmResult,
    GatewayAdapter,
    GatewayCallback,
    InitiateResult,
)
from fee_engine.gateways.card import DECLINED_CARDS, CardStubGateway
from fee_engine.gateways.methods import (
    BankTransferMethod,
    CardMethod,
    PaymentMethod,
    WalletMethod,
    method_from_dict,
)
from fee_engine.gateways.wallet import WALLET_MINIMUMS, WalletStubGateway
from fee_engine.models.enums import GatewayCategory


def build_gateways() -> dict[GatewayCategory, GatewayAdapter]:
    """Gateway registry keyed by category.

    Only stub adapters ship with the engine; deployments replace entries
    with real processor adapters.
    """
    return {
        GatewayCategory.CARD: CardStubGateway(),
        GatewayCategory.WALLET: WalletStubGateway(),
        GatewayCategory.BANK_TRANSFER: BankTransferStubGateway(),
    }


__all__ = [
    "BankTransferMethod",
    "BankTransferStubGateway",
    "CardMethod",
    "CardStubGateway",
    "ConfirmResult",
    "DECLINED_CARDS",
    "GatewayAdapter",
    "GatewayCallback",
    "InitiateResult",
    "PaymentMethod",
    "WALLET_MINIMUMS",
    "WalletMethod",
    "WalletStubGateway",
    "build_gateways",
    "method_from_dict",
]
