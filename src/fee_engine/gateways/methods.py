"""Payment method variants.

A payment method is one of ``CardMethod``, ``WalletMethod`` or
``BankTransferMethod``. Each carries its gateway category, so the router
selects an adapter once, at submission time.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Union

from fee_engine.models.enums import GatewayCategory, WalletBrand

_DIGITS = re.compile(r"^\d+$")
_PHONE = re.compile(r"^\+?\d{10,13}$")
_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class CardMethod:
    """Credit or debit card."""

    card_number: str
    exp_month: int
    exp_year: int
    cvc: str
    cardholder_name: str
    postal_code: str | None = None

    category = GatewayCategory.CARD

    def validate(self) -> list[str]:
        errors: list[str] = []
        number = self.card_number.replace(" ", "")
        if not _DIGITS.match(number) or not 13 <= len(number) <= 19:
            errors.append("Card number must be 13-19 digits")
        if not 1 <= self.exp_month <= 12:
            errors.append("Expiry month must be between 1 and 12")
        if self.exp_year < 2000:
            errors.append("Expiry year must be a four-digit year")
        if not _DIGITS.match(self.cvc) or len(self.cvc) not in (3, 4):
            errors.append("CVC must be 3 or 4 digits")
        if not self.cardholder_name.strip():
            errors.append("Cardholder name is required")
        return errors

    @property
    def code(self) -> str:
        return "card"

    @property
    def last4(self) -> str:
        return self.card_number.replace(" ", "")[-4:]

    def describe(self) -> str:
        return f"card ending {self.last4}"


@dataclass(frozen=True)
class WalletMethod:
    """E-wallet checkout (GCash, GrabPay, Maya)."""

    wallet: WalletBrand
    phone_number: str | None = None
    email: str | None = None

    category = GatewayCategory.WALLET

    def validate(self) -> list[str]:
        errors: list[str] = []
        if not isinstance(self.wallet, WalletBrand):
            errors.append("Unsupported wallet")
        if self.phone_number is not None and not _PHONE.match(self.phone_number):
            errors.append("Phone number is invalid")
        if self.email is not None and not _EMAIL.match(self.email):
            errors.append("Email is invalid")
        return errors

    @property
    def code(self) -> str:
        return self.wallet.value

    def describe(self) -> str:
        return f"{self.wallet.value} wallet"


@dataclass(frozen=True)
class BankTransferMethod:
    """Online banking transfer."""

    bank_code: str
    account_name: str | None = None

    category = GatewayCategory.BANK_TRANSFER

    def validate(self) -> list[str]:
        if not self.bank_code.strip():
            return ["Bank is required"]
        return []

    @property
    def code(self) -> str:
        return "bank_transfer"

    def describe(self) -> str:
        return f"bank transfer ({self.bank_code})"


PaymentMethod = Union[CardMethod, WalletMethod, BankTransferMethod]


def method_from_dict(category: GatewayCategory | str, details: dict[str, Any]) -> PaymentMethod:
    """Build a payment method from a category tag and a details mapping.

    Raises:
        ValueError: unknown category, unknown wallet, or missing fields.
    """
    category = GatewayCategory(category)
    try:
        if category is GatewayCategory.CARD:
            return CardMethod(
                card_number=str(details["card_number"]),
                exp_month=int(details["exp_month"]),
                exp_year=int(details["exp_year"]),
                cvc=str(details["cvc"]),
                cardholder_name=str(details.get("cardholder_name", "")),
                postal_code=details.get("postal_code"),
            )
        if category is GatewayCategory.WALLET:
            return WalletMethod(
                wallet=WalletBrand(details["wallet"]),
                phone_number=details.get("phone_number"),
                email=details.get("email"),
            )
        return BankTransferMethod(
            bank_code=str(details["bank_code"]),
            account_name=details.get("account_name"),
        )
    except KeyError as e:
        raise ValueError(f"Missing payment detail: {e.args[0]}") from e
