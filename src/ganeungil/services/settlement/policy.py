"""Settlement and invoicing rates."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict

from ...models.domain import CarrierTier


def round_won(amount: Decimal | float | int) -> int:
    """Round to whole won, halves away from zero."""
    return int(Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class SettlementPolicy:
    tier_bonus_rates: Dict[CarrierTier, Decimal] = field(
        default_factory=lambda: {
            CarrierTier.SILVER: Decimal("0.05"),
            CarrierTier.GOLD: Decimal("0.10"),
            CarrierTier.PLATINUM: Decimal("0.15"),
        }
    )
    activity_bonus: int = 50_000
    activity_threshold: int = 50
    quality_bonus: int = 30_000
    quality_rating_threshold: float = 4.9
    withholding_rate: Decimal = Decimal("0.033")
    vat_rate: Decimal = Decimal("0.10")

    def validate(self) -> None:
        missing = [tier.value for tier in CarrierTier if tier not in self.tier_bonus_rates]
        if missing:
            raise ValueError(f"tier bonus rate missing for {missing}")
        if any(rate < 0 for rate in self.tier_bonus_rates.values()):
            raise ValueError("tier bonus rates must be >= 0")
        if not Decimal("0") <= self.withholding_rate < Decimal("1"):
            raise ValueError("withholding_rate must be within [0, 1)")
        if not Decimal("0") <= self.vat_rate < Decimal("1"):
            raise ValueError("vat_rate must be within [0, 1)")


@dataclass(frozen=True)
class InvoiceIssuer:
    name: str = "가는길에"
    registration_number: str = "123-45-67890"
    ceo: str = "김OO"
    address: str = "서울특별시 OO구 OO로 123"
    contact: str = "02-1234-5678"

    def to_document(self) -> dict:
        return {
            "name": self.name,
            "registration_number": self.registration_number,
            "ceo": self.ceo,
            "address": self.address,
            "contact": self.contact,
        }


def default_settlement_policy() -> SettlementPolicy:
    policy = SettlementPolicy()
    policy.validate()
    return policy
