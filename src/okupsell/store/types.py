from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass(frozen=True)
class Product:
    id: str
    display_name: str
    display_price: str
    price: Decimal
    price_format: str = "{amount}"

    def format_price(self, amount: Decimal) -> str:
        """Format an amount the way this product's own price is displayed."""
        return self.price_format.format(amount=amount.quantize(Decimal("0.01")))


@dataclass(frozen=True)
class Transaction:
    id: str
    original_id: str
    product_id: str
    purchase_date: datetime
    revocation_date: datetime | None = None

    @property
    def is_revoked(self) -> bool:
        return self.revocation_date is not None


@dataclass(frozen=True)
class Verified:
    transaction: Transaction


@dataclass(frozen=True)
class Unverified:
    transaction: Transaction
    reason: str


VerificationResult = Verified | Unverified


@dataclass(frozen=True)
class PurchaseSuccess:
    verification: VerificationResult


@dataclass(frozen=True)
class PurchaseCancelled:
    pass


@dataclass(frozen=True)
class PurchasePending:
    pass


PurchaseOutcome = PurchaseSuccess | PurchaseCancelled | PurchasePending


@dataclass(frozen=True)
class Feature:
    id: str
    title: str
    subtitle: str


@dataclass(frozen=True)
class ProductConfig:
    """Static product identifiers: one bundle superseding the individuals."""

    bundle_id: str
    individual_ids: tuple[str, ...]
    features: tuple[Feature, ...] = ()

    def __post_init__(self) -> None:
        if not self.individual_ids:
            raise ValueError("At least one individual product id is required")
        if len(set(self.individual_ids)) != len(self.individual_ids):
            raise ValueError("Duplicate individual product ids")
        if self.bundle_id in self.individual_ids:
            raise ValueError(f"Bundle id {self.bundle_id} is also listed as an individual")
        for f in self.features:
            if f.id not in self.individual_ids:
                raise ValueError(f"Feature {f.id} does not name an individual product")

    @property
    def all_ids(self) -> Sequence[str]:
        return [self.bundle_id, *self.individual_ids]
