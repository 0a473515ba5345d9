"""Headless purchase-state types, pricing and verification.

IMPORTANT: This package must never import okupsell.services or the console client.
"""

from .errors import (
    CatalogLoadFailed,
    CommerceError,
    PurchaseFailed,
    RestoreFailed,
    StoreError,
    VerificationFailed,
)
from .pricing import individual_total, savings_percentage
from .types import (
    Feature,
    Product,
    ProductConfig,
    PurchaseCancelled,
    PurchaseOutcome,
    PurchasePending,
    PurchaseSuccess,
    Transaction,
    Unverified,
    Verified,
    VerificationResult,
)
from .verification import TransactionSigner, check_verified, verify_transaction

__all__ = [
    "CatalogLoadFailed",
    "CommerceError",
    "Feature",
    "Product",
    "ProductConfig",
    "PurchaseCancelled",
    "PurchaseFailed",
    "PurchaseOutcome",
    "PurchasePending",
    "PurchaseSuccess",
    "RestoreFailed",
    "StoreError",
    "Transaction",
    "TransactionSigner",
    "Unverified",
    "VerificationFailed",
    "Verified",
    "VerificationResult",
    "check_verified",
    "individual_total",
    "savings_percentage",
    "verify_transaction",
]
