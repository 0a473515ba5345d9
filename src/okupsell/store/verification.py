from __future__ import annotations

import base64
import hashlib
import hmac
import json
from typing import Mapping

from .errors import VerificationFailed
from .types import Transaction, Unverified, Verified, VerificationResult


def transaction_claims(t: Transaction) -> dict[str, object]:
    return {
        "id": t.id,
        "original_id": t.original_id,
        "product_id": t.product_id,
        "purchase_date": t.purchase_date.isoformat(),
        "revocation_date": t.revocation_date.isoformat() if t.revocation_date else None,
    }


class TransactionSigner:
    """HMAC-SHA256 signer for transaction claims."""

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("secret must be provided")
        self._secret = secret.encode("utf-8")

    def _digest(self, claims: Mapping[str, object]) -> bytes:
        serialized = json.dumps(claims, sort_keys=True, separators=(",", ":")).encode("utf-8")
        return hmac.new(self._secret, serialized, hashlib.sha256).digest()

    def sign(self, t: Transaction) -> str:
        return base64.urlsafe_b64encode(self._digest(transaction_claims(t))).decode("ascii")

    def verify(self, t: Transaction, signature: str) -> bool:
        try:
            given = base64.urlsafe_b64decode(signature.encode("ascii"))
        except (ValueError, UnicodeEncodeError):
            return False
        return hmac.compare_digest(given, self._digest(transaction_claims(t)))


def verify_transaction(t: Transaction, signature: str, signer: TransactionSigner) -> VerificationResult:
    if not signature:
        return Unverified(transaction=t, reason="missing signature")
    if not signer.verify(t, signature):
        return Unverified(transaction=t, reason="signature mismatch")
    return Verified(transaction=t)


def check_verified(result: VerificationResult) -> Transaction:
    """Return the transaction of a verified result, raise for anything else."""
    if isinstance(result, Verified):
        return result.transaction
    raise VerificationFailed(f"Transaction {result.transaction.id} failed verification: {result.reason}")
