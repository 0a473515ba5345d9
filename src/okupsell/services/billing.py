from __future__ import annotations

import asyncio
from collections import deque
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Iterator, Literal, Mapping, Protocol, Sequence

from okupsell.services.ledger import LedgerError, LedgerRecord, LedgerService, RecordState
from okupsell.store.errors import CommerceError
from okupsell.store.types import (
    Product,
    PurchaseCancelled,
    PurchaseOutcome,
    PurchasePending,
    PurchaseSuccess,
    Transaction,
    VerificationResult,
)
from okupsell.store.verification import TransactionSigner, verify_transaction

PurchaseScript = Literal["success", "cancelled", "pending", "failed"]
PURCHASE_SCRIPTS: tuple[PurchaseScript, ...] = ("success", "cancelled", "pending", "failed")


@contextmanager
def _ledger_errors() -> Iterator[None]:
    """Report ledger read and write failures as CommerceError."""
    try:
        yield
    except (LedgerError, OSError) as e:
        raise CommerceError(str(e)) from e


class CommerceService(Protocol):
    async def fetch_products(self, product_ids: Sequence[str]) -> list[Product]: ...

    async def purchase(self, product: Product) -> PurchaseOutcome: ...

    def current_entitlements(self) -> AsyncIterator[VerificationResult]: ...

    def transaction_updates(self) -> AsyncIterator[VerificationResult]: ...

    async def sync(self) -> None: ...

    async def finish(self, transaction: Transaction) -> None: ...


class LocalCommerceService:
    """Local storefront backed by a transaction ledger.

    Stands in for the platform commerce service: it lists products, signs
    every transaction it issues, and delivers ledger changes (approvals,
    refunds, grants from elsewhere) on the transaction-update feed.
    Purchase outcomes can be scripted with queue_outcome(); the default is
    "success".
    """

    def __init__(
        self,
        storefront: Mapping[str, Product],
        ledger: LedgerService,
        signer: TransactionSigner,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._storefront = dict(storefront)
        self._ledger = ledger
        self._signer = signer
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._outcomes: deque[PurchaseScript] = deque()
        self._subscribers: list[asyncio.Queue[LedgerRecord]] = []
        self.online = True

    def queue_outcome(self, outcome: PurchaseScript) -> None:
        if outcome not in PURCHASE_SCRIPTS:
            raise ValueError(f"Unknown purchase outcome: {outcome}")
        self._outcomes.append(outcome)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _require_online(self, operation: str) -> None:
        if not self.online:
            raise CommerceError(f"Storefront unavailable ({operation})")

    # -------- Commerce service --------
    async def fetch_products(self, product_ids: Sequence[str]) -> list[Product]:
        self._require_online("fetch_products")
        return [self._storefront[pid] for pid in product_ids if pid in self._storefront]

    async def purchase(self, product: Product) -> PurchaseOutcome:
        self._require_online("purchase")
        if product.id not in self._storefront:
            raise CommerceError(f"Unknown product: {product.id}")
        outcome = self._outcomes.popleft() if self._outcomes else "success"
        if outcome == "cancelled":
            return PurchaseCancelled()
        if outcome == "failed":
            raise CommerceError(f"Purchase of {product.id} was declined")
        if outcome == "pending":
            self._record(product.id, state="pending")
            return PurchasePending()
        record = self._record(product.id)
        return PurchaseSuccess(verification=self._verify(record))

    async def current_entitlements(self) -> AsyncIterator[VerificationResult]:
        # Records are chronological, so the last one per product wins.
        latest: dict[str, LedgerRecord] = {}
        for r in self._ledger.records():
            if r.state == "purchased":
                latest[r.product_id] = r
        for r in latest.values():
            yield self._verify(r)

    async def transaction_updates(self) -> AsyncIterator[VerificationResult]:
        queue: asyncio.Queue[LedgerRecord] = asyncio.Queue()
        self._subscribers.append(queue)
        try:
            for r in self._ledger.unfinished():
                yield self._verify(r)
            while True:
                r = await queue.get()
                yield self._verify(r)
        finally:
            self._subscribers.remove(queue)

    async def sync(self) -> None:
        self._require_online("sync")
        with _ledger_errors():
            self._ledger.reload()

    async def finish(self, transaction: Transaction) -> None:
        with _ledger_errors():
            self._ledger.mark_finished(transaction.id)

    # -------- Storefront-side events --------
    def approve_pending(self, product_id: str) -> Transaction:
        """Complete a purchase that was waiting on external approval."""
        pending = self._ledger.pending_for(product_id)
        if pending is None:
            raise CommerceError(f"No pending purchase for {product_id}")
        record = self._signed(replace(pending, state="purchased", purchase_date=self._clock()))
        with _ledger_errors():
            self._ledger.update(record)
        self._deliver(record)
        return record.to_transaction()

    def grant(self, product_id: str, *, signer: TransactionSigner | None = None) -> Transaction:
        """Record a transaction issued elsewhere, e.g. on another device."""
        if product_id not in self._storefront:
            raise CommerceError(f"Unknown product: {product_id}")
        record = self._record(product_id, signer=signer)
        self._deliver(record)
        return record.to_transaction()

    def refund(self, transaction_id: str) -> Transaction:
        record = self._ledger.get(transaction_id)
        if record is None or record.state != "purchased":
            raise CommerceError(f"No refundable transaction {transaction_id}")
        revoked = self._signed(replace(record, state="revoked", revocation_date=self._clock(), finished=False))
        with _ledger_errors():
            self._ledger.update(revoked)
        self._deliver(revoked)
        return revoked.to_transaction()

    # -------- Internals --------
    def _signed(self, record: LedgerRecord, signer: TransactionSigner | None = None) -> LedgerRecord:
        return replace(record, signature=(signer or self._signer).sign(record.to_transaction()))

    def _record(
        self,
        product_id: str,
        *,
        state: RecordState = "purchased",
        signer: TransactionSigner | None = None,
    ) -> LedgerRecord:
        tid = self._ledger.next_transaction_id()
        record = LedgerRecord(
            transaction_id=tid,
            original_id=tid,
            product_id=product_id,
            purchase_date=self._clock(),
            state=state,
        )
        record = self._signed(record, signer)
        with _ledger_errors():
            self._ledger.append(record)
        return record

    def _verify(self, record: LedgerRecord) -> VerificationResult:
        return verify_transaction(record.to_transaction(), record.signature, self._signer)

    def _deliver(self, record: LedgerRecord) -> None:
        for queue in self._subscribers:
            queue.put_nowait(record)
