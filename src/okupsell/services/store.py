from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from decimal import Decimal
from types import TracebackType

from okupsell.services.billing import CommerceService
from okupsell.services.telemetry import TelemetryService
from okupsell.store import pricing
from okupsell.store.errors import (
    CatalogLoadFailed,
    CommerceError,
    PurchaseFailed,
    RestoreFailed,
    StoreError,
    VerificationFailed,
)
from okupsell.store.types import (
    Product,
    ProductConfig,
    PurchaseCancelled,
    PurchasePending,
    PurchaseSuccess,
    Transaction,
    Verified,
    VerificationResult,
)
from okupsell.store.verification import check_verified

logger = logging.getLogger(__name__)


class StoreManager:
    """Catalog and ownership state for the paywall, kept in sync with a commerce service.

    All state belongs to the event loop the manager is started on. Entitlement
    refreshes from callers and from the update listener go through one lock so
    a slower refresh can't overwrite a newer one.
    """

    def __init__(
        self,
        config: ProductConfig,
        commerce: CommerceService,
        *,
        telemetry: TelemetryService | None = None,
    ) -> None:
        self.config = config
        self._commerce = commerce
        self._telemetry = telemetry
        self._products: dict[str, Product] = {}
        self._purchased: set[str] = set()
        self._is_loading = False
        self._error: StoreError | None = None
        self._refresh_lock = asyncio.Lock()
        self._listener: asyncio.Task[None] | None = None

    # -------- Lifecycle --------
    async def start(self) -> None:
        if self._listener is not None:
            return
        self._listener = asyncio.create_task(self._listen_for_transactions(), name="okupsell-transaction-listener")
        try:
            await self.refresh_entitlements()
        except CommerceError as e:
            logger.warning("Initial entitlement refresh failed: %s", e)

    async def close(self) -> None:
        task, self._listener = self._listener, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def __aenter__(self) -> "StoreManager":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # -------- State --------
    @property
    def products(self) -> Mapping[str, Product]:
        return dict(self._products)

    @property
    def purchased_product_ids(self) -> frozenset[str]:
        return frozenset(self._purchased)

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def error(self) -> StoreError | None:
        return self._error

    @property
    def error_message(self) -> str | None:
        return self._error.user_message if self._error is not None else None

    def clear_error(self) -> None:
        self._error = None

    @property
    def bundle_product(self) -> Product | None:
        return self._products.get(self.config.bundle_id)

    @property
    def individual_products(self) -> list[Product]:
        return [self._products[pid] for pid in self.config.individual_ids if pid in self._products]

    def is_purchased(self, product_id: str) -> bool:
        return product_id in self._purchased or self.config.bundle_id in self._purchased

    @property
    def is_fully_unlocked(self) -> bool:
        if self.config.bundle_id in self._purchased:
            return True
        return all(pid in self._purchased for pid in self.config.individual_ids)

    def _individual_prices(self) -> list[Decimal | None]:
        return [p.price if p is not None else None for p in (self._products.get(i) for i in self.config.individual_ids)]

    @property
    def savings_percentage(self) -> int:
        bundle = self.bundle_product
        return pricing.savings_percentage(bundle.price if bundle else None, self._individual_prices())

    @property
    def individual_total_formatted(self) -> str | None:
        total = pricing.individual_total(self._individual_prices())
        individuals = self.individual_products
        if total is None or total <= 0 or not individuals:
            return None
        return individuals[0].format_price(total)

    # -------- Catalog --------
    async def load_products(self) -> None:
        if self._products and not isinstance(self._error, CatalogLoadFailed):
            return
        self._is_loading = True
        try:
            fetched = await self._commerce.fetch_products(self.config.all_ids)
        except CommerceError as e:
            self._error = CatalogLoadFailed(str(e))
            logger.warning("Failed to load products: %s", e)
            self._log("products_load_failed", {"error": str(e)})
            return
        finally:
            self._is_loading = False
        for p in fetched:
            self._products[p.id] = p
        if isinstance(self._error, CatalogLoadFailed):
            self._error = None
        self._log("products_loaded", {"product_ids": sorted(p.id for p in fetched)})

    # -------- Purchase --------
    async def purchase(self, product: Product) -> Transaction | None:
        """Buy one catalog product.

        Returns the finished transaction, or None when the user cancelled or
        the purchase awaits external approval. Raises VerificationFailed for
        an unverified receipt and PurchaseFailed for any service failure.
        """
        try:
            outcome = await self._commerce.purchase(product)
        except CommerceError as e:
            self._log("purchase", {"product_id": product.id, "result": "failed", "error": str(e)})
            raise PurchaseFailed(str(e)) from e

        if isinstance(outcome, (PurchaseCancelled, PurchasePending)):
            result = "cancelled" if isinstance(outcome, PurchaseCancelled) else "pending"
            self._log("purchase", {"product_id": product.id, "result": result})
            return None
        if not isinstance(outcome, PurchaseSuccess):
            raise PurchaseFailed(f"Unexpected purchase outcome: {outcome!r}")

        try:
            transaction = check_verified(outcome.verification)
        except VerificationFailed:
            self._log("purchase", {"product_id": product.id, "result": "unverified"})
            raise

        self._purchased.add(transaction.product_id)
        self._log("purchase", {"product_id": product.id, "result": "success", "transaction_id": transaction.id})
        try:
            await self._commerce.finish(transaction)
            await self.refresh_entitlements()
        except CommerceError as e:
            logger.warning("Entitlement refresh after purchase of %s failed: %s", product.id, e)
        return transaction

    # -------- Restore --------
    async def restore_purchases(self) -> bool:
        try:
            await self._commerce.sync()
            await self.refresh_entitlements()
        except CommerceError as e:
            self._error = RestoreFailed(str(e))
            logger.warning("Restore failed: %s", e)
            self._log("restore_failed", {"error": str(e)})
            return False
        if isinstance(self._error, RestoreFailed):
            self._error = None
        self._log("restore", {"owned": sorted(self._purchased)})
        return True

    # -------- Entitlements --------
    async def refresh_entitlements(self) -> None:
        async with self._refresh_lock:
            ids: set[str] = set()
            async for result in self._commerce.current_entitlements():
                if isinstance(result, Verified):
                    ids.add(result.transaction.product_id)
                else:
                    self._log_discarded(result, source="entitlements")
            self._purchased = ids
        self._log("entitlements_refreshed", {"owned": sorted(ids)})

    async def _listen_for_transactions(self) -> None:
        try:
            async for result in self._commerce.transaction_updates():
                try:
                    await self._apply_update(result)
                except Exception:
                    logger.exception("Transaction update %s could not be applied", result.transaction.id)
        except CommerceError as e:
            logger.error("Transaction update feed stopped: %s", e)

    async def _apply_update(self, result: VerificationResult) -> None:
        try:
            transaction = check_verified(result)
        except VerificationFailed:
            self._log_discarded(result, source="updates")
            return
        try:
            await self._commerce.finish(transaction)
            await self.refresh_entitlements()
        except CommerceError as e:
            logger.warning("Failed to apply transaction update %s: %s", transaction.id, e)

    # -------- Telemetry --------
    def _log_discarded(self, result: VerificationResult, *, source: str) -> None:
        t = result.transaction
        logger.info("Discarding unverified transaction %s from %s", t.id, source)
        self._log(
            "transaction_discarded",
            {"source": source, "transaction_id": t.id, "product_id": t.product_id},
        )

    def _log(self, event_type: str, payload: Mapping[str, object]) -> None:
        if self._telemetry is not None:
            self._telemetry.log(event_type, payload)
