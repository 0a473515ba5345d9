from __future__ import annotations

from okupsell.services.store import StoreManager
from okupsell.store.errors import StoreError
from okupsell.store.types import Product, Transaction

TAGLINE = "Export professional, watermark-free videos with full editing power."
FOOTNOTE = "No subscription. Pay once, yours forever."


class PaywallScreen:
    """Purchase actions and text rendering for the upsell paywall.

    Purchase failures are kept per call in purchase_error and never touch the
    store's persistent error.
    """

    def __init__(self, store: StoreManager) -> None:
        self.store = store
        self.is_purchasing = False
        self.purchase_error: str | None = None
        self.last_transaction: Transaction | None = None

    async def _purchase(self, product: Product) -> Transaction | None:
        self.is_purchasing = True
        self.purchase_error = None
        self.last_transaction = None
        try:
            self.last_transaction = await self.store.purchase(product)
        except StoreError as e:
            self.purchase_error = e.user_message
        finally:
            self.is_purchasing = False
        return self.last_transaction

    async def purchase_bundle(self) -> bool:
        """Buy the bundle. Returns True when the paywall should be dismissed."""
        product = self.store.bundle_product
        if product is None or self.is_purchasing:
            return False
        return await self._purchase(product) is not None

    async def purchase_individual(self, product_id: str) -> bool:
        """Buy one feature. Dismiss only once everything is unlocked."""
        product = self.store.products.get(product_id)
        if product is None or self.is_purchasing:
            return False
        await self._purchase(product)
        if self.purchase_error is not None:
            return False
        return self.store.is_fully_unlocked

    async def restore(self) -> bool:
        return await self.store.restore_purchases()

    # -------- Rendering --------
    def _pricing_lines(self) -> list[str]:
        store = self.store
        if store.is_loading:
            return ["Loading prices..."]
        if store.error_message is not None and not store.products:
            return ["Could not load prices", "  Retry: okupsell paywall"]
        bundle = store.bundle_product
        if bundle is None:
            return []
        line = f"One-time Purchase  {bundle.display_price}"
        total = store.individual_total_formatted
        if total is not None:
            line += f"  (instead of {total})"
        savings = store.savings_percentage
        if savings > 0:
            line += f"  SAVE {savings}%"
        return [line]

    def _feature_lines(self) -> list[str]:
        store = self.store
        config = store.config
        rows: list[tuple[str, str]] = [(f.id, f"{f.title} - {f.subtitle}") for f in config.features]
        if not rows:
            rows = [(p.id, p.display_name) for p in store.individual_products]
        lines: list[str] = []
        for pid, label in rows:
            owned = store.is_purchased(pid)
            if owned:
                status = "owned"
            else:
                product = store.products.get(pid)
                status = product.display_price if product is not None else "-"
            mark = "x" if owned else " "
            lines.append(f"  [{mark}] {label:<50s} {status}")
        return lines

    def render(self) -> list[str]:
        store = self.store
        bundle = store.bundle_product
        title = bundle.display_name if bundle is not None else store.config.bundle_id
        lines = [title, TAGLINE, ""]
        lines.extend(self._feature_lines())
        lines.append("")
        lines.extend(self._pricing_lines())
        if store.is_fully_unlocked:
            lines.append("Everything is unlocked.")
        else:
            lines.append(f"Unlock {title}")
            lines.append(FOOTNOTE)
        if store.error_message is not None and store.products:
            lines.append(f"! {store.error_message}")
        if self.purchase_error is not None:
            lines.append(f"! {self.purchase_error}")
        lines.append("Restore Purchases: okupsell restore")
        return lines
