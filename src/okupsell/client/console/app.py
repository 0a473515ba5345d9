from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable

from okupsell.paths import Paths
from okupsell.services.billing import LocalCommerceService
from okupsell.services.catalog import CatalogService
from okupsell.services.ledger import LedgerService
from okupsell.services.store import StoreManager
from okupsell.services.telemetry import TelemetryService
from okupsell.store.types import ProductConfig
from okupsell.store.verification import TransactionSigner

from .paywall import PaywallScreen


@dataclass
class AppContext:
    paths: Paths
    catalog: CatalogService
    config: ProductConfig
    commerce: LocalCommerceService
    telemetry: TelemetryService
    store: StoreManager


def build_context(paths: Paths, secret: str) -> AppContext:
    catalog = CatalogService(data_dir=paths.data_dir, schema_dir=paths.schema_dir)
    config = catalog.load_product_config()
    ledger = LedgerService(paths.userdata_dir / "ledger.json")
    commerce = LocalCommerceService(catalog.load_storefront(), ledger, TransactionSigner(secret))
    telemetry = TelemetryService(paths.userdata_dir / "telemetry.jsonl")
    store = StoreManager(config, commerce, telemetry=telemetry)
    return AppContext(
        paths=paths,
        catalog=catalog,
        config=config,
        commerce=commerce,
        telemetry=telemetry,
        store=store,
    )


Command = Callable[[AppContext, PaywallScreen], Awaitable[int]]


class App:
    def __init__(self, ctx: AppContext) -> None:
        self.ctx = ctx

    async def run(self, command: Command) -> int:
        async with self.ctx.store:
            await self.ctx.store.load_products()
            screen = PaywallScreen(self.ctx.store)
            return await command(self.ctx, screen)
