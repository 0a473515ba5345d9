from __future__ import annotations

import asyncio

from okupsell.client.console.paywall import PaywallScreen
from okupsell.paths import get_paths
from okupsell.services.billing import LocalCommerceService
from okupsell.services.catalog import CatalogService
from okupsell.services.ledger import LedgerService
from okupsell.services.store import StoreManager
from okupsell.store import TransactionSigner

BUNDLE = "com.okvideo.pro"
INDIVIDUALS = ["com.okvideo.projects", "com.okvideo.watermark", "com.okvideo.editor"]


def _make() -> tuple[PaywallScreen, LocalCommerceService]:
    paths = get_paths()
    catalog = CatalogService(paths.data_dir, paths.schema_dir)
    commerce = LocalCommerceService(catalog.load_storefront(), LedgerService(), TransactionSigner("test-secret"))
    store = StoreManager(catalog.load_product_config(), commerce)
    return PaywallScreen(store), commerce


def test_bundle_purchase_dismisses() -> None:
    async def scenario() -> None:
        screen, _ = _make()
        async with screen.store:
            await screen.store.load_products()
            assert await screen.purchase_bundle() is True
            assert screen.last_transaction is not None
            assert not screen.is_purchasing
            assert screen.purchase_error is None

    asyncio.run(scenario())


def test_cancelled_bundle_purchase_stays_open() -> None:
    async def scenario() -> None:
        screen, commerce = _make()
        async with screen.store:
            await screen.store.load_products()
            commerce.queue_outcome("cancelled")
            assert await screen.purchase_bundle() is False
            assert screen.purchase_error is None

    asyncio.run(scenario())


def test_bundle_purchase_needs_a_loaded_catalog() -> None:
    async def scenario() -> None:
        screen, _ = _make()
        async with screen.store:
            assert await screen.purchase_bundle() is False
            assert screen.last_transaction is None

    asyncio.run(scenario())


def test_individual_purchases_dismiss_once_everything_is_owned() -> None:
    async def scenario() -> None:
        screen, _ = _make()
        async with screen.store:
            await screen.store.load_products()
            results = [await screen.purchase_individual(pid) for pid in INDIVIDUALS]
            assert results == [False, False, True]
            assert not screen.store.is_purchased(BUNDLE)

    asyncio.run(scenario())


def test_purchase_failure_is_kept_on_the_screen_only() -> None:
    async def scenario() -> None:
        screen, commerce = _make()
        async with screen.store:
            await screen.store.load_products()
            commerce.queue_outcome("failed")
            assert await screen.purchase_individual(INDIVIDUALS[0]) is False
            assert screen.purchase_error == "The purchase could not be completed."
            assert screen.store.error is None
            assert any("could not be completed" in line for line in screen.render())

            assert await screen.purchase_individual(INDIVIDUALS[0]) is False
            assert screen.purchase_error is None

    asyncio.run(scenario())


def test_render_pricing_card() -> None:
    async def scenario() -> None:
        screen, _ = _make()
        async with screen.store:
            await screen.store.load_products()
            text = "\n".join(screen.render())
            assert "OKVideo Pro" in text
            assert "One-time Purchase  €6.99  (instead of €8.97)  SAVE 22%" in text
            assert "Remove Watermark - Professional, clean exports" in text
            assert "Unlock OKVideo Pro" in text

            await screen.purchase_individual("com.okvideo.watermark")
            watermark = next(line for line in screen.render() if "Remove Watermark" in line)
            assert watermark.startswith("  [x]")
            assert watermark.endswith("owned")

    asyncio.run(scenario())


def test_render_when_prices_failed_to_load() -> None:
    async def scenario() -> None:
        screen, commerce = _make()
        async with screen.store:
            commerce.online = False
            await screen.store.load_products()
            lines = screen.render()
            assert "Could not load prices" in lines
            assert lines[0] == BUNDLE

    asyncio.run(scenario())
