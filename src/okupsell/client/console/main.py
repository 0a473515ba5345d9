from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path

from okupsell.paths import get_paths
from okupsell.services.catalog import ConfigError
from okupsell.services.ledger import LedgerError
from okupsell.store.errors import CommerceError, StoreError

from .app import App, AppContext, build_context
from .paywall import PaywallScreen

DEV_SECRET = "okupsell-local-storefront"


def _print_paywall(screen: PaywallScreen) -> None:
    for line in screen.render():
        print(line)


async def _cmd_paywall(ctx: AppContext, screen: PaywallScreen) -> int:
    _print_paywall(screen)
    return 1 if ctx.store.error is not None else 0


def _cmd_buy(product_id: str, outcome: str):
    async def run(ctx: AppContext, screen: PaywallScreen) -> int:
        if product_id not in ctx.store.products:
            print(f"Unknown product: {product_id}", file=sys.stderr)
            return 1
        ctx.commerce.queue_outcome(outcome)  # type: ignore[arg-type]
        if product_id == ctx.config.bundle_id:
            dismissed = await screen.purchase_bundle()
        else:
            dismissed = await screen.purchase_individual(product_id)
        if screen.purchase_error is not None:
            print(screen.purchase_error, file=sys.stderr)
            return 1
        if screen.last_transaction is None:
            print("No purchase made (cancelled or awaiting approval).")
        else:
            print(f"Purchased {product_id} ({screen.last_transaction.id}).")
        if dismissed:
            print("Everything is unlocked.")
        return 0

    return run


async def _cmd_restore(ctx: AppContext, screen: PaywallScreen) -> int:
    if not await screen.restore():
        print(ctx.store.error_message, file=sys.stderr)
        return 1
    owned = sorted(ctx.store.purchased_product_ids)
    print("Restored: " + (", ".join(owned) if owned else "nothing to restore"))
    return 0


def _cmd_storefront_event(action: str, target: str):
    async def run(ctx: AppContext, screen: PaywallScreen) -> int:
        if action == "grant":
            t = ctx.commerce.grant(target)
        elif action == "approve":
            t = ctx.commerce.approve_pending(target)
        else:
            t = ctx.commerce.refund(target)
        await ctx.store.refresh_entitlements()
        print(f"{action}: {t.product_id} ({t.id})")
        _print_paywall(screen)
        return 0

    return run


async def _cmd_history(ctx: AppContext, screen: PaywallScreen) -> int:
    for rec in ctx.telemetry.events()[-20:]:
        print(f"{rec.get('ts')}  {rec.get('type')}  {rec.get('payload')}")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="okupsell", description="OKVideo Pro paywall against a local storefront.")
    parser.add_argument("--userdata", type=Path, default=None, help="directory for the ledger and telemetry")
    parser.add_argument(
        "--secret",
        default=os.environ.get("OKUPSELL_SIGNING_SECRET", DEV_SECRET),
        help="transaction signing secret of the local storefront",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("paywall", help="show the paywall")
    buy = sub.add_parser("buy", help="purchase a product")
    buy.add_argument("product_id")
    buy.add_argument("--outcome", choices=["success", "cancelled", "pending", "failed"], default="success")
    sub.add_parser("restore", help="restore purchases")
    grant = sub.add_parser("grant", help="simulate a purchase made on another device")
    grant.add_argument("product_id")
    approve = sub.add_parser("approve", help="approve a pending purchase")
    approve.add_argument("product_id")
    refund = sub.add_parser("refund", help="refund a transaction")
    refund.add_argument("transaction_id")
    sub.add_parser("history", help="show recent store events")
    sub.add_parser("validate", help="validate the product configuration")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    paths = get_paths(args.userdata)

    try:
        ctx = build_context(paths, args.secret)
        if args.command == "validate":
            ctx.catalog.validate_all()
            print("OK")
            return 0
        if args.command == "paywall":
            command = _cmd_paywall
        elif args.command == "buy":
            command = _cmd_buy(args.product_id, args.outcome)
        elif args.command == "restore":
            command = _cmd_restore
        elif args.command == "history":
            command = _cmd_history
        else:
            target = args.transaction_id if args.command == "refund" else args.product_id
            command = _cmd_storefront_event(args.command, target)
        return asyncio.run(App(ctx).run(command))
    except (ConfigError, LedgerError, CommerceError, StoreError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
