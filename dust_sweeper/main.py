"""
Dust Sweeper command line.

    dust-sweeper scan --wallet <address> [--refresh]
    dust-sweeper sweep [--refresh] [--yes]
    dust-sweeper clear-cache
    dust-sweeper config [--unmask]
"""

import argparse
import asyncio
import json
import sys
import traceback
from typing import Any, List, Optional

from pydantic import SecretStr

from .cache import open_caches
from .config import Settings, get_settings
from .exceptions import DustSweeperError, is_retryable
from .formatting import SweepSummary, format_amount, shorten_address
from .logger import setup_logging
from .models import QuotedAsset, SwapEvent, SwapPhase
from .session import SweepSession
from .transaction import KeypairSigner
from .validators import validate_solana_address


# =============================================================================
# Output
# =============================================================================

def print_assets(assets: List[QuotedAsset]) -> None:
    if not assets:
        print("No dust found.")
        return

    for asset in assets:
        mark = "[x]" if asset.selected else "[ ]"
        symbol = asset.asset.symbol or shorten_address(asset.mint)
        amount = format_amount(asset.asset.ui_amount)
        if asset.tradeable:
            value = f"~{format_amount(asset.quote_out_amount_ui, 6)} SOL"
        else:
            value = asset.error_reason or "Cannot swap"
        print(f"{mark} {symbol:<12} {amount:>20}  {value}")

    tradeable = sum(1 for a in assets if a.tradeable)
    print(f"\n{tradeable} tradeable, {len(assets) - tradeable} untradeable")


def print_event(event: SwapEvent) -> None:
    if event.phase == SwapPhase.SIGNING and event.result is None:
        print(">>> Signing all transactions <<<")
        return
    if event.result is None:
        return

    result = event.result
    label = shorten_address(result.mint)
    if result.success and event.phase == SwapPhase.BUILDING:
        print(f"BUILDING: {label} ok")
    elif result.success:
        print(f"SWAPPED:  {label} +{format_amount(result.amount_out or 0, 9)} SOL {result.signature}")
    else:
        suffix = f" ({result.signature})" if result.signature else ""
        print(f"FAILED:   {label} {result.error}{suffix}")


def print_settings(settings: Settings, unmask: bool = False) -> None:
    def plain(value: Any) -> Any:
        if isinstance(value, SecretStr):
            return value.get_secret_value()
        if isinstance(value, dict):
            return {k: plain(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [plain(v) for v in value]
        return value

    data = plain(settings.model_dump()) if unmask else settings.mask_secrets()
    print(json.dumps(data, indent=2, default=str))


# =============================================================================
# Commands
# =============================================================================

def _progress(current: int, total: int) -> None:
    print(f"\rQuoting {current}/{total}...", end="", file=sys.stderr, flush=True)
    if current == total:
        print(file=sys.stderr)


async def cmd_scan(args: argparse.Namespace, settings: Settings) -> int:
    owner = validate_solana_address(args.wallet, "wallet")
    async with SweepSession(settings) as session:
        assets = await session.scan(owner, on_progress=_progress, force_refresh=args.refresh)
        print_assets(assets)
        if session.selected_assets:
            print(f"Selected value: ~{format_amount(session.selected_total_sol, 6)} SOL")
    return 0


async def cmd_sweep(args: argparse.Namespace, settings: Settings) -> int:
    if settings.wallet.private_key is None:
        print("WALLET_PRIVATE_KEY is not set", file=sys.stderr)
        return 2

    signer = KeypairSigner.from_base58(settings.wallet.private_key.get_secret_value())

    async with SweepSession(settings) as session:
        await session.scan(signer.pubkey, on_progress=_progress, force_refresh=args.refresh)
        print_assets(session.assets)

        selected = session.selected_assets
        if not selected:
            return 0

        max_batch = settings.sweep.max_batch_size
        if len(selected) > max_batch:
            print(
                f"Warning: {len(selected)} assets selected, sweeping the top {max_batch}",
                file=sys.stderr,
            )
            session.select_only([a.mint for a in selected[:max_batch]])
            selected = session.selected_assets

        total_sol = format_amount(session.selected_total_sol, 6)
        if not args.yes:
            answer = await asyncio.to_thread(
                input, f"Sweep {len(selected)} assets for ~{total_sol} SOL? [y/N] "
            )
            if answer.strip().lower() not in ("y", "yes"):
                print("Aborted.")
                return 1

        results = await session.sweep(signer, on_progress=print_event)
        summary = SweepSummary.from_results(results, total=len(selected))
        print(f"\n{summary}")
        return 0 if summary.failed == 0 else 1


def cmd_clear_cache(settings: Settings) -> int:
    quote_cache, asset_cache = open_caches(settings.cache)
    quote_cache.clear()
    asset_cache.clear()
    print("Caches cleared.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dust-sweeper",
        description="Convert low-value Solana token balances into SOL",
    )
    subparsers = parser.add_subparsers(dest="command")

    scan = subparsers.add_parser("scan", help="List a wallet's dust with SOL quotes")
    scan.add_argument("--wallet", required=True, help="Wallet address")
    scan.add_argument("--refresh", action="store_true", help="Ignore cached balances and quotes")

    sweep = subparsers.add_parser("sweep", help="Sweep every tradeable asset of WALLET_PRIVATE_KEY")
    sweep.add_argument("--refresh", action="store_true", help="Ignore cached balances and quotes")
    sweep.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

    subparsers.add_parser("clear-cache", help="Delete cached balances and quotes")

    config = subparsers.add_parser("config", help="Show current settings")
    config.add_argument("--unmask", action="store_true", help="Show unmasked secrets (dangerous)")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 1

    settings = get_settings()
    logger = setup_logging(settings.logging)

    try:
        if args.command == "config":
            print_settings(settings, unmask=args.unmask)
            return 0
        if args.command == "clear-cache":
            return cmd_clear_cache(settings)
        if args.command == "scan":
            return asyncio.run(cmd_scan(args, settings))
        if args.command == "sweep":
            return asyncio.run(cmd_sweep(args, settings))
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130
    except DustSweeperError as e:
        logger.error(f"{e}")
        print(f"Error: {e.message}", file=sys.stderr)
        if is_retryable(e):
            print("This looks temporary, try again shortly.", file=sys.stderr)
        return 1
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        logger.debug(traceback.format_exc())
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
