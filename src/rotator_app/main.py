# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Mirrowel

import argparse
import asyncio
import logging
from typing import List, Optional

from dotenv import load_dotenv
from rich.console import Console

from account_rotator import RotatingAccountClient
from account_rotator.usage.config import apply_env_overrides
from account_rotator.usage.types import RuntimeState
from account_rotator.utils import format_account_for_display

from .usage_viewer import show_usage

console = Console()


def parse_percent_list(value: str) -> List[float]:
    """Parse ``95,80,90`` into fractions for session, weekly and sonnet."""
    try:
        parts = [float(part) / 100 for part in value.split(",")]
    except ValueError:
        raise argparse.ArgumentTypeError(
            "expected <session>,<weekly>,<sonnet> in percent, e.g. 95,80,90"
        )
    if len(parts) != 3:
        raise argparse.ArgumentTypeError(
            "expected exactly three values: <session>,<weekly>,<sonnet>"
        )
    return parts


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rotator_app",
        description="Inspect and configure multi-account rotation.",
    )
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory holding the account and state files (default: $ROTATOR_DATA_DIR)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command")

    usage = subparsers.add_parser("usage", aliases=["u"], help="Show per-account usage")
    usage.add_argument("-w", "--watch", action="store_true", help="Refresh every 5 seconds")

    config = subparsers.add_parser("config", aliases=["c"], help="Show or change thresholds")
    config.add_argument("--show", action="store_true", help="Print the current config")
    config.add_argument("--threshold", type=float, help="Threshold for all metrics (0-1)")
    config.add_argument(
        "--thresholds",
        type=parse_percent_list,
        help="Session, weekly and sonnet thresholds in percent, e.g. 95,80,90",
    )
    config.add_argument("--threshold-session", type=float, help="Session (5h) threshold (0-1)")
    config.add_argument("--threshold-weekly", type=float, help="Weekly (all) threshold (0-1)")
    config.add_argument("--threshold-sonnet", type=float, help="Weekly (Sonnet) threshold (0-1)")
    config.add_argument("--interval", type=float, help="Recovery check interval in minutes")
    config.add_argument("--reset", action="store_true", help="Restore the defaults")

    subparsers.add_parser("accounts", aliases=["a"], help="List configured accounts")
    return parser


def print_config(state: RuntimeState) -> None:
    config = apply_env_overrides(state.config)
    thresholds = config.thresholds

    console.print("\n  [bold]Current config:[/bold]")
    if thresholds.all_same:
        console.print(f"    Threshold:      {round(thresholds.session * 100)}%")
    else:
        console.print("    Threshold:")
        console.print(f"      Session (5h):    {round(thresholds.session * 100)}%")
        console.print(f"      Weekly (all):    {round(thresholds.weekly_all * 100)}%")
        console.print(f"      Weekly (Sonnet): {round(thresholds.weekly_narrow * 100)}%")
    console.print(f"    Check interval: {config.recovery_interval / 60:g} min\n")


async def cmd_usage(args: argparse.Namespace, client: RotatingAccountClient) -> int:
    await show_usage(client, console, watch=args.watch)
    return 0


async def cmd_config(args: argparse.Namespace, client: RotatingAccountClient) -> int:
    edits = {
        "threshold": args.threshold,
        "thresholds": args.thresholds,
        "session": args.threshold_session,
        "weekly": args.threshold_weekly,
        "sonnet": args.threshold_sonnet,
        "interval_minutes": args.interval,
    }
    edits = {key: value for key, value in edits.items() if value is not None}

    if args.show or not (edits or args.reset):
        _, state = await client.snapshot()
        print_config(state)
        return 0

    state, switched = await client.configure(reset=args.reset, **edits)
    console.print("[green]✓[/green] " + ("Reset to defaults" if args.reset else "Config updated"))
    if switched:
        console.print(f"  [bold yellow]Auto-switch:[/bold yellow] now using {switched}")
    print_config(state)
    return 0


async def cmd_accounts(args: argparse.Namespace, client: RotatingAccountClient) -> int:
    accounts, state = await client.snapshot()
    if not accounts:
        console.print("[yellow]No accounts configured.[/yellow]")
        return 1

    for index, account in enumerate(accounts):
        role = "primary" if index == 0 else f"fallback {index}"
        marker = " [bold cyan]◄ ACTIVE[/bold cyan]" if account.name == state.active_account_name else ""
        console.print(
            f"  {format_account_for_display(account)}  [dim]({role})[/dim]{marker}",
            soft_wrap=True,
        )
    console.print(f"\n  Requests served: {state.request_count}")
    return 0


COMMANDS = {
    "usage": cmd_usage,
    "u": cmd_usage,
    "config": cmd_config,
    "c": cmd_config,
    "accounts": cmd_accounts,
    "a": cmd_accounts,
}


def main(argv: Optional[List[str]] = None) -> int:
    # Load environment variables from .env file
    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 0

    client = RotatingAccountClient(data_dir=args.data_dir)
    try:
        return asyncio.run(COMMANDS[args.command](args, client))
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        return 2
    except KeyboardInterrupt:
        return 0
