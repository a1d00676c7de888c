# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Mirrowel

import asyncio
import time
from datetime import datetime
from typing import Optional, Sequence

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from account_rotator import Account, RotatingAccountClient, RuntimeState
from account_rotator.usage.config import apply_env_overrides
from account_rotator.usage.types import AccountUsage, Thresholds

BAR_WIDTH = 30
WATCH_INTERVAL_SECONDS = 5


def usage_color(utilization: float) -> str:
    if utilization >= 0.70:
        return "red"
    if utilization >= 0.50:
        return "yellow"
    return "green"


def progress_bar(utilization: float, width: int = BAR_WIDTH) -> Text:
    filled = round(max(0.0, min(1.0, utilization)) * width)
    bar = Text("█" * filled, style=usage_color(utilization))
    bar.append("░" * (width - filled), style="dim")
    bar.append(f"  {round(utilization * 100)}%", style=usage_color(utilization))
    return bar


def format_reset(reset_at: Optional[float], now: Optional[float] = None) -> str:
    """Human-readable time until a window resets."""
    if reset_at is None:
        return "unknown"
    now = time.time() if now is None else now
    remaining = int(reset_at - now)
    if remaining <= 0:
        return "now"

    days, remainder = divmod(remaining, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes = remainder // 60
    if days:
        return f"in {days}d {hours}h"
    if hours:
        return f"in {hours}h {minutes}m"
    return f"in {minutes}m"


def build_account_panel(
    account: Account,
    usage: Optional[AccountUsage],
    thresholds: Thresholds,
    active: bool,
    now: Optional[float] = None,
) -> Panel:
    title = f"[bold cyan]{account.name}  ◄ ACTIVE[/bold cyan]" if active else account.name

    if usage is None:
        return Panel(Text("No usage data yet", style="dim"), title=title, title_align="left")

    lines = []
    for name, metric in usage.items():
        header = Text(name.label, style="bold")
        header.append(f"  (threshold {round(thresholds.get(name) * 100)}%)", style="dim")
        lines.append(header)
        lines.append(progress_bar(metric.utilization))
        lines.append(Text(f"Resets {format_reset(metric.reset_at, now)}", style="dim"))

    return Panel(
        Group(*lines),
        title=title,
        title_align="left",
        border_style="cyan" if active else "white",
    )


def build_usage_view(
    accounts: Sequence[Account],
    state: RuntimeState,
    now: Optional[float] = None,
    watch: bool = False,
) -> Group:
    if not accounts:
        return Group(Text("No accounts configured.", style="yellow"))

    thresholds = apply_env_overrides(state.config).thresholds
    panels = [
        build_account_panel(
            account,
            state.usage.get(account.name),
            thresholds,
            active=state.active_account_name == account.name,
            now=now,
        )
        for account in accounts
    ]
    if watch:
        panels.append(
            Text(
                f"Updated: {datetime.now().strftime('%H:%M:%S')}  |  Ctrl+C to exit",
                style="dim",
            )
        )
    return Group(*panels)


async def show_usage(
    client: RotatingAccountClient,
    console: Console,
    watch: bool = False,
    interval: float = WATCH_INTERVAL_SECONDS,
) -> None:
    """Render usage once, or keep re-rendering until interrupted."""
    accounts, state = await client.snapshot()
    if not watch:
        console.print(build_usage_view(accounts, state))
        return

    with Live(build_usage_view(accounts, state, watch=True), console=console) as live:
        while True:
            await asyncio.sleep(interval)
            accounts, state = await client.snapshot()
            live.update(build_usage_view(accounts, state, watch=True))
