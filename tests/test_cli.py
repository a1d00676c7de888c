import json
from pathlib import Path

import pytest
from rich.console import Console

from account_rotator.accounts.types import Account
from account_rotator.usage.types import AccountUsage, Metric, RuntimeState
from conftest import NOW
from rotator_app.main import build_parser, main, parse_percent_list
from rotator_app.usage_viewer import build_usage_view, format_reset, usage_color


def test_percent_list() -> None:
    assert parse_percent_list("95,80,90") == [0.95, 0.8, 0.9]


def test_percent_list_rejects_wrong_length() -> None:
    parser = build_parser()
    with pytest.raises(SystemExit):
        parser.parse_args(["config", "--thresholds", "95,80"])


def test_usage_colors() -> None:
    assert usage_color(0.2) == "green"
    assert usage_color(0.5) == "yellow"
    assert usage_color(0.7) == "red"


def test_format_reset() -> None:
    assert format_reset(None, NOW) == "unknown"
    assert format_reset(NOW - 1, NOW) == "now"
    assert format_reset(NOW + 90 * 60, NOW) == "in 1h 30m"
    assert format_reset(NOW + 2 * 86400 + 3600, NOW) == "in 2d 1h"


def test_usage_view_renders_accounts(capsys) -> None:
    state = RuntimeState(
        active_account_name="primary",
        usage={"primary": AccountUsage(session=Metric(utilization=0.42, reset_at=NOW + 60))},
    )
    console = Console(width=100, force_terminal=False)
    console.print(build_usage_view([Account(name="primary"), Account(name="backup")], state, now=NOW))

    output = capsys.readouterr().out
    assert "primary" in output
    assert "ACTIVE" in output
    assert "42%" in output
    assert "(threshold 70%)" in output
    assert "No usage data yet" in output


def test_config_command_updates_state(data_dir: Path, seeded_accounts, capsys) -> None:
    code = main(["--data-dir", str(data_dir), "config", "--thresholds", "95,80,90", "--interval", "30"])

    assert code == 0
    saved = json.loads((data_dir / "multi-account-state.json").read_text())
    assert saved["config"] == {
        "threshold": {"session5h": 0.95, "weekly7d": 0.8, "weekly7dSonnet": 0.9},
        "checkInterval": 1800000,
    }
    output = capsys.readouterr().out
    assert "Session (5h):    95%" in output
    assert "Check interval: 30 min" in output


def test_config_command_rejects_out_of_range(data_dir: Path, seeded_accounts, capsys) -> None:
    code = main(["--data-dir", str(data_dir), "config", "--threshold", "1.5"])

    assert code == 2
    assert "between 0 and 1" in capsys.readouterr().out


def test_config_show_defaults(data_dir: Path, capsys) -> None:
    assert main(["--data-dir", str(data_dir), "config"]) == 0
    output = capsys.readouterr().out
    assert "Threshold:      70%" in output
    assert "Check interval: 60 min" in output


def test_accounts_command(data_dir: Path, seeded_accounts, capsys) -> None:
    assert main(["--data-dir", str(data_dir), "accounts"]) == 0
    output = capsys.readouterr().out
    assert "primary" in output
    assert "fallback 1" in output
    assert "refresh-primary" not in output
