import pytest

from account_rotator.accounts.types import Account
from account_rotator.usage.tracking.engine import UsageTracker, parse_rate_limit_headers
from account_rotator.usage.types import (
    AccountUsage,
    Metric,
    MetricName,
    MetricObservation,
    RuntimeState,
    UsageObservation,
)
from conftest import NOW

PREFIX = "anthropic-ratelimit-unified-"


def full_headers(session: str = "0.25", weekly: str = "0.5", sonnet: str = "0.1") -> dict:
    return {
        f"{PREFIX}5h-utilization": session,
        f"{PREFIX}5h-reset": str(int(NOW + 3600)),
        f"{PREFIX}5h-status": "allowed",
        f"{PREFIX}7d-utilization": weekly,
        f"{PREFIX}7d-reset": str(int(NOW + 86400)),
        f"{PREFIX}7d-status": "allowed",
        f"{PREFIX}7d_sonnet-utilization": sonnet,
        f"{PREFIX}7d_sonnet-reset": str(int(NOW + 86400)),
        f"{PREFIX}7d_sonnet-status": "allowed_warning",
    }


def test_parse_all_metrics() -> None:
    observation = parse_rate_limit_headers(full_headers(), observed_at=NOW)

    assert observation.observed_at == NOW
    assert observation.get(MetricName.SESSION) == MetricObservation(0.25, NOW + 3600, "allowed")
    assert observation.get(MetricName.WEEKLY_ALL).utilization == 0.5
    assert observation.get(MetricName.WEEKLY_NARROW).status == "allowed_warning"


def test_parse_is_case_insensitive() -> None:
    headers = {"Anthropic-RateLimit-Unified-5h-Utilization": "0.3"}

    observation = parse_rate_limit_headers(headers, observed_at=NOW)

    assert observation.get(MetricName.SESSION).utilization == 0.3


def test_malformed_values_are_absent_not_zero() -> None:
    headers = {
        f"{PREFIX}5h-utilization": "abc",
        f"{PREFIX}5h-reset": "NaN",
        f"{PREFIX}7d-utilization": "inf",
    }

    observation = parse_rate_limit_headers(headers, observed_at=NOW)

    assert observation.is_empty
    assert observation.get(MetricName.SESSION) == MetricObservation()


def test_utilization_is_clamped() -> None:
    headers = {f"{PREFIX}5h-utilization": "1.3", f"{PREFIX}7d-utilization": "-0.2"}

    observation = parse_rate_limit_headers(headers, observed_at=NOW)

    assert observation.get(MetricName.SESSION).utilization == 1.0
    assert observation.get(MetricName.WEEKLY_ALL).utilization == 0.0


def test_reconcile_adds_missing_accounts() -> None:
    state = RuntimeState()
    accounts = [Account(name="a"), Account(name="b")]

    assert UsageTracker().reconcile(accounts, state, NOW) is True
    assert state.usage == {"a": AccountUsage(), "b": AccountUsage()}
    assert UsageTracker().reconcile(accounts, state, NOW) is False


def test_reconcile_clears_stale_metrics_but_keeps_reset() -> None:
    state = RuntimeState(
        usage={
            "a": AccountUsage(
                session=Metric(utilization=0.9, reset_at=NOW - 1, status="rejected"),
                weekly_all=Metric(utilization=0.6, reset_at=NOW + 100),
            )
        }
    )

    changed = UsageTracker().reconcile([Account(name="a")], state, NOW)

    assert changed is True
    usage = state.usage["a"]
    assert usage.session == Metric(utilization=0.0, reset_at=NOW - 1, status="allowed")
    assert usage.weekly_all.utilization == 0.6


def test_reconcile_keeps_usage_of_unknown_accounts() -> None:
    state = RuntimeState(usage={"removed": AccountUsage()})

    UsageTracker().reconcile([Account(name="a")], state, NOW)

    assert set(state.usage) == {"removed", "a"}


def test_partial_telemetry_preserves_known_values() -> None:
    tracker = UsageTracker()
    state = RuntimeState()
    tracker.update_from_headers(state, "a", full_headers(), now=NOW)

    # Later response only carries the session window
    tracker.update_from_headers(
        state,
        "a",
        {f"{PREFIX}5h-utilization": "0.4"},
        now=NOW + 60,
    )

    usage = state.usage["a"]
    assert usage.session.utilization == 0.4
    assert usage.session.reset_at == NOW + 3600
    assert usage.weekly_all.utilization == 0.5
    assert usage.weekly_narrow.status == "allowed_warning"
    assert usage.observed_at == NOW + 60


def test_observation_with_only_status() -> None:
    state = RuntimeState(usage={"a": AccountUsage(session=Metric(utilization=0.3, reset_at=NOW))})
    observation = UsageObservation(
        metrics={MetricName.SESSION: MetricObservation(status="rejected")},
        observed_at=NOW,
    )

    UsageTracker().update_from_observation(state, "a", observation)

    assert state.usage["a"].session == Metric(utilization=0.3, reset_at=NOW, status="rejected")


@pytest.mark.parametrize("value", ["", "  ", "1e400"])
def test_unusable_utilization_strings(value: str) -> None:
    observation = parse_rate_limit_headers({f"{PREFIX}5h-utilization": value}, observed_at=NOW)
    assert observation.get(MetricName.SESSION).utilization is None
