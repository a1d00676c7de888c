import pytest

from account_rotator.usage.config import (
    apply_env_overrides,
    config_from_dict,
    config_to_dict,
    normalize_thresholds,
    update_config,
)
from account_rotator.usage.types import RotationConfig, Thresholds


def test_number_applies_to_all_metrics() -> None:
    assert normalize_thresholds(0.8) == Thresholds.uniform(0.8)


def test_invalid_threshold_falls_back() -> None:
    assert normalize_thresholds("high") == Thresholds.uniform(0.70)
    assert normalize_thresholds(1.5) == Thresholds.uniform(0.70)
    assert normalize_thresholds(True) == Thresholds.uniform(0.70)
    assert normalize_thresholds(None, fallback=0.6) == Thresholds.uniform(0.6)


def test_config_round_trip() -> None:
    config = RotationConfig(thresholds=Thresholds(0.95, 0.8, 0.9), recovery_interval=900)

    data = config_to_dict(config)

    assert data == {
        "threshold": {"session5h": 0.95, "weekly7d": 0.8, "weekly7dSonnet": 0.9},
        "checkInterval": 900000,
    }
    assert config_from_dict(data) == config


def test_invalid_interval_is_ignored() -> None:
    assert config_from_dict({"checkInterval": -5}).recovery_interval == 3600
    assert config_from_dict(None) == RotationConfig()


def test_update_single_and_per_metric() -> None:
    config = update_config(RotationConfig(), threshold=0.9)
    assert config.thresholds == Thresholds.uniform(0.9)

    config = update_config(config, session=0.95, sonnet=0.5)
    assert config.thresholds == Thresholds(session=0.95, weekly_all=0.9, weekly_narrow=0.5)

    config = update_config(config, thresholds=[0.6, 0.7, 0.8], interval_minutes=15)
    assert config == RotationConfig(thresholds=Thresholds(0.6, 0.7, 0.8), recovery_interval=900)


def test_update_reset() -> None:
    config = RotationConfig(thresholds=Thresholds.uniform(0.2), recovery_interval=60)
    assert update_config(config, reset=True) == RotationConfig()


@pytest.mark.parametrize(
    "edits",
    [
        {"threshold": 1.2},
        {"weekly": -0.1},
        {"thresholds": [0.5, 0.5]},
        {"interval_minutes": -1},
        {"interval_minutes": float("nan")},
        {"interval_minutes": float("inf")},
    ],
)
def test_update_rejects_out_of_range(edits) -> None:
    with pytest.raises(ValueError):
        update_config(RotationConfig(), **edits)


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    config = RotationConfig()

    monkeypatch.setenv("ROTATOR_THRESHOLD", "0.55")
    monkeypatch.setenv("ROTATOR_CHECK_INTERVAL_MINUTES", "10")
    overridden = apply_env_overrides(config)

    assert overridden == RotationConfig(thresholds=Thresholds.uniform(0.55), recovery_interval=600)
    assert config == RotationConfig()


def test_invalid_env_overrides_are_ignored(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ROTATOR_THRESHOLD", "loads")
    monkeypatch.setenv("ROTATOR_CHECK_INTERVAL_MINUTES", "soon")

    assert apply_env_overrides(RotationConfig()) == RotationConfig()


@pytest.mark.parametrize("value", ["-5", "nan", "inf"])
def test_env_interval_must_be_finite_and_non_negative(
    monkeypatch: pytest.MonkeyPatch, value: str
) -> None:
    monkeypatch.setenv("ROTATOR_CHECK_INTERVAL_MINUTES", value)

    assert apply_env_overrides(RotationConfig()).recovery_interval == 3600
