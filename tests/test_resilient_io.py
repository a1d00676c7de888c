import json
import os
from pathlib import Path

import pytest

from account_rotator.utils.resilient_io import (
    backup_path,
    read_json,
    safe_write_json,
    temp_path,
)


@pytest.mark.asyncio
async def test_write_then_read(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "state.json"

    assert await safe_write_json(target, {"a": 1}) is True
    assert await read_json(target) == {"a": 1}
    assert not temp_path(target).exists()


@pytest.mark.asyncio
async def test_previous_content_kept_as_backup(tmp_path: Path) -> None:
    target = tmp_path / "state.json"
    await safe_write_json(target, {"version": 1})
    await safe_write_json(target, {"version": 2})

    assert json.loads(backup_path(target).read_text()) == {"version": 1}
    assert json.loads(target.read_text()) == {"version": 2}


@pytest.mark.asyncio
async def test_missing_file_returns_default(tmp_path: Path) -> None:
    assert await read_json(tmp_path / "absent.json", default={"x": 0}) == {"x": 0}


@pytest.mark.asyncio
async def test_corrupt_file_recovers_from_backup(tmp_path: Path, caplog) -> None:
    target = tmp_path / "state.json"
    backup_path(target).write_text(json.dumps({"ok": True}))
    target.write_text("{not json")

    with caplog.at_level("WARNING", logger="account_rotator"):
        assert await read_json(target) == {"ok": True}
    assert "Recovered" in caplog.text


@pytest.mark.asyncio
async def test_corrupt_file_and_backup_yield_default(tmp_path: Path) -> None:
    target = tmp_path / "state.json"
    target.write_text("garbage")
    backup_path(target).write_text("also garbage")

    assert await read_json(target, default=[]) == []


@pytest.mark.asyncio
async def test_interrupted_rename_leaves_old_content(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    target = tmp_path / "state.json"
    await safe_write_json(target, {"version": 1})

    def crash(self, other):
        raise OSError("simulated crash before rename")

    monkeypatch.setattr(Path, "replace", crash)

    assert await safe_write_json(target, {"version": 2}) is False

    # Readers see either the old or the new content, never a partial file
    assert json.loads(target.read_text()) == {"version": 1}
    assert await read_json(target) == {"version": 1}


@pytest.mark.asyncio
async def test_interrupted_first_write_recovers_nothing_partial(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    target = tmp_path / "state.json"
    def crash(self, other):
        raise OSError("boom")

    monkeypatch.setattr(Path, "replace", crash)

    assert await safe_write_json(target, {"version": 1}) is False
    assert not target.exists()
    assert await read_json(target, default=None) is None


@pytest.mark.asyncio
@pytest.mark.skipif(os.name != "posix", reason="POSIX permissions only")
async def test_secure_permissions(tmp_path: Path) -> None:
    target = tmp_path / "accounts.json"
    await safe_write_json(target, {"accounts": []}, secure_permissions=True)

    assert target.stat().st_mode & 0o777 == 0o600


@pytest.mark.asyncio
async def test_unserializable_data_is_reported(tmp_path: Path) -> None:
    target = tmp_path / "state.json"
    assert await safe_write_json(target, {"bad": object()}) is False
    assert not target.exists()
