import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

import pytest
import pytest_asyncio


ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from account_rotator.accounts.store import AccountStore
from account_rotator.usage.persistence.storage import StateStorage

NOW = 1_700_000_000.0


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ROTATOR_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.delenv("ROTATOR_THRESHOLD", raising=False)
    monkeypatch.delenv("ROTATOR_CHECK_INTERVAL_MINUTES", raising=False)
    monkeypatch.delenv("ROTATOR_DATA_DIR", raising=False)
    yield

    # The failure log handler is bound to the directory of the test that created it
    failure_logger = logging.getLogger("account_rotator.failures")
    for handler in list(failure_logger.handlers):
        failure_logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def write_json():
    def _write(path: Path, data: Any) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write


def account_record(name: str, expires_in: float = 3600, **extra: Any) -> Dict[str, Any]:
    record = {
        "name": name,
        "access": f"access-{name}",
        "refresh": f"refresh-{name}",
        "expires": int((NOW + expires_in) * 1000),
    }
    record.update(extra)
    return record


@pytest.fixture
def seeded_accounts(data_dir: Path, write_json) -> List[Dict[str, Any]]:
    # Far-future expiry so no refresh is needed against the real clock
    records = [
        account_record("primary", expires_in=10 * 365 * 86400),
        account_record("backup", expires_in=10 * 365 * 86400),
    ]
    write_json(data_dir / "multi-account-auth.json", {"accounts": records})
    return records


@pytest_asyncio.fixture
async def account_store(data_dir: Path) -> AccountStore:
    return AccountStore.for_data_dir(data_dir)


@pytest_asyncio.fixture
async def state_storage(data_dir: Path) -> StateStorage:
    return StateStorage.for_data_dir(data_dir)
