"""
Test configuration: ensures repo root is in sys.path + determinism guards.

This allows tests to import from top-level packages (pulse, api, cli).
Enforces determinism by blocking live DB access and pointing the app home
at a temp directory for every test.
"""

import sqlite3
import sys
from pathlib import Path

import pytest

# Add repo root to sys.path so tests can import pulse.*, api.*, cli.*
REPO_ROOT = Path(__file__).parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from pulse import config  # noqa: E402
from pulse.store import RecordStore  # noqa: E402
from tests.fixtures.fixture_db import FIXED_NOW, create_fixture_db  # noqa: E402

# =============================================================================
# DETERMINISM GUARD: Block live database access
# =============================================================================

HOME_DB_ABSOLUTE = Path.home() / ".delivery_pulse" / "data" / "pulse.db"
_FORBIDDEN_DB_PATTERNS = [str(HOME_DB_ABSOLUTE), ".delivery_pulse/data/pulse.db"]

_original_sqlite_connect = sqlite3.connect


def _guarded_sqlite_connect(database, *args, **kwargs):
    """Intercept sqlite3.connect to block live DB access."""
    db_str = str(database)
    if any(pattern in db_str for pattern in _FORBIDDEN_DB_PATTERNS):
        raise RuntimeError(
            f"DETERMINISM VIOLATION: Test attempted to access live DB at {database}.\n"
            "Tests must use fixture_db from tests/fixtures/fixture_db.py.\n"
            "Use: from tests.fixtures import create_fixture_db"
        )
    return _original_sqlite_connect(database, *args, **kwargs)


@pytest.fixture(autouse=True)
def guard_live_db_access(monkeypatch):
    """Automatically guard all tests against live DB access."""
    monkeypatch.setattr(sqlite3, "connect", _guarded_sqlite_connect)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Point PULSE_HOME at a temp dir and start from default settings."""
    home = tmp_path / "pulse_home"
    monkeypatch.setenv("PULSE_HOME", str(home))
    monkeypatch.delenv("PULSE_DB", raising=False)
    monkeypatch.delenv("PULSE_API_TOKEN", raising=False)
    config.reset_settings()
    yield home
    config.reset_settings()


# =============================================================================
# FIXTURE DB FOR INTEGRATION TESTS
# =============================================================================


@pytest.fixture
def now():
    """Pinned clock the fixture data is dated against."""
    return FIXED_NOW


@pytest.fixture
def fixture_db_path(tmp_path, now):
    db_path = tmp_path / "fixture_test.db"
    conn = create_fixture_db(db_path, now)
    conn.close()
    return db_path


@pytest.fixture
def store(fixture_db_path):
    return RecordStore(fixture_db_path)


@pytest.fixture
def legacy_store(tmp_path, now):
    """Store over the older schema variant."""
    db_path = tmp_path / "legacy.db"
    conn = create_fixture_db(db_path, now, legacy=True)
    conn.close()
    return RecordStore(db_path)
