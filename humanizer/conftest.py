# humanizer/conftest.py
import os
import sys
from pathlib import Path

import pytest

# Settings are read at import time; pin the test environment first
os.environ["ENV"] = "test"
os.environ.setdefault("SKIP_ENV_VALIDATION", "1")
os.environ["TRANSFORM_STRATEGY"] = "fallback"
os.environ.pop("REMOTE_TRANSFORM_API_KEY", None)

# Make `import humanizer` work without an editable install
REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest.fixture(scope="function", autouse=True)
def sqlite_db(tmp_path):
    """
    Fresh file-backed SQLite database per test.

    File-backed (not :memory:) so worker threads in concurrency tests get
    their own connections against the same database.
    """
    from humanizer.core.database import init_engine, create_all_tables, dispose_engine

    url = f"sqlite:///{tmp_path / 'humanizer.db'}"
    init_engine(url)
    create_all_tables()
    yield url
    dispose_engine()


@pytest.fixture(scope="function", autouse=True)
def reset_metrics():
    from humanizer.core.metrics import METRICS

    METRICS.reset()
    yield
    METRICS.reset()


@pytest.fixture(scope="function", autouse=True)
def fallback_engine():
    """Local-only strategy chain unless a test installs its own engine."""
    from humanizer.features.transform.engine import TransformationEngine, set_engine
    from humanizer.features.transform.fallback import FallbackStrategy

    set_engine(TransformationEngine([FallbackStrategy()]))
    yield
    set_engine(None)


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from humanizer.main import app

    return TestClient(app)


@pytest.fixture
def user_headers():
    def _headers(user_id: str = "user-1") -> dict:
        return {"X-User-Id": user_id}
    return _headers
