import os
import sys

import pytest

# Ensure repository root importable early
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from delve import create_app  # noqa: E402
from delve.routes.layout_api import clear_layout_cache  # noqa: E402


@pytest.fixture(scope="session")
def test_app():
    app = create_app({"TESTING": True})
    return app


@pytest.fixture()
def client(test_app):
    clear_layout_cache()
    return test_app.test_client()


@pytest.fixture(autouse=True)
def _quiet_generation_logs(monkeypatch):
    # Per-phase info lines are noise in test output; individual tests raise the level when needed.
    monkeypatch.setenv("DELVE_LOG_LEVEL", "warn")
    monkeypatch.delenv("DELVE_LOG_JSON", raising=False)
    monkeypatch.delenv("DELVE_DISABLE_CACHE", raising=False)
    monkeypatch.delenv("DELVE_ENABLE_GENERATION_METRICS", raising=False)
