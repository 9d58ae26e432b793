import io
from pathlib import Path

import pytest

from fakelambda.worker.config import WorkerConfig

HANDLERS_DIR = Path(__file__).parent / "fixtures" / "handlers"


@pytest.fixture
def worker_config(tmp_path):
    """
    Config with a private bootstrap directory and short timings so that
    readiness polling and retries finish quickly.
    """
    return WorkerConfig(
        BOOTSTRAP_DIR=str(tmp_path / "bootstrap"),
        READINESS_TIMEOUT=0.2,
        READINESS_POLL_INTERVAL=0.01,
        READINESS_SETTLE_DELAY=0.0,
        INVOKE_MAX_ATTEMPTS=3,
        INVOKE_RETRY_BACKOFF=0.0,
    )


@pytest.fixture
def handler_entry():
    """Path of a handler module under fixtures/handlers."""

    def _entry(name: str, ext: str = "py") -> str:
        return str(HANDLERS_DIR / f"{name}.{ext}")

    return _entry


@pytest.fixture
def sinks():
    return io.StringIO(), io.StringIO()
