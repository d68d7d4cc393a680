import threading

import pytest

from scriptpool.config.configuration import get_default_env
from scriptpool.config.environment import Environment


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point settings at an empty temp file and clear scriptpool env vars."""
    monkeypatch.setenv("SCRIPTPOOL_SETTINGS_FILE", str(tmp_path / "settings.yaml"))
    for key in get_default_env():
        if key.startswith("SCRIPTPOOL_"):
            monkeypatch.delenv(key, raising=False)
    Environment.settings = None
    yield
    Environment.settings = None


class OverlapTracker:
    """Records how many scripts are inside a critical section at once."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.current = 0
        self.peak = 0
        self.entries = 0

    def enter(self) -> None:
        with self._lock:
            self.current += 1
            self.entries += 1
            self.peak = max(self.peak, self.current)

    def exit(self) -> None:
        with self._lock:
            self.current -= 1


@pytest.fixture
def tracker() -> OverlapTracker:
    return OverlapTracker()


@pytest.fixture
def gate():
    """A (started, release) pair of events for holding a script open."""
    started = threading.Event()
    release = threading.Event()
    yield started, release
    release.set()
