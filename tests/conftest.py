import pathlib
import signal
import sys
import time

import psutil
import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from termvoice.models import Verdict  # noqa: E402
from termvoice.services.classifier import GarbageClassifier  # noqa: E402


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSpeaker:
    """Speech collaborator that records calls and completes on demand."""

    def __init__(self, blocking: bool = False):
        self.blocking = blocking
        self.calls: list[str] = []
        self.completed: list[str] = []
        self.cancel_calls = 0
        self._gates: list = []

    async def speak(self, text: str) -> None:
        import asyncio

        self.calls.append(text)
        if self.blocking:
            gate = asyncio.Event()
            self._gates.append(gate)
            await gate.wait()
        self.completed.append(text)

    def release(self) -> None:
        """Let the oldest blocked ``speak`` call finish."""
        if self._gates:
            self._gates.pop(0).set()

    def cancel(self) -> None:
        self.cancel_calls += 1


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def classifier() -> GarbageClassifier:
    return GarbageClassifier()


@pytest.fixture
def content_only():
    """Classifier callback for the aggregator that accepts every remainder."""
    return lambda text: Verdict.CONTENT


@pytest.fixture(scope="session", autouse=True)
def cleanup_processes():
    """Kill any child processes (PTY children, players) left behind by tests."""
    yield

    try:
        children = psutil.Process().children(recursive=True)
    except psutil.Error:
        return

    for child in children:
        try:
            child.send_signal(signal.SIGTERM)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass

    if children:
        time.sleep(0.3)

    for child in children:
        try:
            if child.is_running():
                child.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass
