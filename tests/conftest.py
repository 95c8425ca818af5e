"""
Shared test fixtures for the torrent watcher.

Timers run on FakeLoop, which only advances when a test says so. OS change
notifications come from FakeNotifier, which tests trigger by hand. No test
sleeps or depends on the real mount table.
"""

from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

import pytest

from torrentwatch.errors import SubscriptionError
from torrentwatch.models import ReadyBatch, WatchMode
from torrentwatch.notifier import LocalNotifier, Subscription
from torrentwatch.classifier import StaticClassifier
from torrentwatch.registry import WatchRegistry
from torrentwatch.settings import WatcherSettings

VALID_TORRENT = b"complete torrent"
PARTIAL_TORRENT = b"partial torr"


# -----------------------------------------------------------------------------
# Fake event loop
# -----------------------------------------------------------------------------

class FakeTimerHandle:
    def __init__(self, when: float, callback: Callable, args: tuple):
        self.when = when
        self.callback = callback
        self.args = args
        self.fired = False
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class FakeLoop:
    """Implements the parts of asyncio.AbstractEventLoop the watcher uses."""

    def __init__(self):
        self.now = 0.0
        self.timers: List[FakeTimerHandle] = []
        self.ready: List[tuple] = []

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable, *args) -> FakeTimerHandle:
        handle = FakeTimerHandle(self.now + delay, callback, args)
        self.timers.append(handle)
        return handle

    def call_soon_threadsafe(self, callback: Callable, *args) -> None:
        self.ready.append((callback, args))

    def run_ready(self) -> None:
        while self.ready:
            callback, args = self.ready.pop(0)
            callback(*args)

    def pending_timers(self) -> List[FakeTimerHandle]:
        return [h for h in self.timers if not h.fired and not h.cancelled()]

    def advance(self, seconds: float) -> None:
        """Move time forward, firing due timers in order."""
        target = self.now + seconds
        while True:
            due = [h for h in self.pending_timers() if h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self.now = handle.when
            handle.fired = True
            handle.callback(*handle.args)
        self.now = target


# -----------------------------------------------------------------------------
# Fake OS notifications
# -----------------------------------------------------------------------------

class FakeSubscription(Subscription):
    def __init__(self, notifier: "FakeNotifier", directory: Path):
        super().__init__(directory)
        self._notifier = notifier

    def _release(self) -> None:
        self._notifier.released.append(self.directory)
        self._notifier.callbacks.pop(self.directory, None)


class FakeNotifier(LocalNotifier):
    def __init__(self):
        self.callbacks: Dict[Path, Callable[[Path], None]] = {}
        self.subscribe_calls: List[Path] = []
        self.released: List[Path] = []
        self.refuse: Set[Path] = set()
        self.closed = False

    def subscribe(self, directory: Path, callback: Callable[[Path], None]) -> Subscription:
        self.subscribe_calls.append(directory)
        if directory in self.refuse:
            raise SubscriptionError(str(directory), "No space left on device")
        self.callbacks[directory] = callback
        return FakeSubscription(self, directory)

    def emit(self, directory: Path) -> None:
        """Simulate a change notification delivered on the control loop."""
        self.callbacks[directory](directory)

    def close(self) -> None:
        self.closed = True


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------

class ContentValidator:
    """Accepts files whose bytes equal VALID_TORRENT and counts calls."""

    def __init__(self):
        self.calls: List[Path] = []

    def __call__(self, path: Path) -> bool:
        self.calls.append(path)
        return path.read_bytes() == VALID_TORRENT


class Collector:
    """Ready listener recording every batch."""

    def __init__(self):
        self.batches: List[ReadyBatch] = []

    def __call__(self, batch: ReadyBatch) -> None:
        self.batches.append(batch)

    @property
    def reported(self) -> List[Set[Path]]:
        return [set(b.paths) for b in self.batches]


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def loop() -> FakeLoop:
    return FakeLoop()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def validator() -> ContentValidator:
    return ContentValidator()


@pytest.fixture
def collector() -> Collector:
    return Collector()


@pytest.fixture
def settings() -> WatcherSettings:
    return WatcherSettings()


@pytest.fixture
def watch_dir(tmp_path: Path) -> Path:
    """Create an empty watch folder (resolved, as the registry stores it)."""
    directory = tmp_path / "watch"
    directory.mkdir()
    return directory.resolve()


@pytest.fixture
def make_registry(loop, notifier, validator, collector, settings):
    """Build a WatchRegistry on the fake loop with a fixed classification."""
    created: List[WatchRegistry] = []

    def _make(mode: WatchMode = WatchMode.LOCAL, registry_settings: Optional[WatcherSettings] = None):
        registry = WatchRegistry(
            loop=loop,
            settings=registry_settings or settings,
            validator=validator,
            classifier=StaticClassifier(mode),
            notifier=notifier,
            listeners=[collector],
        )
        created.append(registry)
        return registry

    yield _make

    for registry in created:
        registry.close()


def write_torrent(directory: Path, name: str, complete: bool = True) -> Path:
    path = directory / name
    path.write_bytes(VALID_TORRENT if complete else PARTIAL_TORRENT)
    return path
