"""
OS change notifications for local watch folders.

watchdog delivers events on its observer thread. Events are never handled
there: each one is forwarded to the control loop with call_soon_threadsafe,
and the subscriber's callback runs on the loop like every other handler.
"""

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Set

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import ObservedWatch

from .errors import SubscriptionError

logger = logging.getLogger(__name__)

# Events that change a directory listing. Content modification does not.
LISTING_EVENTS = frozenset(["created", "deleted", "moved"])

DirectoryCallback = Callable[[Path], None]


class Subscription(ABC):
    """Handle for one directory subscription. cancel() is idempotent."""

    def __init__(self, directory: Path):
        self.directory = directory
        self.cancelled = False

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        self._release()

    @abstractmethod
    def _release(self) -> None:
        pass


class LocalNotifier(ABC):
    """Subscribes directories to OS push notifications."""

    @abstractmethod
    def subscribe(self, directory: Path, callback: DirectoryCallback) -> Subscription:
        """
        Call callback(directory) on the control loop whenever the listing changes.

        Raises:
            SubscriptionError: If the OS refuses the subscription
        """
        pass

    @abstractmethod
    def close(self) -> None:
        pass


class _DirectoryEventHandler(FileSystemEventHandler):
    """Forwards listing changes of one directory to the control loop."""

    def __init__(self, notifier: "WatchdogNotifier", directory: Path, callback: DirectoryCallback):
        super().__init__()
        self.notifier = notifier
        self.directory = directory
        self.callback = callback

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in LISTING_EVENTS:
            return
        self.notifier.dispatch(self.directory, self.callback)


class _WatchdogSubscription(Subscription):
    def __init__(self, notifier: "WatchdogNotifier", directory: Path, watch: ObservedWatch):
        super().__init__(directory)
        self._notifier = notifier
        self._watch = watch

    def _release(self) -> None:
        self._notifier.unschedule(self._watch)


class WatchdogNotifier(LocalNotifier):
    """
    LocalNotifier backed by a single watchdog Observer.

    The observer thread starts with the first subscription. Notifications for a
    directory that arrive before the loop handled the previous one are
    coalesced into a single callback.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, observer_factory: Callable[[], object] = Observer):
        self.loop = loop
        self._observer_factory = observer_factory
        self._observer = None
        # Directories with a callback queued on the loop. Touched by both threads.
        self._queued: Set[Path] = set()
        self._queued_lock = threading.Lock()

    def subscribe(self, directory: Path, callback: DirectoryCallback) -> Subscription:
        handler = _DirectoryEventHandler(self, directory, callback)
        observer = self._ensure_observer()
        try:
            watch = observer.schedule(handler, str(directory), recursive=False)
        except OSError as e:
            raise SubscriptionError(str(directory), e.strerror or str(e)) from e
        logger.debug(f"Subscribed to changes in {directory}")
        return _WatchdogSubscription(self, directory, watch)

    def unschedule(self, watch: ObservedWatch) -> None:
        if self._observer is None:
            return
        try:
            self._observer.unschedule(watch)
        except KeyError:
            # Already gone, e.g. the directory was deleted
            pass

    def dispatch(self, directory: Path, callback: DirectoryCallback) -> None:
        """Queue callback(directory) on the control loop. Safe from any thread."""
        with self._queued_lock:
            if directory in self._queued:
                return
            self._queued.add(directory)
        try:
            self.loop.call_soon_threadsafe(self._deliver, directory, callback)
        except RuntimeError:
            # Loop closed during shutdown
            with self._queued_lock:
                self._queued.discard(directory)

    def _deliver(self, directory: Path, callback: DirectoryCallback) -> None:
        with self._queued_lock:
            self._queued.discard(directory)
        callback(directory)

    def close(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None

    def _ensure_observer(self):
        if self._observer is None:
            observer = self._observer_factory()
            observer.daemon = True
            observer.start()
            self._observer = observer
        return self._observer
