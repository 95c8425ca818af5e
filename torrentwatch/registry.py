"""
Torrent watch registry.

Owns the set of watched directories and routes each one to the right
observation strategy:
- LOCAL directories: OS change notification + immediate scan on registration
- NETWORK directories: rescanned together on the network poll timer

Every scan and reconciliation pass that finds ready files produces exactly one
ReadyBatch, delivered to every registered listener.
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set, Union

from .classifier import PathClassifier, classify_path, default_classifier
from .errors import SubscriptionError, WatcherClosedError
from .models import PartialFileEntry, ReadyBatch, ReadySource, WatchedDirectory, WatchMode
from .notifier import LocalNotifier, Subscription, WatchdogNotifier
from .partials import PartialFileTracker
from .scanner import DirectoryScanner
from .scheduler import PollScheduler
from .settings import WatcherSettings
from .validator import TorrentFileValidator, Validator

logger = logging.getLogger(__name__)

ReadyListener = Callable[[ReadyBatch], None]


class WatchRegistry:
    """
    Watches directories for torrent and magnet files.

    Must be created and used on the thread running `loop`. Timer callbacks and
    forwarded OS notifications run on that loop, one at a time.

    Public API:
        add_path / remove_path / directories
        add_listener / remove_listener  (ready file reports)
        close (or use as a context manager)
    """

    def __init__(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        settings: Optional[WatcherSettings] = None,
        validator: Optional[Validator] = None,
        classifier: Optional[PathClassifier] = None,
        notifier: Optional[LocalNotifier] = None,
        listeners: Iterable[ReadyListener] = (),
    ):
        """
        Initialize the registry.

        Args:
            loop: Control loop (default: the running loop)
            settings: Intervals, retry ceiling and suffixes (default: WatcherSettings())
            validator: Callable deciding whether a .torrent file is complete
                (default: TorrentFileValidator)
            classifier: Local/network classifier (default: per platform)
            notifier: OS change notification source (default: WatchdogNotifier)
            listeners: Initial ready-batch listeners
        """
        self.loop = loop or asyncio.get_running_loop()
        self.settings = settings or WatcherSettings()
        self.classifier = classifier or default_classifier()
        self.notifier = notifier or WatchdogNotifier(self.loop)

        self.scheduler = PollScheduler(self.loop, self.settings.poll_interval)
        self.tracker = PartialFileTracker(
            validator=validator or TorrentFileValidator(),
            scheduler=self.scheduler,
            on_ready=lambda paths: self._report(paths, ReadySource.RECONCILE),
            max_retries=self.settings.max_partial_retries,
            invalid_suffix=self.settings.invalid_suffix,
        )
        self.scanner = DirectoryScanner(self.tracker.validator, self.tracker, self.settings)

        self._network_dirs: Dict[Path, WatchedDirectory] = {}
        self._subscriptions: Dict[Path, Subscription] = {}
        self._listeners: List[ReadyListener] = list(listeners)
        self._closed = False

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_listener(self, listener: ReadyListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ReadyListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # -------------------------------------------------------------------------
    # Watched directories
    # -------------------------------------------------------------------------

    def add_path(self, path: Union[str, Path]) -> None:
        """
        Start watching a directory.

        Does nothing if the directory does not exist or is already watched.

        Raises:
            WatcherClosedError: If the registry has been closed
        """
        if self._closed:
            raise WatcherClosedError("Cannot add a path to a closed watch registry")

        directory = Path(path)
        if not directory.is_dir():
            logger.debug(f"Ignoring watch request for missing directory: {path}")
            return

        directory = directory.resolve()
        if directory in self._network_dirs or directory in self._subscriptions:
            logger.debug(f"Already watching {directory}")
            return

        mode = classify_path(self.classifier, directory)

        if mode is WatchMode.LOCAL:
            try:
                self._subscriptions[directory] = self.notifier.subscribe(
                    directory, self._on_local_change
                )
            except SubscriptionError as e:
                logger.warning(f"{e}. Polling it instead")
                mode = WatchMode.NETWORK

        if mode is WatchMode.NETWORK:
            logger.info(f"Network folder detected: {directory}. Using polling mode")
            self._network_dirs[directory] = WatchedDirectory(path=directory, mode=mode)
            self.scheduler.start_network_poll(self.scan_network_folders)
            return

        logger.info(f"Watching {directory} in normal mode")
        self._scan_and_report(directory, ReadySource.INITIAL_SCAN)

    def remove_path(self, path: Union[str, Path]) -> None:
        """Stop watching a directory. Unknown paths are ignored."""
        directory = self._canonical(path)

        if self._network_dirs.pop(directory, None) is not None:
            logger.info(f"Stopped polling {directory}")
            if not self._network_dirs:
                self.scheduler.stop_network_poll()
            return

        subscription = self._subscriptions.pop(directory, None)
        if subscription is not None:
            subscription.cancel()
            logger.info(f"Stopped watching {directory}")

    def directories(self) -> Set[Path]:
        """Canonical paths of every watched directory, local and network."""
        return set(self._subscriptions) | set(self._network_dirs)

    def watched(self, path: Union[str, Path]) -> Optional[WatchedDirectory]:
        directory = self._canonical(path)
        if directory in self._network_dirs:
            return self._network_dirs[directory]
        if directory in self._subscriptions:
            return WatchedDirectory(path=directory, mode=WatchMode.LOCAL)
        return None

    def partial_files(self) -> List[PartialFileEntry]:
        return self.tracker.entries()

    # -------------------------------------------------------------------------
    # Scan handlers
    # -------------------------------------------------------------------------

    def scan_local_folder(self, path: Union[str, Path]) -> Set[Path]:
        """Scan one local directory and report its ready files on their own."""
        return self._scan_and_report(Path(path), ReadySource.LOCAL_EVENT)

    def scan_network_folders(self) -> Set[Path]:
        """Scan every network directory and report all ready files together."""
        ready: Set[Path] = set()
        for directory in list(self._network_dirs):
            ready |= self.scanner.scan(directory)
        self._report(ready, ReadySource.NETWORK_POLL)
        return ready

    def _on_local_change(self, directory: Path) -> None:
        # A notification queued before remove_path() may still arrive
        if directory not in self._subscriptions:
            return
        logger.debug(f"Change notification for {directory}")
        self.scan_local_folder(directory)

    def _scan_and_report(self, directory: Path, source: ReadySource) -> Set[Path]:
        ready = self.scanner.scan(directory)
        self._report(ready, source)
        return ready

    def _report(self, paths: Set[Path], source: ReadySource) -> None:
        if not paths:
            return

        batch = ReadyBatch.of(paths, source)
        logger.info(
            f"Reporting {len(batch)} ready file(s) ({source.value}): "
            + ", ".join(str(p) for p in batch.sorted_paths())
        )

        for listener in list(self._listeners):
            try:
                listener(batch)
            except Exception:
                logger.exception(f"Ready file listener {listener!r} failed")

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Stop every subscription and timer. Safe to call twice."""
        if self._closed:
            return
        self._closed = True

        for subscription in self._subscriptions.values():
            subscription.cancel()
        self._subscriptions.clear()
        self._network_dirs.clear()

        self.scheduler.close()
        self.tracker.clear()
        self.notifier.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "WatchRegistry":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @staticmethod
    def _canonical(path: Union[str, Path]) -> Path:
        try:
            return Path(path).resolve()
        except OSError:
            return Path(path).absolute()
