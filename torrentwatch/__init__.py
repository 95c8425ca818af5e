"""
Torrent watch folders: detection of new .torrent and .magnet files.

Local directories are watched through OS change notifications; directories on
CIFS/NFS/SMB mounts are polled. Torrent files still being written are retried
a bounded number of times and renamed with an ".invalid" suffix when they
never become valid.

Public API:
    WatchRegistry - add_path / remove_path / directories + ready listeners
    WatcherSettings - Poll interval, retry ceiling, suffixes
    ReadyBatch - One report of files ready for ingestion
    DirectoryScanner - Single-directory scan
    PartialFileTracker - Retry state machine for partial torrent files
    PollScheduler - Network poll and reconciliation timers
    PathClassifier - Local/network filesystem detection
"""

from .errors import (
    WatcherError,
    ClassificationError,
    SubscriptionError,
    InvalidationError,
    WatcherClosedError,
    ConfigurationError,
)
from .models import WatchMode, ReadySource, WatchedDirectory, PartialFileEntry, ReadyBatch
from .settings import WatcherSettings
from .classifier import (
    PathClassifier,
    MountTableClassifier,
    WindowsDriveClassifier,
    StaticClassifier,
    default_classifier,
    classify_path,
)
from .validator import TorrentFileValidator, is_valid_metadata_file
from .scheduler import PollScheduler
from .partials import PartialFileTracker, Transition
from .scanner import DirectoryScanner
from .notifier import LocalNotifier, Subscription, WatchdogNotifier
from .registry import WatchRegistry

__version__ = "0.1.0"

__all__ = [
    # Errors
    "WatcherError",
    "ClassificationError",
    "SubscriptionError",
    "InvalidationError",
    "WatcherClosedError",
    "ConfigurationError",
    # Models
    "WatchMode",
    "ReadySource",
    "WatchedDirectory",
    "PartialFileEntry",
    "ReadyBatch",
    "WatcherSettings",
    # Classification
    "PathClassifier",
    "MountTableClassifier",
    "WindowsDriveClassifier",
    "StaticClassifier",
    "default_classifier",
    "classify_path",
    # Validation
    "TorrentFileValidator",
    "is_valid_metadata_file",
    # Core
    "PollScheduler",
    "PartialFileTracker",
    "Transition",
    "DirectoryScanner",
    "LocalNotifier",
    "Subscription",
    "WatchdogNotifier",
    "WatchRegistry",
]
