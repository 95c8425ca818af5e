"""
Torrent watcher error hierarchy.

All errors except ConfigurationError are non-fatal. They are caught at the
component boundary and degrade to a conservative default (treat as local,
keep polling, drop the entry) so the watch process keeps running.
"""

import errno
import os
from typing import Optional


class WatcherError(Exception):
    """Base exception for torrent watcher failures."""

    pass


class ClassificationError(WatcherError):
    """Filesystem type of a watched directory could not be determined."""

    def __init__(self, path: str, reason: str, error_code: Optional[int] = None):
        self.path = path
        self.reason = reason
        self.error_code = error_code
        super().__init__(f"Cannot classify {path}: {reason}{_describe_errno(error_code)}")


class SubscriptionError(WatcherError):
    """OS change notifications could not be enabled for a directory."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot subscribe to changes in {path}: {reason}")


class InvalidationError(WatcherError):
    """A partial file past the retry ceiling could not be renamed."""

    def __init__(self, path: str, target: str, reason: str):
        self.path = path
        self.target = target
        self.reason = reason
        super().__init__(f"Cannot rename {path} to {target}: {reason}")


class WatcherClosedError(WatcherError):
    """Operation attempted on a watcher that has already been closed."""

    pass


class ConfigurationError(WatcherError):
    """
    Invalid watcher configuration.

    Raised at load time, before any directory is watched. This is the only
    error surfaced to the caller.
    """

    pass


def _describe_errno(error_code: Optional[int]) -> str:
    if error_code is None:
        return ""
    name = errno.errorcode.get(error_code, "UNKNOWN")
    return f" (errno {error_code} {name}: {os.strerror(error_code)})"
