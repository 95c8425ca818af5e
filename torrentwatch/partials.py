"""
Partial torrent file tracking.

A .torrent file that fails validation is presumed still being written. It is
re-validated once per reconciliation tick until it becomes valid, disappears,
or has failed max_retries ticks, at which point it is renamed with the
invalid suffix and forgotten.

Per-file state machine, evaluated once per tick:

    missing                  -> DROP_MISSING  (dropped, not reported)
    valid                    -> PROMOTE       (dropped, reported ready)
    invalid, ceiling reached -> INVALIDATE    (renamed, dropped, not reported)
    invalid                  -> RETRY         (retry_count + 1, kept)
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

from .errors import InvalidationError
from .models import PartialFileEntry
from .scheduler import PollScheduler
from .settings import DEFAULT_INVALID_SUFFIX, DEFAULT_MAX_PARTIAL_RETRIES
from .validator import Validator

logger = logging.getLogger(__name__)


class Transition(str, Enum):
    """Outcome of one reconciliation tick for one tracked file."""

    DROP_MISSING = "drop_missing"
    PROMOTE = "promote"
    INVALIDATE = "invalidate"
    RETRY = "retry"


class PartialFileTracker:
    """
    Owns the retry counters of partial torrent files.

    The reconciliation timer is armed when the first file is tracked and is
    cancelled by the tick that empties the tracker.

    Configuration:
        max_retries: Failed ticks before a file is marked invalid (default: 5)
        invalid_suffix: Suffix appended to invalidated files (default: .invalid)
    """

    def __init__(
        self,
        validator: Validator,
        scheduler: PollScheduler,
        on_ready: Callable[[Set[Path]], None],
        max_retries: int = DEFAULT_MAX_PARTIAL_RETRIES,
        invalid_suffix: str = DEFAULT_INVALID_SUFFIX,
    ):
        self.validator = validator
        self.scheduler = scheduler
        self.on_ready = on_ready
        self.max_retries = max_retries
        self.invalid_suffix = invalid_suffix

        self._entries: Dict[Path, PartialFileEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def is_tracked(self, path: Path) -> bool:
        return path in self._entries

    def retry_count(self, path: Path) -> Optional[int]:
        entry = self._entries.get(path)
        return entry.retry_count if entry else None

    def entries(self) -> List[PartialFileEntry]:
        """Snapshot of tracked entries, sorted by path."""
        return [self._entries[p].model_copy() for p in sorted(self._entries)]

    def track(self, path: Path) -> bool:
        """
        Start tracking a partial file at retry count 0.

        Returns:
            True if the file was not tracked before
        """
        if path in self._entries:
            return False

        logger.debug(f"Partial torrent detected at: {path}. Delaying its processing")
        self._entries[path] = PartialFileEntry(path=path)
        self.scheduler.arm_reconcile(self._on_tick)
        return True

    def discard(self, path: Path) -> None:
        """Stop tracking a file reported ready elsewhere. No-op if untracked."""
        if self._entries.pop(path, None) is not None:
            logger.debug(f"Partial torrent became ready outside reconciliation: {path}")
            if not self._entries:
                self.scheduler.cancel_reconcile()

    def clear(self) -> None:
        self._entries.clear()
        self.scheduler.cancel_reconcile()

    def next_transition(self, entry: PartialFileEntry) -> Transition:
        """
        Decide what happens to one tracked file on this tick.

        A file whose existence cannot be checked (stale NFS handle, EIO,
        EACCES) counts as still partial and keeps moving toward the ceiling.
        """
        try:
            exists = entry.path.exists()
        except OSError as e:
            logger.warning(f"Cannot check partial torrent {entry.path}, treating as partial: {e}")
            exists = None

        if exists is False:
            return Transition.DROP_MISSING

        if exists and self._is_valid(entry.path):
            return Transition.PROMOTE

        if entry.retry_count + 1 >= self.max_retries:
            return Transition.INVALIDATE

        return Transition.RETRY

    def reconcile(self) -> Set[Path]:
        """
        Run one reconciliation pass over every tracked file.

        Does not touch the timer or report; see _on_tick.

        Returns:
            Paths that became valid during this pass
        """
        ready: Set[Path] = set()
        finished: List[Path] = []

        for path, entry in self._entries.items():
            transition = self.next_transition(entry)

            if transition is Transition.RETRY:
                entry.retry_count += 1
                continue

            finished.append(path)
            if transition is Transition.PROMOTE:
                ready.add(path)
            elif transition is Transition.INVALIDATE:
                self._invalidate(path)
            else:
                logger.debug(f"Partial torrent disappeared: {path}")

        for path in finished:
            del self._entries[path]

        return ready

    def _on_tick(self) -> None:
        ready = self.reconcile()

        if self._entries:
            logger.debug(f"Still {len(self._entries)} partial torrents after delayed processing")
            self.scheduler.rearm_reconcile(self._on_tick)
        else:
            logger.debug("No longer any partial torrent")
            self.scheduler.cancel_reconcile()

        if ready:
            self.on_ready(ready)

    def _is_valid(self, path: Path) -> bool:
        try:
            return bool(self.validator(path))
        except Exception as e:
            logger.warning(f"Validator failed on {path}, treating as partial: {e}")
            return False

    def _invalidate(self, path: Path) -> Optional[Path]:
        """Best-effort rename of a file given up on. The entry is dropped either way."""
        target = self._invalid_target(path)
        try:
            path.rename(target)
        except OSError as e:
            error = InvalidationError(str(path), str(target), e.strerror or str(e))
            logger.warning(f"{error}. No longer tracking it")
            return None

        logger.info(
            f"Gave up on partial torrent after {self.max_retries} attempts: {path} -> {target.name}"
        )
        return target

    def _invalid_target(self, path: Path) -> Path:
        target = path.with_name(path.name + self.invalid_suffix)
        counter = 1
        try:
            while target.exists():
                target = path.with_name(f"{path.name}{self.invalid_suffix}.{counter}")
                counter += 1
        except OSError as e:
            # rename() below logs its own failure
            logger.debug(f"Cannot check rename target {target}: {e}")
        return target
