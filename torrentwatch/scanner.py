"""
Directory scanner for torrent watch folders.

Lists .torrent and .magnet files in the top level of one directory and
partitions them into ready files and partial files.
"""

import logging
from pathlib import Path
from typing import Optional, Set

from .partials import PartialFileTracker
from .settings import WatcherSettings
from .validator import Validator

logger = logging.getLogger(__name__)


class DirectoryScanner:
    """
    Single-pass, non-recursive scanner.

    - .magnet files are always ready
    - .torrent files are ready once the validator accepts them
    - .torrent files the validator rejects are handed to the tracker
    - everything else, including directories and hidden files, is ignored
    """

    def __init__(
        self,
        validator: Validator,
        tracker: PartialFileTracker,
        settings: Optional[WatcherSettings] = None,
    ):
        self.validator = validator
        self.tracker = tracker
        settings = settings or WatcherSettings()
        self.torrent_suffix = settings.torrent_suffix.lower()
        self.magnet_suffix = settings.magnet_suffix.lower()

    def scan(self, directory: Path) -> Set[Path]:
        """
        Scan one directory.

        Returns:
            Absolute paths of files ready for ingestion in this pass (may be empty)
        """
        ready: Set[Path] = set()

        for candidate in self.list_candidates(directory):
            suffix = candidate.suffix.lower()

            if suffix == self.magnet_suffix:
                ready.add(candidate)
            elif self._is_valid(candidate):
                ready.add(candidate)
                self.tracker.discard(candidate)
            else:
                # track() ignores files already tracked and arms the reconciliation timer
                self.tracker.track(candidate)

        return ready

    def list_candidates(self, directory: Path) -> list[Path]:
        """
        List regular files whose suffix marks them as torrent definitions.

        Returns paths in deterministic (sorted) order. A directory that vanished
        or became unreadable yields an empty list.
        """
        candidates = []

        try:
            for item in directory.iterdir():
                if item.name.startswith("."):
                    continue
                if item.suffix.lower() not in (self.torrent_suffix, self.magnet_suffix):
                    continue
                if not item.is_file():
                    continue
                candidates.append(item.absolute())
        except OSError as e:
            logger.warning(f"Cannot list watched folder {directory}: {e}")
            return []

        return sorted(candidates)

    def _is_valid(self, path: Path) -> bool:
        try:
            return bool(self.validator(path))
        except Exception as e:
            logger.warning(f"Validator failed on {path}, treating as partial: {e}")
            return False
