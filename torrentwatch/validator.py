"""
Torrent metadata validation.

A .torrent file is ready once it decodes and carries a complete info
dictionary. Anything less is treated as a file still being written.
"""

import logging
from pathlib import Path
from typing import Callable

import torf

logger = logging.getLogger(__name__)

# Any callable taking a path and answering "is this a complete metadata file"
Validator = Callable[[Path], bool]

MAX_TORRENT_FILE_SIZE = 30 * 1024 * 1024


class TorrentFileValidator:
    """
    Validates .torrent files with torf.

    Files larger than max_size are rejected without being read.
    """

    def __init__(self, max_size: int = MAX_TORRENT_FILE_SIZE):
        self.max_size = max_size

    def __call__(self, path: Path) -> bool:
        try:
            if Path(path).stat().st_size > self.max_size:
                logger.debug(f"Torrent file too large: {path}")
                return False
            torf.Torrent.read(str(path), validate=True)
        except torf.TorfError as e:
            logger.debug(f"Not a valid torrent file yet: {path} ({e})")
            return False
        except OSError as e:
            logger.debug(f"Cannot read torrent file: {path} ({e})")
            return False
        return True


def is_valid_metadata_file(path: Path) -> bool:
    """Module-level shortcut using a default TorrentFileValidator."""
    return _default_validator(path)


_default_validator = TorrentFileValidator()
