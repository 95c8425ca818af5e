"""
Filesystem classification for watched directories.

Directories on CIFS/NFS/SMB mounts do not deliver reliable change
notifications and must be polled. Everything else is watched through the OS.

One PathClassifier interface, one implementation per platform family:
- MountTableClassifier: Linux, macOS and BSD mount tables via psutil
- WindowsDriveClassifier: drive type of the path's drive root
- StaticClassifier: fixed answer, for unsupported platforms and tests

classify_path() is the only place classification errors are handled. Any
failure falls back to LOCAL.
"""

import errno
import logging
import sys
from abc import ABC, abstractmethod
from pathlib import Path, PureWindowsPath
from typing import Optional

import psutil

from .errors import ClassificationError
from .models import WatchMode

logger = logging.getLogger(__name__)

# Mount table type names of the CIFS, SMB and NFS superblocks
NETWORK_FS_TYPES: frozenset[str] = frozenset(
    [
        "cifs",
        "smbfs",
        "smb2",
        "smb3",
        "nfs",
        "nfs4",
    ]
)

# kernel32.GetDriveTypeW return value for network drives
DRIVE_REMOTE = 4


class PathClassifier(ABC):
    """Decides whether a directory lives on local or network storage."""

    @abstractmethod
    def classify(self, path: Path) -> WatchMode:
        """
        Classify the filesystem holding path.

        Raises:
            ClassificationError: If the filesystem type cannot be queried
        """
        pass


class StaticClassifier(PathClassifier):
    """Always answers the same mode."""

    def __init__(self, mode: WatchMode = WatchMode.LOCAL):
        self.mode = mode

    def classify(self, path: Path) -> WatchMode:
        return self.mode


class MountTableClassifier(PathClassifier):
    """
    Looks up the mount holding a path in the system mount table.

    The mount point is the longest mount table entry that is the path itself
    or one of its parents. Its filesystem type decides the mode.
    """

    def __init__(self, network_fs_types: frozenset[str] = NETWORK_FS_TYPES):
        self.network_fs_types = network_fs_types

    def classify(self, path: Path) -> WatchMode:
        fstype = self.filesystem_type(path)
        if fstype.lower() in self.network_fs_types:
            return WatchMode.NETWORK
        return WatchMode.LOCAL

    def filesystem_type(self, path: Path) -> str:
        """
        Return the filesystem type name of the mount containing path.

        Raises:
            ClassificationError: If the mount table cannot be read or no
                mount contains the path
        """
        try:
            resolved = Path(path).resolve(strict=True)
        except OSError as e:
            raise ClassificationError(str(path), "path cannot be resolved", e.errno) from e

        try:
            partitions = psutil.disk_partitions(all=True)
        except (OSError, psutil.Error) as e:
            raise ClassificationError(
                str(path), "mount table unavailable", getattr(e, "errno", None)
            ) from e

        best_mount: Optional[Path] = None
        best_fstype = ""
        for partition in partitions:
            mount_point = Path(partition.mountpoint)
            if resolved != mount_point and mount_point not in resolved.parents:
                continue
            if best_mount is None or len(mount_point.parts) > len(best_mount.parts):
                best_mount = mount_point
                best_fstype = partition.fstype

        if best_mount is None:
            raise ClassificationError(str(path), "no mount point contains this path", errno.ENOENT)

        logger.debug(f"{resolved} is on {best_mount} ({best_fstype or 'unknown'})")
        return best_fstype


class WindowsDriveClassifier(PathClassifier):
    """Network shares on Windows: UNC paths and mapped remote drives."""

    def classify(self, path: Path) -> WatchMode:
        win_path = PureWindowsPath(str(path))
        drive = win_path.drive
        if not drive:
            raise ClassificationError(str(path), "path has no drive", errno.EINVAL)

        # \\server\share
        if drive.startswith("\\\\"):
            return WatchMode.NETWORK

        try:
            import ctypes

            get_drive_type = ctypes.windll.kernel32.GetDriveTypeW  # type: ignore[attr-defined]
        except (ImportError, AttributeError) as e:
            raise ClassificationError(str(path), "GetDriveTypeW unavailable") from e

        if get_drive_type(f"{drive}\\") == DRIVE_REMOTE:
            return WatchMode.NETWORK
        return WatchMode.LOCAL


def default_classifier(platform: Optional[str] = None) -> PathClassifier:
    """
    Pick the classifier for a platform (defaults to sys.platform).

    Platforms without filesystem type introspection get a StaticClassifier,
    which always answers LOCAL.
    """
    platform = platform or sys.platform
    if platform.startswith("win"):
        return WindowsDriveClassifier()
    if platform.startswith(("linux", "darwin", "freebsd", "openbsd", "netbsd")):
        return MountTableClassifier()
    return StaticClassifier(WatchMode.LOCAL)


def classify_path(classifier: PathClassifier, path: Path) -> WatchMode:
    """
    Classify path, falling back to LOCAL on any failure.

    Failures are logged with the underlying error code and never reach the
    caller.
    """
    try:
        return classifier.classify(path)
    except ClassificationError as e:
        logger.warning(f"{e}. Supposing it is a local folder")
        return WatchMode.LOCAL
    except OSError as e:
        error = ClassificationError(str(path), e.strerror or str(e), e.errno)
        logger.warning(f"{error}. Supposing it is a local folder")
        return WatchMode.LOCAL
