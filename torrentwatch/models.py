"""
Torrent watcher data models.

All models use Pydantic with strict validation and no silent coercion.
"""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import FrozenSet, Iterable

from pydantic import BaseModel, ConfigDict, Field, field_validator


class WatchMode(str, Enum):
    """
    How a watched directory is observed.

    LOCAL directories receive OS push notifications.
    NETWORK directories (CIFS/NFS/SMB mounts) are polled on a timer.
    """

    LOCAL = "local"
    NETWORK = "network"


class ReadySource(str, Enum):
    """Which pass produced a ready batch."""

    INITIAL_SCAN = "initial_scan"
    LOCAL_EVENT = "local_event"
    NETWORK_POLL = "network_poll"
    RECONCILE = "reconcile"


class WatchedDirectory(BaseModel):
    """
    A directory registered with the watcher.

    At most one entry exists per canonical (resolved) path.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    path: Path = Field(..., description="Canonical absolute path of the directory")
    mode: WatchMode = Field(..., description="Local notification or network polling")

    @field_validator("path")
    @classmethod
    def validate_absolute_path(cls, v: Path) -> Path:
        """Ensure path is absolute."""
        if not v.is_absolute():
            raise ValueError(f"Watched directory path must be absolute: {v}")
        return v


class PartialFileEntry(BaseModel):
    """
    A torrent file that failed validation and is presumed still being written.

    retry_count is the number of reconciliation ticks the file has failed so
    far. It is mutated only by the tracker's reconciliation pass.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    path: Path = Field(..., description="Absolute path of the candidate file")
    retry_count: int = Field(default=0, ge=0, description="Failed reconciliation ticks")


class ReadyBatch(BaseModel):
    """
    Files that became ready in a single scan or reconciliation pass.

    Ephemeral: delivered once to the listeners, never persisted.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    paths: FrozenSet[Path] = Field(..., min_length=1)
    source: ReadySource
    detected_at: datetime = Field(default_factory=datetime.now)

    @classmethod
    def of(cls, paths: Iterable[Path], source: ReadySource) -> "ReadyBatch":
        return cls(paths=frozenset(paths), source=source)

    def __len__(self) -> int:
        return len(self.paths)

    def sorted_paths(self) -> list[Path]:
        return sorted(self.paths)
