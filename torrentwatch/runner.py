"""
Torrent Watch Folder Runner - report new .torrent and .magnet files.

Watches one or more folders and prints every batch of files that became ready
for ingestion. It does not add torrents anywhere; it is the reference sink for
WatchRegistry and a tool for checking how a folder is classified.

Observation Modes:
==================
1. LOCAL: folders on local storage get OS change notifications
2. NETWORK: folders on CIFS/NFS/SMB mounts are rescanned every poll interval

Partial Files:
==============
A .torrent file that does not parse yet is retried once per poll interval.
After the retry limit it is renamed to <name>.torrent.invalid and dropped.

Usage:
======
    python -m torrentwatch.runner <folder> [<folder> ...]
    python -m torrentwatch.runner <folder> --once
    python -m torrentwatch.runner <folder> --poll-seconds 5 --max-retries 3
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from .classifier import classify_path
from .errors import ConfigurationError
from .models import ReadyBatch
from .registry import WatchRegistry
from .settings import DEFAULT_MAX_PARTIAL_RETRIES, DEFAULT_POLL_INTERVAL, WatcherSettings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


# -----------------------------------------------------------------------------
# Ready file sink
# -----------------------------------------------------------------------------

def print_batch(batch: ReadyBatch) -> None:
    """Print one ready batch, one path per line."""
    stamp = batch.detected_at.strftime("%H:%M:%S")
    print(f"\n--- {len(batch)} ready file(s) at {stamp} ({batch.source.value}) ---")
    for path in batch.sorted_paths():
        print(f"  {path}")
    sys.stdout.flush()


# -----------------------------------------------------------------------------
# Modes
# -----------------------------------------------------------------------------

async def scan_once(folders: Sequence[Path], settings: WatcherSettings) -> int:
    """
    Scan each folder a single time and print what was found.

    Returns:
        Number of ready files found
    """
    registry = WatchRegistry(settings=settings)
    found = 0
    try:
        for folder in folders:
            mode = classify_path(registry.classifier, folder)
            print(f"{folder} ({mode.value})")

            ready = registry.scanner.scan(folder)
            found += len(ready)
            for path in sorted(ready):
                print(f"  ready:   {path.name}")
            for entry in registry.partial_files():
                if entry.path.parent == folder:
                    print(f"  partial: {entry.path.name}")
    finally:
        registry.close()
    return found


async def watch(folders: Sequence[Path], settings: WatcherSettings) -> bool:
    """
    Watch folders until SIGINT/SIGTERM.

    Returns:
        False if none of the folders could be watched
    """
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # Windows: KeyboardInterrupt ends asyncio.run instead
            pass

    with WatchRegistry(loop=loop, settings=settings, listeners=[print_batch]) as registry:
        for folder in folders:
            registry.add_path(folder)

        watched = registry.directories()
        if not watched:
            print("Error: none of the given folders exist", file=sys.stderr)
            return False

        for directory in sorted(watched):
            print(f"Watching {directory} ({registry.watched(directory).mode.value})")

        await stop.wait()
        print("\nShutting down torrent watch folder runner...")
        return True


# -----------------------------------------------------------------------------
# CLI Entry Point
# -----------------------------------------------------------------------------

def create_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="torrentwatch",
        description="Torrent Watch Folder Runner - report new .torrent and .magnet files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s ~/Downloads                 # Watch a folder until Ctrl+C
  %(prog)s ~/Downloads /mnt/nas/drop   # Local and network folders together
  %(prog)s /mnt/nas/drop --once        # Single scan, then exit

Environment:
  TORRENTWATCH_POLL_INTERVAL, TORRENTWATCH_MAX_RETRIES,
  TORRENTWATCH_INVALID_SUFFIX, TORRENTWATCH_LOG_LEVEL
        """,
    )

    parser.add_argument(
        "folders",
        type=Path,
        nargs="+",
        metavar="folder",
        help="Directory to watch for .torrent and .magnet files",
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Perform a single scan of each folder and exit",
    )

    parser.add_argument(
        "--poll-seconds",
        type=float,
        default=None,
        metavar="N",
        help=f"Seconds between network polls and partial retries (default: {DEFAULT_POLL_INTERVAL:g})",
    )

    parser.add_argument(
        "--max-retries",
        type=int,
        default=None,
        metavar="N",
        help=f"Retries before a partial torrent is marked invalid (default: {DEFAULT_MAX_PARTIAL_RETRIES})",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    return parser


def main(args: Optional[List[str]] = None) -> int:
    """
    CLI entry point for the torrent watch folder runner.

    Returns:
        Process exit code
    """
    parsed = create_argument_parser().parse_args(args)

    try:
        settings = WatcherSettings.from_env(
            poll_interval=parsed.poll_seconds,
            max_partial_retries=parsed.max_retries,
            log_level="DEBUG" if parsed.verbose else None,
        )
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT, datefmt="%H:%M:%S")
    logger.debug(f"Runner settings: {settings!r}")

    folders = [folder.expanduser().resolve() for folder in parsed.folders]

    try:
        if parsed.once:
            missing = [f for f in folders if not f.is_dir()]
            for folder in missing:
                print(f"Error: Watch folder does not exist: {folder}", file=sys.stderr)
            asyncio.run(scan_once([f for f in folders if f.is_dir()], settings))
            return 1 if missing else 0

        if not asyncio.run(watch(folders, settings)):
            return 1
    except KeyboardInterrupt:
        print("\nShutting down torrent watch folder runner...")

    return 0


if __name__ == "__main__":
    sys.exit(main())
