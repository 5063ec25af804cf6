"""Shared utility functions for the relocation modules"""

import os
import secrets
import string
import time
from datetime import datetime, timezone
from pathlib import Path

import config

# Constants for time conversions
SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400

S3_URL_PREFIX = "s3://"


def format_duration(seconds: float) -> str:
    """Format seconds to human readable duration"""
    if seconds < SECONDS_PER_MINUTE:
        return f"{int(seconds)}s"
    if seconds < SECONDS_PER_HOUR:
        minutes = int(seconds / SECONDS_PER_MINUTE)
        secs = int(seconds % SECONDS_PER_MINUTE)
        return f"{minutes}m {secs}s"
    if seconds < SECONDS_PER_DAY:
        hours = int(seconds / SECONDS_PER_HOUR)
        minutes = int((seconds % SECONDS_PER_HOUR) / SECONDS_PER_MINUTE)
        return f"{hours}h {minutes}m"
    days = int(seconds / SECONDS_PER_DAY)
    hours = int((seconds % SECONDS_PER_DAY) / SECONDS_PER_HOUR)
    return f"{days}d {hours}h"


def format_size(num_bytes: float) -> str:
    """Format a byte count using binary units"""
    size = float(num_bytes)
    unit = "B"
    for unit in ("B", "KiB", "MiB", "GiB", "TiB"):
        if size < 1024 or unit == "TiB":
            break
        size /= 1024
    if unit == "B":
        return f"{int(size)} B"
    return f"{size:.1f} {unit}"


def get_utc_now() -> str:
    """Get current UTC timestamp as ISO format string"""
    return datetime.now(timezone.utc).isoformat()


def normalize_bucket_name(operand: str) -> str:
    """Strip an optional s3:// prefix and trailing slash from a bucket operand.

    Raises:
        ValueError: If nothing is left to use as a bucket name, or a key path is included
    """
    name = operand[len(S3_URL_PREFIX) :] if operand.startswith(S3_URL_PREFIX) else operand
    name = name.rstrip("/")
    if not name or "/" in name:
        raise ValueError(f"{operand} is not a supported bucket name")
    return name


def random_probe_name() -> str:
    """Return a unique object name for the write-permission probe"""
    letters = string.ascii_letters
    suffix = "".join(secrets.choice(letters) for _ in range(config.PROBE_OBJECT_RANDOM_LENGTH))
    return f"{config.PROBE_OBJECT_PREFIX}{suffix}"


def next_archive_path(path: Path) -> Path:
    """Return the first unused completion-marked name for *path*.

    The first archive is ``<name>.DONE``; later ones become ``<name>.DONE.1``, ``.DONE.2``...
    """
    candidate = path.with_name(path.name + config.COMPLETION_SUFFIX)
    counter = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.name}{config.COMPLETION_SUFFIX}.{counter}")
        counter += 1
    return candidate


def archive_file(path: Path) -> Path | None:
    """Rename *path* with the completion marker. Returns the new path, or None if absent."""
    if not path.exists():
        return None
    target = next_archive_path(path)
    os.replace(path, target)
    return target


class ProgressTracker:
    """Tracks time-based progress updates"""

    def __init__(self, update_interval: float = 2.0):
        self.update_interval = update_interval
        self.last_update = time.time()
        self.start = time.time()

    def should_update(self, force: bool = False) -> bool:
        """Check if enough time has elapsed to update progress"""
        current_time = time.time()
        if force or current_time - self.last_update >= self.update_interval:
            self.last_update = current_time
            return True
        return False

    def elapsed(self) -> float:
        """Seconds since the tracker started"""
        return time.time() - self.start
