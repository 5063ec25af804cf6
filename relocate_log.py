"""
Operator output and the persistent debug log.

Step banners go to stdout, errors to stderr. Both are mirrored into the debug
log through the standard logging module so the log file shows exactly which
steps started, finished, and failed.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from relocate_utils import archive_file

DEBUG_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

logger = logging.getLogger("bucket_relocate")


def configure_console_logging(verbose: bool = False) -> None:
    """Configure root logging for console diagnostics."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(message)s",
    )


def attach_debug_log(path: Path) -> logging.Handler:
    """Append all relocation and boto activity at DEBUG level to *path*."""
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(DEBUG_LOG_FORMAT))
    root = logging.getLogger()
    root.addHandler(handler)
    if root.level == logging.NOTSET or root.level > logging.DEBUG:
        root.setLevel(logging.DEBUG)
    # botocore wire logging would drown the step markers
    for noisy in ("botocore", "boto3", "s3transfer", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.INFO)
    return handler


def detach_debug_log(handler: logging.Handler | None) -> None:
    """Flush, close and remove the debug log handler so the file can be archived."""
    if handler is None:
        return
    logging.getLogger().removeHandler(handler)
    handler.close()


class DebugLog:
    """The persistent debug log file, attached to the root logger while open"""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.handler: logging.Handler | None = None

    def open(self) -> None:
        """Start mirroring log records into the file."""
        if self.handler is None:
            self.handler = attach_debug_log(self.path)

    def close(self) -> None:
        """Stop writing to the file."""
        detach_debug_log(self.handler)
        self.handler = None

    def archive(self) -> Path | None:
        """Close the file and rename it with the completion marker."""
        self.close()
        return archive_file(self.path)


def log_step_start(message: str) -> None:
    """Announce a step to the operator and record its start."""
    print(message, flush=True)
    logger.info("START -- %s", message)


def log_step_end(step: int, bucket: str) -> None:
    """Record that a step finished for a bucket."""
    logger.info("END -- %d,%s", step, bucket)


def echo_err(message: str) -> None:
    """Print an error for the operator and record it in the debug log."""
    print(message, file=sys.stderr, flush=True)
    logger.error("ERROR -- %s", message)


def echo_warning(message: str) -> None:
    """Print a warning for the operator and record it in the debug log."""
    print(message, file=sys.stderr, flush=True)
    logger.warning("%s", message)
