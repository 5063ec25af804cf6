"""Pre-flight checks run once per bucket before anything is modified."""

from __future__ import annotations

import logging
from pathlib import Path

import config
from relocate_errors import (
    BucketMissingError,
    GatewayError,
    ObjectPermissionError,
    ProbeCleanupError,
    WritePermissionError,
)
from relocate_log import echo_warning
from relocate_utils import ProgressTracker, get_utc_now, random_probe_name

logger = logging.getLogger(__name__)


class BucketValidator:
    """Existence, read-permission and write-permission checks for a source bucket"""

    def __init__(
        self,
        gateway,
        permission_log_path: Path,
        debug_log_path: Path,
        warnings_only: bool = False,
    ):
        self.gateway = gateway
        self.permission_log_path = Path(permission_log_path)
        self.debug_log_path = Path(debug_log_path)
        self.warnings_only = warnings_only

    def verify_exists(self, bucket: str) -> None:
        """Raise BucketMissingError unless *bucket* exists."""
        if not self.gateway.exists(bucket):
            raise BucketMissingError(bucket)

    def check_read_access(self, bucket: str) -> int:
        """HEAD every object and fetch its ACL, logging the ones that are denied.

        Objects uploaded after this check runs are not covered, so a clean
        result is best-effort. Returns the number of unreadable objects.

        Raises:
            ObjectPermissionError: If any object is unreadable and warnings_only is off
        """
        self.permission_log_path.parent.mkdir(parents=True, exist_ok=True)
        checked = 0
        denied = 0
        progress = ProgressTracker(update_interval=2.0)
        with self.permission_log_path.open("w", encoding="utf-8") as log:
            log.write(f"# Permission check for s3://{bucket} started {get_utc_now()}\n")
            for descriptor in self.gateway.list_objects(bucket):
                checked += 1
                if not self.gateway.check_object_readable(bucket, descriptor):
                    denied += 1
                    log.write(f"ACCESS DENIED: {descriptor.url(bucket)}\n")
                if progress.should_update():
                    print(f"\r  Checked {checked:,} objects, {denied:,} denied  ", end="", flush=True)
            log.write(f"# Checked {checked} objects, {denied} denied\n")
        print(f"  Checked {checked:,} objects, {denied:,} denied")
        logger.debug("Read check for %s: %d checked, %d denied", bucket, checked, denied)
        if denied:
            if not self.warnings_only:
                raise ObjectPermissionError(bucket, denied, str(self.permission_log_path))
            echo_warning(
                f"Warning: {denied} object(s) in {bucket} are not readable; see {self.permission_log_path}. "
                "Continuing because permission findings are advisory."
            )
        return denied

    def check_write_access(self, bucket: str) -> str:
        """Write a uniquely named probe object, then delete every version of it.

        Returns the probe object name.

        Raises:
            WritePermissionError: If the probe cannot be written
            ProbeCleanupError: If the probe was written but cannot be deleted
        """
        probe = random_probe_name()
        try:
            self.gateway.write_object(bucket, probe, config.PROBE_OBJECT_BODY)
        except GatewayError as exc:
            logger.debug("Write probe failed for %s: %s", bucket, exc)
            raise WritePermissionError(bucket) from exc
        try:
            self.gateway.delete_object(bucket, probe, all_versions=True)
        except GatewayError as exc:
            logger.error("Could not delete probe object s3://%s/%s: %s", bucket, probe, exc)
            raise ProbeCleanupError(bucket, probe, str(self.debug_log_path)) from exc
        return probe
