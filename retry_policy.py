"""Bounded retry for deleting a bucket right after its objects were deleted.

Object deletes can take a while to show up in the bucket's object count, so
DeleteBucket may report BucketNotEmpty for a short time. That condition is
retried on a fixed interval; every other failure is fatal immediately. This is
the only place the relocation retries anything in-process.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

import config
from relocate_errors import DeleteRetryExhaustedError, ErrorKind, GatewayError
from relocate_log import echo_warning

logger = logging.getLogger(__name__)


class BucketDeleteRetryPolicy:
    """Deletes a bucket, retrying only while the backend reports it as not empty"""

    def __init__(
        self,
        max_retries: int = config.DELETE_RETRY_MAX_RETRIES,
        delay_seconds: float = config.DELETE_RETRY_DELAY_SECONDS,
        sleeper: Callable[[float], None] = time.sleep,
    ):
        self.max_retries = max_retries
        self.delay_seconds = delay_seconds
        self.sleeper = sleeper

    def delete_bucket(self, gateway, bucket: str) -> int:
        """Delete *bucket*; returns the number of retries it took.

        Raises:
            DeleteRetryExhaustedError: If the bucket is still not empty after max_retries retries
            GatewayError: For any failure other than ErrorKind.NOT_EMPTY
        """
        retries = 0
        while True:
            try:
                gateway.delete_bucket(bucket)
            except GatewayError as exc:
                if exc.kind != ErrorKind.NOT_EMPTY:
                    raise
                if retries >= self.max_retries:
                    raise DeleteRetryExhaustedError(bucket, retries) from exc
                retries += 1
                echo_warning("Waiting for buckets to empty.")
                logger.debug("%s not empty yet, retry %d/%d", bucket, retries, self.max_retries)
                self.sleeper(self.delay_seconds)
                continue
            return retries
