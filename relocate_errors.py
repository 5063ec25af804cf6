"""Error taxonomy for bucket relocation."""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    """Backend failure classes the orchestrator branches on"""

    NOT_FOUND = "not_found"
    NOT_EMPTY = "not_empty"
    ACCESS_DENIED = "access_denied"
    ALREADY_EXISTS = "already_exists"
    OTHER = "other"


class RelocationFatalError(RuntimeError):
    """Fatal error that stops the whole relocation run."""


class GatewayError(RelocationFatalError):
    """A storage backend operation failed."""

    def __init__(self, kind: ErrorKind, operation: str, target: str, detail: str = "") -> None:
        self.kind = kind
        self.operation = operation
        self.target = target
        self.detail = detail
        message = f"{operation} failed for {target} ({kind.value})"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class StepFailedError(RelocationFatalError):
    """A relocation step failed; wraps the underlying cause with a readable message."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        if cause is not None:
            message = f"{message}\n  Cause: {cause}"
        super().__init__(message)


class BucketMissingError(RelocationFatalError):
    """Raised when the bucket to relocate does not exist."""

    def __init__(self, bucket: str) -> None:
        super().__init__(f"Validation check failed: The specified bucket does not exist: {bucket}")


class ObjectPermissionError(RelocationFatalError):
    """Raised when objects in the source bucket cannot be read."""

    def __init__(self, bucket: str, denied_count: int, log_path: str) -> None:
        super().__init__(
            f"Validation failed: Access denied reading {denied_count} object(s) from {bucket}. "
            f"Check the log file ({log_path}) for more details."
        )


class WritePermissionError(RelocationFatalError):
    """Raised when the write probe cannot be stored in the bucket."""

    def __init__(self, bucket: str) -> None:
        super().__init__(f"Validation check failed: Access denied writing to {bucket}.")


class ProbeCleanupError(RelocationFatalError):
    """Raised when the write probe was stored but could not be removed."""

    def __init__(self, bucket: str, key: str, log_path: str) -> None:
        self.residual_object = f"s3://{bucket}/{key}"
        super().__init__(
            f"Validation failed: Could not delete temporary object: {self.residual_object}. "
            f"Check the log file ({log_path}) for more details."
        )


class TempBucketExistsError(RelocationFatalError):
    """Raised when the temporary bucket already exists before it is created."""

    def __init__(self, bucket: str) -> None:
        super().__init__(f"The bucket {bucket} already exists.")


class StageGateError(RelocationFatalError):
    """Raised when stage 2 is requested for a bucket that did not finish stage 1."""

    def __init__(self, bucket: str, last_step: int) -> None:
        super().__init__(
            f"Relocation for bucket {bucket} did not complete stage 1 (last completed step: "
            f"{last_step}). Please rerun stage 1 for this bucket."
        )


class DeleteRetryExhaustedError(RelocationFatalError):
    """Raised when a bucket keeps reporting BucketNotEmpty after every retry."""

    def __init__(self, bucket: str, retries: int) -> None:
        super().__init__(f"Failed to remove the bucket: {bucket} (still not empty after {retries} retries)")


class MissingSnapshotError(RelocationFatalError):
    """Raised when stage 2 cannot find the metadata captured in stage 1."""

    def __init__(self, bucket: str, path: str) -> None:
        super().__init__(f"No metadata snapshot for {bucket} at {path}. Rerun stage 1 for this bucket.")


__all__ = [
    "ErrorKind",
    "RelocationFatalError",
    "GatewayError",
    "StepFailedError",
    "BucketMissingError",
    "ObjectPermissionError",
    "WritePermissionError",
    "ProbeCleanupError",
    "TempBucketExistsError",
    "StageGateError",
    "DeleteRetryExhaustedError",
    "MissingSnapshotError",
]
