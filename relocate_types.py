"""Shared types for the bucket relocation tool."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, IntEnum

import config


class Stage(Enum):
    """Stage selected on the command line"""

    SEED = "1"
    CUTOVER = "2"
    ALL = "A"


class Step(IntEnum):
    """Ordered relocation steps. Numbers are shared by both stages and stored in the ledger."""

    VERIFY_EXISTS = 1
    CHECK_READ_ACCESS = 2
    CHECK_WRITE_ACCESS = 3
    CREATE_TEMP_BUCKET = 4
    MIRROR_VERSIONING = 5
    SEED_COPY = 6
    SNAPSHOT_METADATA = 7
    CATCH_UP_COPY = 8
    PURGE_SOURCE = 9
    DELETE_SOURCE = 10
    RECREATE_SOURCE = 11
    RESTORE_METADATA = 12
    COPY_BACK = 13
    PURGE_TEMP = 14
    DELETE_TEMP = 15


VALIDATION_STEPS = (Step.VERIFY_EXISTS, Step.CHECK_READ_ACCESS, Step.CHECK_WRITE_ACCESS)
STAGE1_FINAL_STEP = Step.SNAPSHOT_METADATA
FINAL_STEP = Step.DELETE_TEMP


class BucketState(Enum):
    """Per-bucket state reached after the ledger's highest completed step"""

    UNVALIDATED = "Unvalidated"
    VALIDATED = "Validated"
    TEMP_CREATED = "TempCreated"
    VERSIONING_MIRRORED = "VersioningMirrored"
    SEEDED = "Seeded"
    METADATA_SNAPSHOTTED = "MetadataSnapshotted"
    CAUGHT_UP = "CaughtUp"
    SOURCE_PURGED = "SourcePurged"
    SOURCE_DELETED = "SourceDeleted"
    SOURCE_RECREATED = "SourceRecreated"
    METADATA_RESTORED = "MetadataRestored"
    COPIED_BACK = "CopiedBack"
    TEMP_PURGED = "TempPurged"
    COMPLETED = "Completed"

    @classmethod
    def for_step(cls, last_step: int) -> "BucketState":
        """Map a ledger position (0-15) to the state it represents."""
        if last_step < Step.CHECK_WRITE_ACCESS:
            return cls.UNVALIDATED
        members = list(cls)
        return members[last_step - Step.CHECK_WRITE_ACCESS + 1]


class VersioningState(Enum):
    """Bucket versioning mode. Suspended versioning counts as disabled."""

    ENABLED = "Enabled"
    DISABLED = "Disabled"


@dataclass(frozen=True)
class MigrationJob:
    """One source bucket to relocate."""

    source: str
    location: str = config.DEFAULT_LOCATION
    storage_class: str = config.DEFAULT_STORAGE_CLASS
    extra_verification: bool = False

    @property
    def temp(self) -> str:
        """Temporary bucket name, derived from the source name."""
        return f"{self.source}{config.TEMP_BUCKET_SUFFIX}"


@dataclass(frozen=True)
class ObjectDescriptor:
    """A listed object, object version or delete marker."""

    key: str
    size: int = 0
    etag: str = ""
    version_id: str | None = None
    is_latest: bool = True
    last_modified: datetime | None = None
    is_delete_marker: bool = False

    def url(self, bucket: str) -> str:
        """Return the s3:// URL, including the version when there is one."""
        base = f"s3://{bucket}/{self.key}"
        if self.version_id and self.version_id != "null":
            return f"{base}#{self.version_id}"
        return base
