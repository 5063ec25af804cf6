"""Bucket-level configuration captured in stage 1 and restored in stage 2.

The snapshot is written as one JSON file per bucket because the two stages can
run days apart, in different processes.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

import config
from relocate_errors import MissingSnapshotError
from relocate_types import VersioningState
from relocate_utils import archive_file

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AclDocument:
    """Bucket access control list: owner plus grants."""

    owner: dict = field(default_factory=dict)
    grants: list = field(default_factory=list)

    def is_empty(self) -> bool:
        """True when no ACL was captured."""
        return not self.owner and not self.grants


@dataclass(frozen=True)
class WebsiteConfig:
    """Static website hosting configuration.

    A bucket either serves content (index suffix, error page, routing rules) or
    redirects every request to another host.
    """

    main_page_suffix: Optional[str] = None
    not_found_page: Optional[str] = None
    redirect_all_requests_to: Optional[dict] = None
    routing_rules: list = field(default_factory=list)

    def is_configured(self) -> bool:
        """Website hosting is restored when a suffix, an error page or a redirect is present."""
        return bool(self.main_page_suffix or self.not_found_page or self.redirect_all_requests_to)


@dataclass(frozen=True)
class LoggingConfig:
    """Server access logging configuration."""

    log_bucket: Optional[str] = None
    log_prefix: Optional[str] = None

    def is_configured(self) -> bool:
        """Logging is restored only when both the target bucket and prefix are present."""
        return bool(self.log_bucket and self.log_prefix)


@dataclass(frozen=True)
class CorsConfig:
    """CORS rules as returned by the backend."""

    rules: list = field(default_factory=list)

    def is_configured(self) -> bool:
        """True when at least one CORS rule exists."""
        return bool(self.rules)


@dataclass(frozen=True)
class MetadataSnapshot:
    """Everything about a bucket that does not travel with its objects."""

    acl: AclDocument = field(default_factory=AclDocument)
    website: WebsiteConfig = field(default_factory=WebsiteConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    cors: CorsConfig = field(default_factory=CorsConfig)
    versioning: VersioningState = VersioningState.DISABLED
    object_ownership: Optional[str] = None

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dict."""
        return {
            "acl": asdict(self.acl),
            "website": asdict(self.website),
            "logging": asdict(self.logging),
            "cors": asdict(self.cors),
            "versioning": self.versioning.value,
            "object_ownership": self.object_ownership,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MetadataSnapshot":
        """Build a snapshot from the dict produced by to_dict."""
        return cls(
            acl=AclDocument(**data.get("acl", {})),
            website=WebsiteConfig(**data.get("website", {})),
            logging=LoggingConfig(**data.get("logging", {})),
            cors=CorsConfig(**data.get("cors", {})),
            versioning=VersioningState(data.get("versioning", VersioningState.DISABLED.value)),
            object_ownership=data.get("object_ownership"),
        )


def capture_snapshot(gateway, bucket: str) -> MetadataSnapshot:
    """Read ACL, website, logging, CORS, versioning and object ownership from *bucket*."""
    snapshot = MetadataSnapshot(
        acl=gateway.get_bucket_acl(bucket),
        website=gateway.get_website_config(bucket),
        logging=gateway.get_logging_config(bucket),
        cors=gateway.get_cors(bucket),
        versioning=gateway.get_versioning_state(bucket),
        object_ownership=gateway.get_object_ownership(bucket),
    )
    logger.debug("Captured metadata for %s: %s", bucket, snapshot)
    return snapshot


def restore_snapshot(gateway, bucket: str, snapshot: MetadataSnapshot) -> list[str]:
    """Apply *snapshot* to *bucket*; returns the names of the settings applied.

    Versioning is only ever turned on here, never off.
    """
    applied = []
    if not snapshot.acl.is_empty():
        gateway.set_bucket_acl(bucket, snapshot.acl)
        applied.append("acl")
    if snapshot.website.is_configured():
        gateway.set_website_config(bucket, snapshot.website)
        applied.append("website")
    if snapshot.logging.is_configured():
        gateway.set_logging_config(bucket, snapshot.logging)
        applied.append("logging")
    if snapshot.cors.is_configured():
        gateway.set_cors(bucket, snapshot.cors)
        applied.append("cors")
    if snapshot.versioning == VersioningState.ENABLED:
        gateway.set_versioning_state(bucket, VersioningState.ENABLED)
        applied.append("versioning")
    return applied


class MetadataSnapshotStore:
    """Persists one metadata snapshot per bucket in the state directory"""

    def __init__(self, state_dir):
        self.state_dir = Path(state_dir)

    def path_for(self, bucket: str) -> Path:
        """Return the snapshot file path for *bucket*."""
        return self.state_dir / config.SNAPSHOT_NAME_TEMPLATE.format(bucket=bucket)

    def save(self, bucket: str, snapshot: MetadataSnapshot) -> Path:
        """Write the snapshot atomically, replacing any earlier one."""
        path = self.path_for(bucket)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(snapshot.to_dict(), f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        return path

    def load(self, bucket: str) -> MetadataSnapshot:
        """Read the snapshot for *bucket*.

        Raises:
            MissingSnapshotError: If stage 1 never saved one
        """
        path = self.path_for(bucket)
        if not path.exists():
            raise MissingSnapshotError(bucket, str(path))
        with path.open(encoding="utf-8") as f:
            return MetadataSnapshot.from_dict(json.load(f))

    def archive(self, bucket: str) -> Path | None:
        """Rename the snapshot with the completion marker."""
        return archive_file(self.path_for(bucket))
