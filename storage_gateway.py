"""S3 implementation of the storage operations the relocation steps need.

Every botocore failure is translated into a GatewayError carrying an ErrorKind,
so callers branch on the kind of failure instead of parsing messages.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List

from boto3.s3.transfer import TransferConfig
from botocore.exceptions import BotoCoreError, ClientError

import config
from manifest_log import RESULT_ERROR, RESULT_OK, ManifestEntry, ManifestLog
from metadata_snapshot import AclDocument, CorsConfig, LoggingConfig, WebsiteConfig
from relocate_errors import ErrorKind, GatewayError
from relocate_types import ObjectDescriptor, VersioningState
from relocate_utils import ProgressTracker, format_duration, format_size, get_utc_now

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = frozenset({"404", "NoSuchBucket", "NoSuchKey", "NotFound", "NoSuchVersion"})
NOT_EMPTY_CODES = frozenset({"BucketNotEmpty"})
ACCESS_DENIED_CODES = frozenset({"403", "AccessDenied", "Forbidden", "AllAccessDisabled", "AccountProblem"})
ALREADY_EXISTS_CODES = frozenset({"BucketAlreadyExists", "BucketAlreadyOwnedByYou"})

NO_WEBSITE_CODES = frozenset({"NoSuchWebsiteConfiguration"})
NO_CORS_CODES = frozenset({"NoSuchCORSConfiguration"})
ACL_DISABLED_CODES = frozenset({"AccessControlListNotSupported"})
NO_OWNERSHIP_CODES = frozenset({"OwnershipControlsNotFoundError"})

# Object headers carried over when metadata is preserved on copy
PRESERVED_HEADERS = (
    "ContentType",
    "CacheControl",
    "ContentDisposition",
    "ContentEncoding",
    "ContentLanguage",
    "Expires",
    "WebsiteRedirectLocation",
)

DELETE_BATCH_SIZE = 1000
MULTIPART_THRESHOLD = 64 * 1024 * 1024
MULTIPART_CHUNKSIZE = 64 * 1024 * 1024


def error_code(exc: ClientError) -> str:
    """Return the service error code of a ClientError."""
    return str(exc.response.get("Error", {}).get("Code", ""))


def classify_client_error(exc: ClientError) -> ErrorKind:
    """Map an S3 error code to the ErrorKind the orchestrator understands."""
    code = error_code(exc)
    if code in NOT_EMPTY_CODES:
        return ErrorKind.NOT_EMPTY
    if code in NOT_FOUND_CODES:
        return ErrorKind.NOT_FOUND
    if code in ACCESS_DENIED_CODES:
        return ErrorKind.ACCESS_DENIED
    if code in ALREADY_EXISTS_CODES:
        return ErrorKind.ALREADY_EXISTS
    return ErrorKind.OTHER


def to_gateway_error(exc: Exception, operation: str, target: str) -> GatewayError:
    """Wrap a botocore exception as a GatewayError."""
    if isinstance(exc, ClientError):
        return GatewayError(classify_client_error(exc), operation, target, str(exc))
    return GatewayError(ErrorKind.OTHER, operation, target, str(exc))


@contextmanager
def translate_errors(operation: str, target: str):
    """Re-raise botocore errors raised inside the block as GatewayError."""
    try:
        yield
    except (ClientError, BotoCoreError) as exc:
        raise to_gateway_error(exc, operation, target) from exc


def _version_kwargs(descriptor: ObjectDescriptor) -> dict:
    if descriptor.version_id and descriptor.version_id != "null":
        return {"VersionId": descriptor.version_id}
    return {}


def _chunks(items: list, size: int) -> Iterator[list]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _oldest_first(history: List[ObjectDescriptor]) -> List[ObjectDescriptor]:
    ordered = list(reversed(history))
    if all(descriptor.last_modified is not None for descriptor in ordered):
        ordered.sort(key=lambda descriptor: descriptor.last_modified)
    return ordered


def group_versions_oldest_first(versions: Iterable[ObjectDescriptor]) -> Iterator[ObjectDescriptor]:
    """Yield a version listing so each key's history runs from oldest to newest.

    S3 lists a key's entries contiguously and newest first, so only one key's
    history is held at a time. Versions and delete markers of a key are merged
    by their modification time.
    """
    history: List[ObjectDescriptor] = []
    for descriptor in versions:
        if history and descriptor.key != history[0].key:
            yield from _oldest_first(history)
            history = []
        history.append(descriptor)
    if history:
        yield from _oldest_first(history)


@dataclass
class CopySummary:
    """Counts reported by a bulk copy."""

    copied: int = 0
    skipped: int = 0
    bytes_copied: int = 0
    delete_markers: int = 0


class S3Gateway:  # pylint: disable=too-many-public-methods
    """Bucket and object operations against S3"""

    def __init__(self, s3, max_workers: int = config.MAX_CONCURRENT_COPIES):
        self.s3 = s3
        self.max_workers = max_workers
        self.transfer_config = TransferConfig(
            multipart_threshold=MULTIPART_THRESHOLD,
            multipart_chunksize=MULTIPART_CHUNKSIZE,
        )

    # ------------------------------------------------------------------ buckets

    def exists(self, bucket: str) -> bool:
        """Return True if *bucket* exists (even when owned by someone else)."""
        try:
            self.s3.head_bucket(Bucket=bucket)
        except ClientError as exc:
            kind = classify_client_error(exc)
            if kind == ErrorKind.NOT_FOUND:
                return False
            if kind == ErrorKind.ACCESS_DENIED:
                logger.debug("HeadBucket denied for %s; treating the name as taken", bucket)
                return True
            raise to_gateway_error(exc, "HeadBucket", bucket) from exc
        except BotoCoreError as exc:
            raise to_gateway_error(exc, "HeadBucket", bucket) from exc
        return True

    def create_bucket(self, bucket: str, location: str, object_ownership: str | None = None) -> None:
        """Create *bucket* in region *location*, with the given ObjectOwnership setting if any.

        Note:
            us-east-1 requires a request without a LocationConstraint.
            Without *object_ownership* S3 creates the bucket with ACLs disabled.
        """
        logger.debug("Creating bucket %s in %s (ownership: %s)", bucket, location, object_ownership)
        params = {"Bucket": bucket}
        if location != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": location}
        if object_ownership:
            params["ObjectOwnership"] = object_ownership
        with translate_errors("CreateBucket", bucket):
            self.s3.create_bucket(**params)

    def get_object_ownership(self, bucket: str) -> str:
        """Return the bucket's ObjectOwnership setting.

        Buckets without ownership controls honour object ACLs, which is what
        ObjectWriter means for a new bucket.
        """
        try:
            response = self.s3.get_bucket_ownership_controls(Bucket=bucket)
        except ClientError as exc:
            if error_code(exc) in NO_OWNERSHIP_CODES:
                return config.LEGACY_OBJECT_OWNERSHIP
            raise to_gateway_error(exc, "GetBucketOwnershipControls", bucket) from exc
        except BotoCoreError as exc:
            raise to_gateway_error(exc, "GetBucketOwnershipControls", bucket) from exc
        rules = response.get("OwnershipControls", {}).get("Rules", [])
        if not rules:
            return config.LEGACY_OBJECT_OWNERSHIP
        return rules[0]["ObjectOwnership"]

    def delete_bucket(self, bucket: str) -> None:
        """Delete an empty bucket; a non-empty bucket raises ErrorKind.NOT_EMPTY."""
        logger.debug("Deleting bucket %s", bucket)
        with translate_errors("DeleteBucket", bucket):
            self.s3.delete_bucket(Bucket=bucket)

    def get_versioning_state(self, bucket: str) -> VersioningState:
        """Return ENABLED only for Status=Enabled; suspended or never-enabled is DISABLED."""
        with translate_errors("GetBucketVersioning", bucket):
            response = self.s3.get_bucket_versioning(Bucket=bucket)
        if response.get("Status") == "Enabled":
            return VersioningState.ENABLED
        return VersioningState.DISABLED

    def set_versioning_state(self, bucket: str, state: VersioningState) -> None:
        """Enable or suspend versioning on *bucket*."""
        status = "Enabled" if state == VersioningState.ENABLED else "Suspended"
        with translate_errors("PutBucketVersioning", bucket):
            self.s3.put_bucket_versioning(Bucket=bucket, VersioningConfiguration={"Status": status})

    # ------------------------------------------------------------ configuration

    def get_bucket_acl(self, bucket: str) -> AclDocument:
        """Return the bucket ACL."""
        with translate_errors("GetBucketAcl", bucket):
            response = self.s3.get_bucket_acl(Bucket=bucket)
        return AclDocument(owner=dict(response.get("Owner", {})), grants=list(response.get("Grants", [])))

    def set_bucket_acl(self, bucket: str, acl: AclDocument) -> None:
        """Replace the bucket ACL."""
        policy = {"Owner": acl.owner, "Grants": acl.grants}
        with translate_errors("PutBucketAcl", bucket):
            self.s3.put_bucket_acl(Bucket=bucket, AccessControlPolicy=policy)

    def get_website_config(self, bucket: str) -> WebsiteConfig:
        """Return the website configuration; empty when the bucket has none."""
        try:
            response = self.s3.get_bucket_website(Bucket=bucket)
        except ClientError as exc:
            if error_code(exc) in NO_WEBSITE_CODES:
                return WebsiteConfig()
            raise to_gateway_error(exc, "GetBucketWebsite", bucket) from exc
        except BotoCoreError as exc:
            raise to_gateway_error(exc, "GetBucketWebsite", bucket) from exc
        return WebsiteConfig(
            main_page_suffix=response.get("IndexDocument", {}).get("Suffix"),
            not_found_page=response.get("ErrorDocument", {}).get("Key"),
            redirect_all_requests_to=response.get("RedirectAllRequestsTo"),
            routing_rules=list(response.get("RoutingRules", [])),
        )

    def set_website_config(self, bucket: str, website: WebsiteConfig) -> None:
        """Apply a website configuration.

        A redirect-all configuration cannot carry documents or routing rules, so
        it is sent on its own.
        """
        if website.redirect_all_requests_to:
            configuration = {"RedirectAllRequestsTo": website.redirect_all_requests_to}
        else:
            configuration = {}
            if website.main_page_suffix:
                configuration["IndexDocument"] = {"Suffix": website.main_page_suffix}
            if website.not_found_page:
                configuration["ErrorDocument"] = {"Key": website.not_found_page}
            if website.routing_rules:
                configuration["RoutingRules"] = website.routing_rules
        with translate_errors("PutBucketWebsite", bucket):
            self.s3.put_bucket_website(Bucket=bucket, WebsiteConfiguration=configuration)

    def get_logging_config(self, bucket: str) -> LoggingConfig:
        """Return the access logging configuration; empty when logging is off."""
        with translate_errors("GetBucketLogging", bucket):
            response = self.s3.get_bucket_logging(Bucket=bucket)
        enabled = response.get("LoggingEnabled") or {}
        return LoggingConfig(log_bucket=enabled.get("TargetBucket"), log_prefix=enabled.get("TargetPrefix"))

    def set_logging_config(self, bucket: str, logging_config: LoggingConfig) -> None:
        """Enable access logging to the configured bucket and prefix."""
        status = {
            "LoggingEnabled": {
                "TargetBucket": logging_config.log_bucket,
                "TargetPrefix": logging_config.log_prefix,
            }
        }
        with translate_errors("PutBucketLogging", bucket):
            self.s3.put_bucket_logging(Bucket=bucket, BucketLoggingStatus=status)

    def get_cors(self, bucket: str) -> CorsConfig:
        """Return the CORS rules; empty when the bucket has none."""
        try:
            response = self.s3.get_bucket_cors(Bucket=bucket)
        except ClientError as exc:
            if error_code(exc) in NO_CORS_CODES:
                return CorsConfig()
            raise to_gateway_error(exc, "GetBucketCors", bucket) from exc
        except BotoCoreError as exc:
            raise to_gateway_error(exc, "GetBucketCors", bucket) from exc
        return CorsConfig(rules=list(response.get("CORSRules", [])))

    def set_cors(self, bucket: str, cors: CorsConfig) -> None:
        """Replace the CORS rules."""
        with translate_errors("PutBucketCors", bucket):
            self.s3.put_bucket_cors(Bucket=bucket, CORSConfiguration={"CORSRules": cors.rules})

    # ------------------------------------------------------------------ objects

    def list_objects(
        self, bucket: str, all_versions: bool = False, include_delete_markers: bool = False
    ) -> Iterator[ObjectDescriptor]:
        """Lazily list current objects, or every object version.

        Delete markers are only listed with *include_delete_markers*; each
        page's entries are then kept grouped by key.
        """
        if all_versions:
            paginator = self.s3.get_paginator("list_object_versions")
            with translate_errors("ListObjectVersions", bucket):
                for page in paginator.paginate(Bucket=bucket):
                    entries = [self._version_descriptor(version) for version in page.get("Versions", [])]
                    if include_delete_markers:
                        entries.extend(
                            self._version_descriptor(marker, delete_marker=True)
                            for marker in page.get("DeleteMarkers", [])
                        )
                        entries.sort(key=lambda descriptor: descriptor.key)
                    yield from entries
            return
        paginator = self.s3.get_paginator("list_objects_v2")
        with translate_errors("ListObjects", bucket):
            for page in paginator.paginate(Bucket=bucket):
                for obj in page.get("Contents", []):
                    yield ObjectDescriptor(
                        key=obj["Key"],
                        size=obj.get("Size", 0),
                        etag=obj.get("ETag", "").strip('"'),
                    )

    @staticmethod
    def _version_descriptor(entry: dict, delete_marker: bool = False) -> ObjectDescriptor:
        return ObjectDescriptor(
            key=entry["Key"],
            size=entry.get("Size", 0),
            etag=entry.get("ETag", "").strip('"'),
            version_id=entry.get("VersionId"),
            is_latest=entry.get("IsLatest", True),
            last_modified=entry.get("LastModified"),
            is_delete_marker=delete_marker,
        )

    def write_object(self, bucket: str, key: str, content: bytes) -> None:
        """Store a small object."""
        with translate_errors("PutObject", f"s3://{bucket}/{key}"):
            self.s3.put_object(Bucket=bucket, Key=key, Body=content)

    def check_object_readable(self, bucket: str, descriptor: ObjectDescriptor) -> bool:
        """HEAD the object and fetch its ACL; False when either is denied.

        An object deleted since it was listed counts as readable.
        """
        target = descriptor.url(bucket)
        try:
            self.s3.head_object(Bucket=bucket, Key=descriptor.key, **_version_kwargs(descriptor))
            self.s3.get_object_acl(Bucket=bucket, Key=descriptor.key, **_version_kwargs(descriptor))
        except ClientError as exc:
            kind = classify_client_error(exc)
            if kind == ErrorKind.ACCESS_DENIED:
                return False
            if kind == ErrorKind.NOT_FOUND:
                logger.debug("%s disappeared during the permission check", target)
                return True
            raise to_gateway_error(exc, "HeadObject", target) from exc
        except BotoCoreError as exc:
            raise to_gateway_error(exc, "HeadObject", target) from exc
        return True

    def delete_object(self, bucket: str, key: str, all_versions: bool = True) -> int:
        """Delete one object; with *all_versions*, every version and delete marker of it."""
        target = f"s3://{bucket}/{key}"
        if not all_versions:
            with translate_errors("DeleteObject", target):
                self.s3.delete_object(Bucket=bucket, Key=key)
            return 1
        entries = []
        paginator = self.s3.get_paginator("list_object_versions")
        with translate_errors("ListObjectVersions", target):
            for page in paginator.paginate(Bucket=bucket, Prefix=key):
                entries.extend(entry for entry in self._collect_versions(page) if entry["Key"] == key)
        if not entries:
            with translate_errors("DeleteObject", target):
                self.s3.delete_object(Bucket=bucket, Key=key)
            return 1
        return self._delete_batch(bucket, entries)

    @staticmethod
    def _collect_versions(page) -> List[dict]:
        """Collect all object versions and delete markers from a page."""
        entries = []
        for version in page.get("Versions", []):
            entries.append({"Key": version["Key"], "VersionId": version["VersionId"]})
        for marker in page.get("DeleteMarkers", []):
            entries.append({"Key": marker["Key"], "VersionId": marker["VersionId"]})
        return entries

    def _delete_batch(self, bucket: str, entries: List[dict]) -> int:
        deleted = 0
        for chunk in _chunks(entries, DELETE_BATCH_SIZE):
            with translate_errors("DeleteObjects", bucket):
                response = self.s3.delete_objects(Bucket=bucket, Delete={"Objects": chunk, "Quiet": True})
            errors = response.get("Errors", [])
            if errors:
                first = errors[0]
                detail = (
                    f"{len(errors)} object(s) not deleted; first: Key={first.get('Key')} "
                    f"VersionId={first.get('VersionId')} Code={first.get('Code')} "
                    f"Message={first.get('Message')}"
                )
                kind = ErrorKind.ACCESS_DENIED if first.get("Code") in ACCESS_DENIED_CODES else ErrorKind.OTHER
                raise GatewayError(kind, "DeleteObjects", bucket, detail)
            deleted += len(chunk)
        return deleted

    def _abort_multipart_uploads(self, bucket: str) -> int:
        """Abort any in-progress multipart uploads for the bucket."""
        paginator = self.s3.get_paginator("list_multipart_uploads")
        aborted = 0
        with translate_errors("AbortMultipartUpload", bucket):
            for page in paginator.paginate(Bucket=bucket):
                for upload in page.get("Uploads", []):
                    self.s3.abort_multipart_upload(Bucket=bucket, Key=upload["Key"], UploadId=upload["UploadId"])
                    aborted += 1
        if aborted:
            print(f"  Aborted {aborted:,} multipart uploads")
        return aborted

    def delete_objects(self, bucket: str, include_all_versions: bool = True) -> int:
        """Delete every object in *bucket*; returns the number of objects/versions removed."""
        start_time = time.time()
        progress = ProgressTracker(update_interval=2.0)
        deleted = 0
        if include_all_versions:
            paginator = self.s3.get_paginator("list_object_versions")
            list_operation = "ListObjectVersions"
        else:
            paginator = self.s3.get_paginator("list_objects_v2")
            list_operation = "ListObjects"
        with translate_errors(list_operation, bucket):
            for page in paginator.paginate(Bucket=bucket):
                if include_all_versions:
                    entries = self._collect_versions(page)
                else:
                    entries = [{"Key": obj["Key"]} for obj in page.get("Contents", [])]
                if not entries:
                    continue
                deleted += self._delete_batch(bucket, entries)
                if progress.should_update():
                    print(f"\r  Progress: {deleted:,} deleted  ", end="", flush=True)
        if include_all_versions:
            self._abort_multipart_uploads(bucket)
        print(f"  Deleted {deleted:,} objects/versions in {format_duration(time.time() - start_time)}")
        logger.debug("Deleted %d objects/versions from %s", deleted, bucket)
        return deleted

    # -------------------------------------------------------------------- copy

    def copy_objects(  # pylint: disable=too-many-arguments,too-many-positional-arguments
        self,
        source: str,
        dest: str,
        storage_class: str,
        preserve_metadata: bool = True,
        ordered: bool = False,
        manifest: ManifestLog | None = None,
    ) -> CopySummary:
        """Server-side copy of every object from *source* to *dest*.

        With *ordered*, every version and delete marker is replayed by a single
        worker, oldest first, so the destination's version history keeps the
        source's relative order and deleted keys stay deleted. Otherwise current
        objects are copied in parallel. Sources the manifest already records as
        copied are skipped. The listing is streamed, never held in memory.
        """
        if ordered:
            descriptors = group_versions_oldest_first(
                self.list_objects(source, all_versions=True, include_delete_markers=True)
            )
        else:
            descriptors = self.list_objects(source)
        summary = CopySummary()
        pending = self._not_yet_copied(source, descriptors, manifest, summary)
        mode = "sequentially (versioned)" if ordered else f"with {self.max_workers} workers"
        print(f"  Copying objects from s3://{source} to s3://{dest} {mode}")
        start_time = time.time()
        if ordered:
            self._copy_sequential(source, dest, pending, storage_class, preserve_metadata, manifest, summary)
        else:
            self._copy_parallel(source, dest, pending, storage_class, preserve_metadata, manifest, summary)
        elapsed = time.time() - start_time
        print(
            f"\n  Copied {summary.copied:,} object(s), {format_size(summary.bytes_copied)}, "
            f"{summary.delete_markers:,} delete marker(s); skipped {summary.skipped:,} already copied "
            f"in {format_duration(elapsed)}"
        )
        return summary

    @staticmethod
    def _not_yet_copied(
        source: str,
        descriptors: Iterable[ObjectDescriptor],
        manifest: ManifestLog | None,
        summary: CopySummary,
    ) -> Iterator[ObjectDescriptor]:
        for descriptor in descriptors:
            if manifest is not None and manifest.is_copied(descriptor.url(source)):
                summary.skipped += 1
                continue
            yield descriptor

    @staticmethod
    def _count_copied(summary: CopySummary, descriptor: ObjectDescriptor) -> None:
        if descriptor.is_delete_marker:
            summary.delete_markers += 1
            return
        summary.copied += 1
        summary.bytes_copied += descriptor.size

    def _copy_sequential(  # pylint: disable=too-many-arguments,too-many-positional-arguments
        self, source, dest, pending, storage_class, preserve_metadata, manifest, summary
    ):
        progress = ProgressTracker(update_interval=2.0)
        for descriptor in pending:
            self._copy_one(source, dest, descriptor, storage_class, preserve_metadata, manifest)
            self._count_copied(summary, descriptor)
            if progress.should_update():
                self._display_progress(summary)

    def _copy_parallel(  # pylint: disable=too-many-arguments,too-many-positional-arguments
        self, source, dest, pending, storage_class, preserve_metadata, manifest, summary
    ):
        """Copy with at most max_workers * COPY_QUEUE_PER_WORKER copies queued at once."""
        progress = ProgressTracker(update_interval=2.0)
        failures: List[GatewayError] = []
        window = self.max_workers * config.COPY_QUEUE_PER_WORKER
        in_flight: Dict = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            for descriptor in pending:
                if len(in_flight) >= window:
                    self._collect_finished(in_flight, summary, failures, progress)
                future = executor.submit(
                    self._copy_one, source, dest, descriptor, storage_class, preserve_metadata, manifest
                )
                in_flight[future] = descriptor
            while in_flight:
                self._collect_finished(in_flight, summary, failures, progress)
        if failures:
            first = failures[0]
            raise GatewayError(
                first.kind,
                "CopyObjects",
                f"s3://{source} -> s3://{dest}",
                f"{len(failures)} object(s) failed to copy; first: {first}",
            )

    def _collect_finished(self, in_flight: Dict, summary, failures, progress) -> None:
        """Wait for at least one queued copy and account for every finished one."""
        done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
        for future in done:
            descriptor = in_flight.pop(future)
            try:
                future.result()
            except GatewayError as exc:
                failures.append(exc)
                continue
            self._count_copied(summary, descriptor)
            if progress.should_update():
                self._display_progress(summary)

    @staticmethod
    def _display_progress(summary: CopySummary) -> None:
        print(
            f"\r  Progress: {summary.copied:,} copied, {format_size(summary.bytes_copied)}, "
            f"{summary.skipped:,} skipped  ",
            end="",
            flush=True,
        )

    def _copy_one(  # pylint: disable=too-many-arguments,too-many-positional-arguments
        self,
        source: str,
        dest: str,
        descriptor: ObjectDescriptor,
        storage_class: str,
        preserve_metadata: bool,
        manifest: ManifestLog | None,
    ) -> None:
        """Copy one object version, or replay one delete marker, then record the attempt."""
        source_url = descriptor.url(source)
        dest_url = f"s3://{dest}/{descriptor.key}"
        started = get_utc_now()
        try:
            if descriptor.is_delete_marker:
                # On a versioned bucket a plain delete adds a marker on top
                self.s3.delete_object(Bucket=dest, Key=descriptor.key)
            else:
                self._copy_version(source, dest, descriptor, storage_class, preserve_metadata)
        except (ClientError, BotoCoreError) as exc:
            self._record_copy(manifest, descriptor, source_url, dest_url, started, error=str(exc))
            raise to_gateway_error(exc, "CopyObject", source_url) from exc
        logger.debug("Copied %s to %s", source_url, dest_url)
        self._record_copy(manifest, descriptor, source_url, dest_url, started)

    def _copy_version(  # pylint: disable=too-many-arguments,too-many-positional-arguments
        self, source: str, dest: str, descriptor: ObjectDescriptor, storage_class: str, preserve_metadata: bool
    ) -> None:
        extra_args = {"StorageClass": storage_class}
        if preserve_metadata:
            extra_args.update(self._source_headers(source, descriptor))
        copy_source = {"Bucket": source, "Key": descriptor.key, **_version_kwargs(descriptor)}
        self.s3.copy(copy_source, dest, descriptor.key, ExtraArgs=extra_args, Config=self.transfer_config)
        if preserve_metadata:
            self._copy_object_acl(source, dest, descriptor)

    @staticmethod
    def _record_copy(  # pylint: disable=too-many-arguments,too-many-positional-arguments
        manifest: ManifestLog | None,
        descriptor: ObjectDescriptor,
        source_url: str,
        dest_url: str,
        started: str,
        error: str | None = None,
    ) -> None:
        if manifest is None:
            return
        if error is not None:
            result, description, transferred = RESULT_ERROR, error, 0
        elif descriptor.is_delete_marker:
            result, description, transferred = RESULT_OK, "delete marker", 0
        else:
            result, description, transferred = RESULT_OK, "", descriptor.size
        manifest.record(
            ManifestEntry(
                source=source_url,
                destination=dest_url,
                start=started,
                end=get_utc_now(),
                md5=descriptor.etag,
                source_size=descriptor.size,
                bytes_transferred=transferred,
                result=result,
                description=description,
            )
        )

    def _source_headers(self, source: str, descriptor: ObjectDescriptor) -> dict:
        """Content headers and user metadata of the source object, for a REPLACE copy.

        Passing them explicitly keeps them on multipart copies too.
        """
        head = self.s3.head_object(Bucket=source, Key=descriptor.key, **_version_kwargs(descriptor))
        headers = {"MetadataDirective": "REPLACE", "Metadata": head.get("Metadata", {})}
        for name in PRESERVED_HEADERS:
            if head.get(name):
                headers[name] = head[name]
        return headers

    def _copy_object_acl(self, source: str, dest: str, descriptor: ObjectDescriptor) -> None:
        """Copy the object ACL; buckets with ACLs disabled keep their owner-enforced ACL."""
        try:
            acl = self.s3.get_object_acl(Bucket=source, Key=descriptor.key, **_version_kwargs(descriptor))
            self.s3.put_object_acl(
                Bucket=dest,
                Key=descriptor.key,
                AccessControlPolicy={"Owner": acl["Owner"], "Grants": acl.get("Grants", [])},
            )
        except ClientError as exc:
            if error_code(exc) not in ACL_DISABLED_CODES:
                raise
            logger.debug("ACLs disabled, object ACL not copied for %s", descriptor.url(source))
