"""
Configuration for the bucket relocation tool.

State files (step ledger, manifest, debug log, metadata snapshots) live in a
single state directory. Override it with BUCKET_RELOCATE_STATE_DIR (a .env file
is honoured) or the --state-dir command line option.
"""

import os

from dotenv import load_dotenv

from aws_utils import resolve_env_path

load_dotenv(resolve_env_path())

# Directory holding the ledger, manifest, debug log and metadata snapshots
STATE_DIR: str = os.environ.get("BUCKET_RELOCATE_STATE_DIR", "/tmp")

# File names inside STATE_DIR
STEP_LEDGER_NAME: str = "bucket-relocate-step.db"
MANIFEST_LOG_NAME: str = "bucket-relocate-manifest.log"
DEBUG_LOG_NAME: str = "bucket-relocate-debug.log"
PERMISSION_CHECK_LOG_NAME: str = "bucket-relocate-permcheck.log"
SNAPSHOT_NAME_TEMPLATE: str = "bucket-relocate-metadata-for-{bucket}.json"

# Marker appended to state files once every requested bucket is relocated
COMPLETION_SUFFIX: str = ".DONE"

# Temporary bucket name = source bucket name + suffix
TEMP_BUCKET_SUFFIX: str = "-relocate"

# Destination defaults
DEFAULT_LOCATION: str = "us-east-1"
DEFAULT_STORAGE_CLASS: str = "STANDARD"
VALID_STORAGE_CLASSES = (
    "STANDARD",
    "STANDARD_IA",
    "ONEZONE_IA",
    "INTELLIGENT_TIERING",
    "GLACIER_IR",
    "GLACIER",
    "DEEP_ARCHIVE",
    "REDUCED_REDUNDANCY",
)

# Storage class of the copies in the temporary bucket. The requested class is
# applied on the copy back, which must read every object without a restore.
SEED_STORAGE_CLASS: str = "STANDARD"

# Bucket deletion right after a bulk object delete can report BucketNotEmpty
# until the deletes become visible.
DELETE_RETRY_MAX_RETRIES: int = 24
DELETE_RETRY_DELAY_SECONDS: float = 5.0

# Parallel copy workers for unversioned buckets
MAX_CONCURRENT_COPIES: int = 10
# Copies queued per worker; bounds memory on very large buckets
COPY_QUEUE_PER_WORKER: int = 4

# Buckets without ownership controls predate BucketOwnerEnforced and honour ACLs
LEGACY_OBJECT_OWNERSHIP: str = "ObjectWriter"

# Write-permission probe object
PROBE_OBJECT_PREFIX: str = "relocate_check_"
PROBE_OBJECT_RANDOM_LENGTH: int = 60
PROBE_OBJECT_BODY: bytes = b"relocate access check\n"
