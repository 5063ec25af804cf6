#!/usr/bin/env python3
"""
bucket_relocate - relocates S3 buckets to a different region and/or storage class.

The relocation runs in two stages:

Stage 1 (-1) creates a temporary bucket (<bucket>-relocate) in the new region
for every bucket being relocated and copies the objects into it. Users can keep
adding objects while stage 1 runs, and it can take a long time.

Stage 2 (-2) copies objects created since stage 1, deletes the original bucket,
recreates it in the new region, restores its ACL/website/logging/CORS/versioning
configuration, copies the objects back inside S3 and deletes the temporary
bucket. No reads or writes should happen while stage 2 runs.

-A runs both stages back-to-back.

Every completed step is recorded, so an interrupted or failed run resumes from
the last completed step when the same command is run again.

Caveats:
1) Objects deleted from the original bucket after stage 1 processed them are
   not deleted from the relocated bucket.
2) Objects overwritten after stage 1 processed them are not re-copied.
3) Event notification configuration is not preserved.
4) Versioned objects keep their version ordering but get new version ids.

Usage:
    python bucket_relocate.py -A -l eu-west-1 -c STANDARD_IA my-bucket
    python bucket_relocate.py -1 -v s3://bucket01 s3://bucket02
    python bucket_relocate.py -2 s3://bucket01 s3://bucket02
    python bucket_relocate.py --status -2 my-bucket
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List

import config
from aws_utils import check_aws_credentials, create_s3_client
from manifest_log import ManifestLog
from metadata_snapshot import MetadataSnapshotStore
from relocate_errors import RelocationFatalError
from relocate_log import DebugLog, configure_console_logging, echo_err
from relocate_orchestrator import StageOrchestrator, StatusReporter
from relocate_types import MigrationJob, Stage
from relocate_utils import normalize_bucket_name
from relocate_validation import BucketValidator
from retry_policy import BucketDeleteRetryPolicy
from step_ledger import StepLedger
from storage_gateway import S3Gateway

MAX_BUCKET_NAME_LENGTH = 63
EXIT_INTERRUPTED = 130


@dataclass(frozen=True)
class StatePaths:
    """Locations of the persisted relocation state"""

    state_dir: Path

    @property
    def ledger(self) -> Path:
        """Step ledger database."""
        return self.state_dir / config.STEP_LEDGER_NAME

    @property
    def manifest(self) -> Path:
        """Object copy manifest."""
        return self.state_dir / config.MANIFEST_LOG_NAME

    @property
    def debug_log(self) -> Path:
        """Debug log."""
        return self.state_dir / config.DEBUG_LOG_NAME

    @property
    def permission_log(self) -> Path:
        """Output of the read-permission check."""
        return self.state_dir / config.PERMISSION_CHECK_LOG_NAME


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser"""
    parser = argparse.ArgumentParser(
        description=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-?", action="help", help="show this usage information and exit")
    stages = parser.add_mutually_exclusive_group(required=True)
    stages.add_argument(
        "-1",
        dest="stage",
        action="store_const",
        const=Stage.SEED,
        help="run stage 1 - users can still add objects to the bucket(s) during this stage",
    )
    stages.add_argument(
        "-2",
        dest="stage",
        action="store_const",
        const=Stage.CUTOVER,
        help="run stage 2 - no users should add or modify objects during this stage",
    )
    stages.add_argument(
        "-A",
        dest="stage",
        action="store_const",
        const=Stage.ALL,
        help="run stage 1 and stage 2 back-to-back",
    )
    parser.add_argument(
        "-l",
        "--location",
        default=config.DEFAULT_LOCATION,
        help=f"region of the relocated bucket (default: {config.DEFAULT_LOCATION})",
    )
    parser.add_argument(
        "-c",
        "--storage-class",
        type=str.upper,
        choices=config.VALID_STORAGE_CLASSES,
        default=config.DEFAULT_STORAGE_CLASS,
        help=f"storage class of the relocated objects (default: {config.DEFAULT_STORAGE_CLASS})",
    )
    parser.add_argument(
        "-v",
        "--verify",
        action="store_true",
        help="verify read access to every object before starting (slow: HEAD + ACL per object)",
    )
    parser.add_argument(
        "--permission-warnings-only",
        action="store_true",
        help="report unreadable objects found by -v without stopping the relocation",
    )
    parser.add_argument(
        "--state-dir",
        type=Path,
        default=Path(config.STATE_DIR),
        help=f"directory for the ledger, manifest, logs and snapshots (default: {config.STATE_DIR})",
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="show the recorded progress of the bucket(s) and exit",
    )
    parser.add_argument("--verbose", action="store_true", help="print debug logging to the console")
    parser.add_argument("buckets", nargs="+", metavar="bucket", help="bucket name or s3:// URL")
    return parser


def build_jobs(args: argparse.Namespace) -> List[MigrationJob]:
    """Turn bucket operands into migration jobs, dropping duplicates.

    Raises:
        ValueError: If an operand is not a usable bucket name
    """
    jobs = []
    for bucket in dict.fromkeys(normalize_bucket_name(operand) for operand in args.buckets):
        if len(bucket) + len(config.TEMP_BUCKET_SUFFIX) > MAX_BUCKET_NAME_LENGTH:
            raise ValueError(
                f"{bucket} is too long: the temporary bucket name {bucket}{config.TEMP_BUCKET_SUFFIX} "
                f"would exceed {MAX_BUCKET_NAME_LENGTH} characters"
            )
        jobs.append(
            MigrationJob(
                source=bucket,
                location=args.location,
                storage_class=args.storage_class,
                extra_verification=args.verify,
            )
        )
    return jobs


def print_summary(stage: Stage, args: argparse.Namespace, jobs: List[MigrationJob]) -> None:
    """Display a summary of the options"""
    print("Stage:         " + ("All stages" if stage == Stage.ALL else stage.value))
    print(f"Location:      {args.location}")
    print(f"Storage class: {args.storage_class}")
    print(f"Bucket(s):     {' '.join(job.source for job in jobs)}")
    print(f"State dir:     {args.state_dir}")


def create_orchestrator(s3, paths: StatePaths, debug_log: DebugLog, warnings_only: bool) -> StageOrchestrator:
    """Factory function to create StageOrchestrator with all dependencies"""
    gateway = S3Gateway(s3)
    validator = BucketValidator(
        gateway,
        permission_log_path=paths.permission_log,
        debug_log_path=paths.debug_log,
        warnings_only=warnings_only,
    )
    return StageOrchestrator(
        gateway=gateway,
        ledger=StepLedger(paths.ledger),
        snapshots=MetadataSnapshotStore(paths.state_dir),
        manifest=ManifestLog(paths.manifest),
        validator=validator,
        retry_policy=BucketDeleteRetryPolicy(),
        debug_log=debug_log,
        extra_archive_paths=[paths.permission_log],
    )


def main(argv: List[str] | None = None) -> int:
    """Main entry point for bucket relocation"""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_console_logging(args.verbose)
    try:
        jobs = build_jobs(args)
    except ValueError as exc:
        parser.error(str(exc))
    paths = StatePaths(args.state_dir.expanduser())

    if args.status:
        StatusReporter(StepLedger(paths.ledger)).show_status(jobs)
        return 0

    print_summary(args.stage, args, jobs)
    s3 = create_s3_client()
    if not check_aws_credentials(s3):
        return 1

    debug_log = DebugLog(paths.debug_log)
    debug_log.open()
    orchestrator = create_orchestrator(s3, paths, debug_log, args.permission_warnings_only)
    try:
        orchestrator.run(args.stage, jobs)
    except RelocationFatalError as exc:
        echo_err(str(exc))
        if orchestrator.current_step_label:
            print(f"Last attempted step: {orchestrator.current_step_label}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        echo_err("Interrupted. Completed steps are recorded; run the same command again to resume.")
        if orchestrator.current_step_label:
            print(f"Last attempted step: {orchestrator.current_step_label}", file=sys.stderr)
        return EXIT_INTERRUPTED
    finally:
        debug_log.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
