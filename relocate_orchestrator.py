"""Stage orchestration: drives each bucket through the numbered relocation steps.

Before every step the ledger is consulted; steps already recorded are skipped,
so re-running a stage resumes exactly where the previous run stopped. A step is
recorded only after it succeeds, and any failure ends the whole run.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Sequence

import config
from metadata_snapshot import MetadataSnapshotStore, capture_snapshot, restore_snapshot
from relocate_errors import (
    GatewayError,
    MissingSnapshotError,
    StageGateError,
    StepFailedError,
    TempBucketExistsError,
)
from relocate_log import DebugLog, log_step_end, log_step_start
from relocate_types import (
    FINAL_STEP,
    STAGE1_FINAL_STEP,
    VALIDATION_STEPS,
    BucketState,
    MigrationJob,
    Stage,
    Step,
    VersioningState,
)
from relocate_utils import archive_file

logger = logging.getLogger(__name__)

STEP_DESCRIPTIONS: Dict[Step, str] = {
    Step.VERIFY_EXISTS: "Verify the bucket exists.",
    Step.CHECK_READ_ACCESS: "Check object permissions. This may take a while...",
    Step.CHECK_WRITE_ACCESS: "Checking write permissions.",
    Step.CREATE_TEMP_BUCKET: "Create a temporary bucket ({temp}).",
    Step.MIRROR_VERSIONING: "Turn on versioning on the temporary bucket (if needed).",
    Step.SEED_COPY: "Copy objects from source to the temporary bucket ({temp}).",
    Step.SNAPSHOT_METADATA: "Backup the bucket metadata.",
    Step.CATCH_UP_COPY: "Catch up any new objects that weren't copied.",
    Step.PURGE_SOURCE: "Remove objects in source bucket.",
    Step.DELETE_SOURCE: "Remove the source bucket.",
    Step.RECREATE_SOURCE: "Recreate the original bucket.",
    Step.RESTORE_METADATA: "Restore the bucket metadata.",
    Step.COPY_BACK: "Copy all objects back to the original bucket (copy in the cloud).",
    Step.PURGE_TEMP: "Delete the objects in the temporary bucket ({temp}).",
    Step.DELETE_TEMP: "Delete the temporary bucket ({temp}).",
}

SKIPPED_READ_CHECK_DESCRIPTION = "Skipping object permissions check."

STEP_FAILURES: Dict[Step, str] = {
    Step.VERIFY_EXISTS: "Failed to check whether the bucket exists: {source}",
    Step.CHECK_READ_ACCESS: "Failed to check object permissions in {source}",
    Step.CHECK_WRITE_ACCESS: "Failed to check write permissions on {source}",
    Step.CREATE_TEMP_BUCKET: "Failed to create the bucket: {temp}",
    Step.MIRROR_VERSIONING: "Failed to turn on versioning on the temporary bucket: {temp}",
    Step.SEED_COPY: "Failed to copy objects from {source} to {temp}.",
    Step.SNAPSHOT_METADATA: "Failed to backup the bucket metadata for {source}",
    Step.CATCH_UP_COPY: "Failed to copy any new objects from {source} to {temp}",
    Step.PURGE_SOURCE: "Failed to remove the objects in {source}",
    Step.DELETE_SOURCE: "Failed to remove the bucket: {source}",
    Step.RECREATE_SOURCE: "Failed to recreate the bucket: {source}",
    Step.RESTORE_METADATA: "Failed to restore the bucket metadata on {source}",
    Step.COPY_BACK: "Failed to copy the objects back to the original bucket: {source}",
    Step.PURGE_TEMP: "Failed to delete the objects from the temporary bucket: {temp}",
    Step.DELETE_TEMP: "Failed to remove the bucket: {temp}",
}

SEED_STEPS = tuple(step for step in Step if VALIDATION_STEPS[-1] < step <= STAGE1_FINAL_STEP)
CUTOVER_STEPS = tuple(step for step in Step if step > STAGE1_FINAL_STEP)


def describe_step(step: Step, job: MigrationJob) -> str:
    """Return the operator-facing line announcing *step* for *job*."""
    if step == Step.CHECK_READ_ACCESS and not job.extra_verification:
        description = SKIPPED_READ_CHECK_DESCRIPTION
    else:
        description = STEP_DESCRIPTIONS[step].format(source=job.source, temp=job.temp)
    return f"Step {int(step)}: ({job.source}) - {description}"


class StageOrchestrator:  # pylint: disable=too-many-instance-attributes
    """Runs stage 1 (seed) and stage 2 (cutover) for a sequence of buckets"""

    def __init__(  # pylint: disable=too-many-arguments,too-many-positional-arguments
        self,
        gateway,
        ledger,
        snapshots: MetadataSnapshotStore,
        manifest,
        validator,
        retry_policy,
        debug_log: DebugLog | None = None,
        extra_archive_paths: Sequence[Path] = (),
    ):
        self.gateway = gateway
        self.ledger = ledger
        self.snapshots = snapshots
        self.manifest = manifest
        self.validator = validator
        self.retry_policy = retry_policy
        self.debug_log = debug_log
        self.extra_archive_paths = [Path(path) for path in extra_archive_paths]
        self.current_step_label: str | None = None
        self._handlers: Dict[Step, Callable[[MigrationJob], None]] = {
            Step.VERIFY_EXISTS: self._verify_exists,
            Step.CHECK_READ_ACCESS: self._check_read_access,
            Step.CHECK_WRITE_ACCESS: self._check_write_access,
            Step.CREATE_TEMP_BUCKET: self._create_temp_bucket,
            Step.MIRROR_VERSIONING: self._mirror_versioning,
            Step.SEED_COPY: self._seed_copy,
            Step.SNAPSHOT_METADATA: self._snapshot_metadata,
            Step.CATCH_UP_COPY: self._catch_up_copy,
            Step.PURGE_SOURCE: self._purge_source,
            Step.DELETE_SOURCE: self._delete_source,
            Step.RECREATE_SOURCE: self._recreate_source,
            Step.RESTORE_METADATA: self._restore_metadata,
            Step.COPY_BACK: self._copy_back,
            Step.PURGE_TEMP: self._purge_temp,
            Step.DELETE_TEMP: self._delete_temp,
        }

    # ------------------------------------------------------------------ stages

    def run(self, stage: Stage, jobs: Sequence[MigrationJob]) -> bool:
        """Run the selected stage(s). Returns True when every bucket is fully relocated."""
        if stage in (Stage.SEED, Stage.ALL):
            self.run_stage1(jobs, announce_next_stage=stage == Stage.SEED)
        if stage in (Stage.CUTOVER, Stage.ALL):
            return self.run_stage2(jobs)
        return False

    def run_stage1(self, jobs: Sequence[MigrationJob], announce_next_stage: bool = True) -> None:
        """Validate every bucket, then seed each temporary bucket and snapshot metadata."""
        print("Now executing stage 1...")
        for job in jobs:
            self._run_steps(job, VALIDATION_STEPS)
        for job in jobs:
            self._run_steps(job, SEED_STEPS)
        if announce_next_stage:
            print(
                "Stage 1 complete. Please ensure no reads or writes are occurring to your "
                "bucket(s) and then run stage 2."
            )

    def run_stage2(self, jobs: Sequence[MigrationJob]) -> bool:
        """Check the stage gate, cut every bucket over, and archive state when all are done."""
        print("Now executing stage 2...")
        self.check_stage_gate(jobs)
        for job in jobs:
            self._run_steps(job, CUTOVER_STEPS)
        return self.finish(jobs)

    def check_stage_gate(self, jobs: Iterable[MigrationJob]) -> None:
        """Fail before any change unless every bucket finished stage 1.

        Raises:
            StageGateError: If a bucket has not completed step 7
            MissingSnapshotError: If a bucket still needing its metadata restored has no snapshot
        """
        for job in jobs:
            last_step = self.ledger.last_completed_step(job.source)
            if last_step < STAGE1_FINAL_STEP:
                raise StageGateError(job.source, last_step)
            snapshot_path = self.snapshots.path_for(job.source)
            if last_step < Step.RESTORE_METADATA and not snapshot_path.exists():
                raise MissingSnapshotError(job.source, str(snapshot_path))

    def finish(self, jobs: Sequence[MigrationJob]) -> bool:
        """Archive the state files once every bucket reached the final step."""
        if any(self.ledger.last_completed_step(job.source) < FINAL_STEP for job in jobs):
            return False
        self.archive_state(jobs)
        for job in jobs:
            print(f"({job.source}): Completed.")
        return True

    def archive_state(self, jobs: Iterable[MigrationJob]) -> List[Path]:
        """Rename ledger, manifest, snapshots and logs with the completion marker.

        Manifest rows of buckets the ledger still holds unfinished are carried
        into the fresh manifest.
        """
        unfinished = [bucket for bucket, step in self.ledger.snapshot().items() if step < FINAL_STEP]
        keep_buckets = {name for bucket in unfinished for name in (bucket, MigrationJob(bucket).temp)}
        archived = [
            self.ledger.archive(),
            self.manifest.archive(keep_buckets=keep_buckets),
            *(self.snapshots.archive(job.source) for job in jobs),
            *(archive_file(path) for path in self.extra_archive_paths),
        ]
        if self.debug_log is not None:
            logger.info("Relocation complete; archiving state files")
            archived.append(self.debug_log.archive())
        return [path for path in archived if path is not None]

    def _run_steps(self, job: MigrationJob, steps: Iterable[Step]) -> None:
        for step in steps:
            if self.ledger.last_completed_step(job.source) >= step:
                continue
            label = describe_step(step, job)
            self.current_step_label = label
            log_step_start(label)
            try:
                self._handlers[step](job)
            except GatewayError as exc:
                message = STEP_FAILURES[step].format(source=job.source, temp=job.temp)
                raise StepFailedError(message, exc) from exc
            self.ledger.record_step_complete(step, job.source)
            log_step_end(step, job.source)

    # ------------------------------------------------------------------- steps

    def _verify_exists(self, job: MigrationJob) -> None:
        self.validator.verify_exists(job.source)

    def _check_read_access(self, job: MigrationJob) -> None:
        if job.extra_verification:
            self.validator.check_read_access(job.source)

    def _check_write_access(self, job: MigrationJob) -> None:
        self.validator.check_write_access(job.source)

    def _create_temp_bucket(self, job: MigrationJob) -> None:
        if self.gateway.exists(job.temp):
            raise TempBucketExistsError(job.temp)
        ownership = self.gateway.get_object_ownership(job.source)
        self.gateway.create_bucket(job.temp, job.location, ownership)

    def _mirror_versioning(self, job: MigrationJob) -> None:
        if self.gateway.get_versioning_state(job.source) == VersioningState.ENABLED:
            self.gateway.set_versioning_state(job.temp, VersioningState.ENABLED)

    def _bulk_copy(self, job: MigrationJob, source: str, dest: str, storage_class: str) -> None:
        """Copy everything from *source* to *dest*, ordered when the job's bucket is versioned."""
        ordered = self.gateway.get_versioning_state(job.source) == VersioningState.ENABLED
        if ordered:
            print(
                f"  {job.source} has versioning enabled, so all objects are copied "
                "sequentially to preserve the object version ordering."
            )
        self.gateway.copy_objects(
            source,
            dest,
            storage_class=storage_class,
            preserve_metadata=True,
            ordered=ordered,
            manifest=self.manifest,
        )

    def _seed_copy(self, job: MigrationJob) -> None:
        self._bulk_copy(job, job.source, job.temp, config.SEED_STORAGE_CLASS)

    def _snapshot_metadata(self, job: MigrationJob) -> None:
        snapshot = capture_snapshot(self.gateway, job.source)
        path = self.snapshots.save(job.source, snapshot)
        logger.debug("Saved metadata snapshot for %s to %s", job.source, path)

    def _catch_up_copy(self, job: MigrationJob) -> None:
        self._bulk_copy(job, job.source, job.temp, config.SEED_STORAGE_CLASS)

    def _purge_source(self, job: MigrationJob) -> None:
        self.gateway.delete_objects(job.source, include_all_versions=True)

    def _delete_source(self, job: MigrationJob) -> None:
        self.retry_policy.delete_bucket(self.gateway, job.source)

    def _recreate_source(self, job: MigrationJob) -> None:
        snapshot = self.snapshots.load(job.source)
        self.gateway.create_bucket(job.source, job.location, snapshot.object_ownership)

    def _restore_metadata(self, job: MigrationJob) -> None:
        snapshot = self.snapshots.load(job.source)
        applied = restore_snapshot(self.gateway, job.source, snapshot)
        logger.debug("Restored %s on %s", ", ".join(applied) or "nothing", job.source)

    def _copy_back(self, job: MigrationJob) -> None:
        self._bulk_copy(job, job.temp, job.source, job.storage_class)

    def _purge_temp(self, job: MigrationJob) -> None:
        self.gateway.delete_objects(job.temp, include_all_versions=True)

    def _delete_temp(self, job: MigrationJob) -> None:
        self.retry_policy.delete_bucket(self.gateway, job.temp)


class StatusReporter:  # pylint: disable=too-few-public-methods
    """Shows where each bucket stands according to the ledger"""

    def __init__(self, ledger):
        self.ledger = ledger

    def show_status(self, jobs: Sequence[MigrationJob]) -> None:
        """Print the last completed step and state of every bucket."""
        print("\n" + "=" * 70)
        print("RELOCATION STATUS")
        print("=" * 70)
        for job in jobs:
            last_step = self.ledger.last_completed_step(job.source)
            state = BucketState.for_step(last_step)
            if last_step >= FINAL_STEP:
                next_action = "nothing left to do"
            elif last_step >= STAGE1_FINAL_STEP:
                next_action = f"run stage 2 (next: step {last_step + 1})"
            else:
                next_action = f"run stage 1 (next: step {last_step + 1})"
            print(f"  {job.source}")
            print(f"    Last completed step: {last_step}  State: {state.value}  -> {next_action}")
        print("=" * 70)
