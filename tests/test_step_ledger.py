"""Unit tests for step_ledger.py"""

import sqlite3
from pathlib import Path

import pytest

from relocate_types import FINAL_STEP, Step
from step_ledger import DatabaseConnection, StepLedger
from tests.assertions import assert_equal


class TestDatabaseConnection:
    """Test DatabaseConnection initialization and operations."""

    def test_creates_parent_directory_and_schema(self, tmp_path: Path):
        """The database file and its directory are created on first use."""
        db_path = tmp_path / "nested" / "ledger.db"
        db_conn = DatabaseConnection(str(db_path))

        assert db_path.exists()
        with db_conn.get_connection() as conn:
            tables = [row["name"] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")]
        assert "step_log" in tables

    def test_connection_closes_properly(self, tmp_path: Path):
        """get_connection closes the connection on exit."""
        db_conn = DatabaseConnection(str(tmp_path / "ledger.db"))

        with db_conn.get_connection() as conn:
            pass

        with pytest.raises(sqlite3.ProgrammingError):
            conn.execute("SELECT 1")


class TestStepLedger:
    """Test recording and replaying completed steps."""

    def test_unknown_bucket_has_no_steps(self, ledger):
        """A bucket that never ran reports step 0."""
        assert_equal(ledger.last_completed_step("never-seen"), 0)

    def test_records_highest_step_per_bucket(self, ledger):
        """Each bucket keeps its own resume position."""
        ledger.record_step_complete(Step.VERIFY_EXISTS, "alpha")
        ledger.record_step_complete(Step.CHECK_READ_ACCESS, "alpha")
        ledger.record_step_complete(Step.VERIFY_EXISTS, "beta")

        assert_equal(ledger.last_completed_step("alpha"), 2)
        assert_equal(ledger.last_completed_step("beta"), 1)
        assert_equal(ledger.snapshot(), {"alpha": 2, "beta": 1})

    def test_last_step_never_decreases(self, ledger):
        """Recording a lower step leaves the resume position unchanged."""
        ledger.record_step_complete(Step.SEED_COPY, "alpha")
        ledger.record_step_complete(Step.CREATE_TEMP_BUCKET, "alpha")

        assert_equal(ledger.last_completed_step("alpha"), 6)

    def test_duplicate_record_is_ignored(self, ledger):
        """The same (step, bucket) pair is stored once."""
        ledger.record_step_complete(Step.VERIFY_EXISTS, "alpha")
        ledger.record_step_complete(Step.VERIFY_EXISTS, "alpha")

        with ledger.db_conn.get_connection() as conn:
            count = conn.execute("SELECT COUNT(*) FROM step_log").fetchone()[0]
        assert_equal(count, 1)

    def test_replays_from_disk(self, state_dir):
        """A new ledger on the same file sees every recorded step."""
        db_path = state_dir / "ledger.db"
        first = StepLedger(db_path)
        for step in (Step.VERIFY_EXISTS, Step.CHECK_READ_ACCESS, Step.CHECK_WRITE_ACCESS):
            first.record_step_complete(step, "alpha")
        first.record_step_complete(Step.VERIFY_EXISTS, "beta")

        reopened = StepLedger(db_path)

        assert_equal(reopened.last_completed_step("alpha"), 3)
        assert_equal(reopened.last_completed_step("beta"), 1)


class TestStepLedgerArchive:
    """Test archiving the ledger on completion."""

    def test_archive_renames_file_and_starts_fresh(self, state_dir):
        """The archived ledger gets the .DONE suffix and the live ledger is empty."""
        db_path = state_dir / "bucket-relocate-step.db"
        ledger = StepLedger(db_path)
        for step in Step:
            ledger.record_step_complete(step, "alpha")

        archived = ledger.archive()

        assert_equal(archived, state_dir / "bucket-relocate-step.db.DONE")
        assert archived.exists()
        assert db_path.exists()
        assert_equal(ledger.last_completed_step("alpha"), 0)
        assert_equal(StepLedger(db_path).last_completed_step("alpha"), 0)

    def test_archive_keeps_unfinished_buckets(self, state_dir):
        """Buckets short of the final step keep their rows in the fresh ledger."""
        db_path = state_dir / "bucket-relocate-step.db"
        ledger = StepLedger(db_path)
        for step in Step:
            ledger.record_step_complete(step, "done")
        for step in (Step.VERIFY_EXISTS, Step.CHECK_READ_ACCESS):
            ledger.record_step_complete(step, "pending")

        ledger.archive()

        reopened = StepLedger(db_path)
        assert_equal(reopened.last_completed_step("done"), 0)
        assert_equal(reopened.last_completed_step("pending"), 2)
        assert_equal(ledger.snapshot(), {"pending": 2})

    def test_second_archive_gets_numbered_name(self, state_dir):
        """An existing archive is never overwritten."""
        db_path = state_dir / "bucket-relocate-step.db"
        ledger = StepLedger(db_path)
        ledger.record_step_complete(FINAL_STEP, "alpha")
        ledger.archive()
        ledger.record_step_complete(FINAL_STEP, "alpha")

        second = ledger.archive()

        assert_equal(second, state_dir / "bucket-relocate-step.db.DONE.1")
