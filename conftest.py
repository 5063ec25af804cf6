"""Pytest configuration and shared fixtures for the bucket relocation tool."""

# pylint: disable=wrong-import-position

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import pytest

from manifest_log import ManifestLog
from metadata_snapshot import MetadataSnapshotStore
from step_ledger import StepLedger


@pytest.fixture(autouse=True)
def mock_aws_env_file(tmp_path, monkeypatch):
    """Auto-use fixture that points AWS_ENV_FILE at a temporary .env with mock credentials."""
    env_file = tmp_path / ".env"
    env_file.write_text("AWS_ACCESS_KEY_ID=test_key\nAWS_SECRET_ACCESS_KEY=test_secret\n")
    monkeypatch.setenv("AWS_ENV_FILE", str(env_file))
    yield str(env_file)


@pytest.fixture(name="state_dir")
def fixture_state_dir(tmp_path):
    """Provide an empty state directory for ledger, manifest and snapshots."""
    path = tmp_path / "state"
    path.mkdir()
    return path


@pytest.fixture(name="ledger")
def fixture_ledger(state_dir):
    """Return a StepLedger in the temporary state directory."""
    return StepLedger(state_dir / "bucket-relocate-step.db")


@pytest.fixture(name="manifest")
def fixture_manifest(state_dir):
    """Return a ManifestLog in the temporary state directory."""
    return ManifestLog(state_dir / "bucket-relocate-manifest.log")


@pytest.fixture(name="snapshots")
def fixture_snapshots(state_dir):
    """Return a MetadataSnapshotStore in the temporary state directory."""
    return MetadataSnapshotStore(state_dir)

