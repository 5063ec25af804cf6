"""Shared pytest fixtures for test files."""

from __future__ import annotations

from unittest import mock

import pytest

from relocate_orchestrator import StageOrchestrator
from relocate_validation import BucketValidator
from retry_policy import BucketDeleteRetryPolicy
from tests.fake_gateway import FakeGateway


@pytest.fixture(autouse=True)
def stub_boto3_client(monkeypatch):
    """Replace boto3.client with a mock so tests don't call real AWS."""
    monkeypatch.setattr("boto3.client", mock.MagicMock(name="boto3.client"))


@pytest.fixture(name="gateway")
def fixture_gateway():
    """Return an empty in-memory gateway."""
    return FakeGateway()


@pytest.fixture(name="sleeper")
def fixture_sleeper():
    """Stand-in for time.sleep that records the requested delays."""
    return mock.Mock(name="sleeper")


@pytest.fixture(name="make_orchestrator")
def fixture_make_orchestrator(
    gateway, ledger, snapshots, manifest, state_dir, sleeper
):  # pylint: disable=too-many-arguments,too-many-positional-arguments
    """Build a StageOrchestrator wired to the fake gateway and the temp state dir."""

    def _make(warnings_only: bool = False, **overrides) -> StageOrchestrator:
        validator = BucketValidator(
            gateway,
            permission_log_path=state_dir / "bucket-relocate-permcheck.log",
            debug_log_path=state_dir / "bucket-relocate-debug.log",
            warnings_only=warnings_only,
        )
        components = {
            "gateway": gateway,
            "ledger": ledger,
            "snapshots": snapshots,
            "manifest": manifest,
            "validator": validator,
            "retry_policy": BucketDeleteRetryPolicy(sleeper=sleeper),
        }
        components.update(overrides)
        return StageOrchestrator(**components)

    return _make


@pytest.fixture(name="orchestrator")
def fixture_orchestrator(make_orchestrator):
    """Return a StageOrchestrator with default components."""
    return make_orchestrator()
