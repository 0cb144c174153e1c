"""Shared pytest fixtures for pipeline, storage and gate tests."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from tests.mocks.fake_collaborators import FakeVcs, ScriptedRunner

FIXED_NOW = datetime(2026, 3, 14, 9, 30, tzinfo=UTC)


@pytest.fixture
def fake_vcs() -> FakeVcs:
    """Provide a fresh in-memory VCS at head `abc123`."""
    return FakeVcs()


@pytest.fixture
def scripted_runner() -> ScriptedRunner:
    """Provide a runner where every command passes unless scripted otherwise."""
    return ScriptedRunner()


@pytest.fixture
def fixed_now() -> datetime:
    """Provide a fixed UTC timestamp for stamped documents."""
    return FIXED_NOW
