"""Shared fixtures."""

import pytest

from tests.fakes import FakeScheduler, RecordingInstaller


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def installer() -> RecordingInstaller:
    return RecordingInstaller()
