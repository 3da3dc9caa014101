"""Shared pytest fixtures for s2tui tests."""

import queue
from unittest.mock import MagicMock

import pytest

from s2tui.cli.client import S2Client
from s2tui.tui.app import DashboardApp
from tests.helpers import FakeClock, RecordingRunner


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def fake_client() -> MagicMock:
    """
    Mock S2Client for testing without network access.

    Returns:
        MagicMock with the S2Client interface
    """
    return MagicMock(spec=S2Client)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def app(fake_client, runner, clock) -> DashboardApp:
    """A dashboard whose background tasks are recorded, not started."""
    return DashboardApp(
        client=fake_client,
        runner=runner,
        events=queue.Queue(),
        clock=clock,
        wall_clock=lambda: 1_700_000_000.0,
    )
