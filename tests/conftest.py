"""Shared fixtures for tests."""

from __future__ import annotations

import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest

# Set up test database before importing storage
_test_db_fd, _test_db_path = tempfile.mkstemp(suffix=".db")
os.environ["TRACK_WORK_DB"] = _test_db_path


@pytest.fixture(scope="session", autouse=True)
def setup_test_db() -> Generator[Path, None, None]:
    """Set up a test database for the entire test session."""
    import storage

    storage.DB_PATH = Path(_test_db_path)
    storage.init_db()

    yield Path(_test_db_path)

    # Cleanup
    os.close(_test_db_fd)
    os.unlink(_test_db_path)


class FakeClock:
    """A clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def start_time() -> datetime:
    return datetime(2026, 1, 27, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(start_time) -> FakeClock:
    """A fake clock reading 2026-01-27 09:00 UTC."""
    return FakeClock(start_time)


@pytest.fixture
def hourly_payment():
    """£12.50 an hour."""
    from payment import Money, Payment

    return Payment.hourly(Money(1250))


@pytest.fixture
def fixed_payment():
    """A fixed fee of £80.00."""
    from payment import Money, Payment

    return Payment.fixed(Money(8000))


@pytest.fixture
def state(clock):
    """An empty State on the fake clock."""
    from state import State

    return State(clock=clock)


@pytest.fixture
def sample_project_data(start_time, hourly_payment, fixed_payment):
    """Two persisted projects: one idle with history, one with open work."""
    from state import CompleteWorkSliceData, IncompleteWorkSliceData, ProjectData

    return [
        ProjectData(
            name="Website",
            description="Client website rebuild",
            id=3,
            work_slices=[
                CompleteWorkSliceData(
                    start=start_time - timedelta(days=2, hours=3),
                    end=start_time - timedelta(days=2),
                    payment=hourly_payment,
                    id=4,
                ),
                CompleteWorkSliceData(
                    start=start_time - timedelta(days=1, hours=1),
                    end=start_time - timedelta(days=1),
                    payment=fixed_payment,
                    id=7,
                ),
            ],
        ),
        ProjectData(
            name="Audit",
            description="",
            id=5,
            current_slice=IncompleteWorkSliceData(
                start=start_time - timedelta(hours=2),
                payment=hourly_payment,
                id=9,
            ),
        ),
    ]
