# tests/integration/conftest.py
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from bluetracker.store import DetectionStore

START = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


class TickingClock:
    """Deterministic clock that advances a fixed step on every reading."""

    def __init__(self, start: datetime = START, step: timedelta = timedelta(seconds=1)) -> None:
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        now = self.current
        self.current += self.step
        return now


@pytest.fixture
def clock():
    return TickingClock()


@pytest_asyncio.fixture
async def store(clock):
    """In-memory detection store with the full schema applied."""
    s = await DetectionStore.open(":memory:", clock=clock)
    yield s
    await s.close()
