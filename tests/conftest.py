"""Shared test fixtures."""

import random
from typing import List

import pytest

from pokerclub.config import Settings
from pokerclub.tournament.engine import TournamentLifecycle
from pokerclub.tournament.event_bus import TournamentEventBus
from pokerclub.tournament.models import TournamentEvent, TournamentEventType
from pokerclub.tournament.seating import SeatingAllocator
from pokerclub.tournament.store import InMemoryTournamentStore


class MockScript:
    """Emulates the owner-checked lock release script."""

    def __init__(self, redis, script: str):
        self._redis = redis
        self._script = script

    async def __call__(self, keys=None, args=None):
        key, owner = keys[0], args[0]
        if self._redis._data.get(key) != owner:
            return 0
        self._redis._data.pop(key, None)
        return 1


class MockRedis:
    """Mock Redis client."""

    def __init__(self):
        self._data = {}
        self.expirations = {}
        self.streams = {}

    async def set(self, key, value, nx=False, px=None):
        if nx and key in self._data:
            return False
        self._data[key] = value
        if px is not None:
            self.expirations[key] = px
        return True

    async def get(self, key):
        return self._data.get(key)

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self._data.pop(key, None) is not None:
                removed += 1
        return removed

    async def exists(self, key):
        return 1 if key in self._data else 0

    def register_script(self, script):
        return MockScript(self, script)

    async def xadd(self, stream, data, maxlen=None, approximate=False):
        entries = self.streams.setdefault(stream, [])
        entries.append(data)
        return f"{len(entries)}-0"


@pytest.fixture
def settings():
    return Settings(_env_file=None, default_capacity=90, default_seats_per_table=10)


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture
def store():
    return InMemoryTournamentStore()


@pytest.fixture
def event_bus():
    return TournamentEventBus()


@pytest.fixture
def recorded_events(event_bus) -> List[TournamentEvent]:
    """Every event published on event_bus, in order."""
    events: List[TournamentEvent] = []

    async def record(event: TournamentEvent) -> None:
        events.append(event)

    event_bus.subscribe(set(TournamentEventType), record)
    return events


@pytest.fixture
def lifecycle(store, event_bus, settings):
    return TournamentLifecycle(
        store,
        event_bus=event_bus,
        allocator=SeatingAllocator(random.Random(42)),
        settings=settings,
    )
