"""Pytest configuration and shared fixtures.

API tests run against the in-memory store with a recording dispatcher
and a fixed clock, so no database or push credentials are needed.
"""

import asyncio
import os
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

TEST_API_KEY = "test-api-key"

# Set testing mode BEFORE importing app to use NullPool
os.environ["TESTING"] = "true"
os.environ["API_KEY"] = TEST_API_KEY

from sosrelay.config import settings

# Override settings for testing
settings.testing = True
settings.api_key = TEST_API_KEY

from sosrelay.core.clock import get_clock
from sosrelay.core.exceptions import TransportError
from sosrelay.main import app
from sosrelay.services.memory_store import MemoryRequestStore
from sosrelay.services.push_dispatcher import DispatchResult, get_dispatcher
from sosrelay.services.store_factory import get_request_store

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@dataclass
class SentNotification:
    targets: list[str]
    title: str
    body: str
    metadata: dict = field(default_factory=dict)


class FakeDispatcher:
    """Records every send.

    ``error`` makes every send raise it, ``failing_targets`` fails sends
    that include one of them and ``slow_targets`` hang for ``delay``
    seconds before answering.
    """

    def __init__(self):
        self.calls: list[SentNotification] = []
        self.error: Exception | None = None
        self.failing_targets: set[str] = set()
        self.slow_targets: set[str] = set()
        self.delay: float = 0.0

    async def send(self, targets, title, body, metadata=None):
        self.calls.append(
            SentNotification(list(targets), title, body, dict(metadata or {}))
        )
        if self.delay and (not self.slow_targets or self.slow_targets & set(targets)):
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.failing_targets & set(targets):
            raise TransportError(f"FCM send failed: 404 unregistered {targets[0]}")
        return DispatchResult(
            success_count=len(targets),
            message_ids=[f"projects/test/messages/{t}" for t in targets],
        )

    @property
    def sent_targets(self) -> list[list[str]]:
        return [call.targets for call in self.calls]


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self._now = now

    def now(self) -> datetime:
        return self._now

    def set(self, now: datetime) -> None:
        self._now = now

    def advance(self, seconds: float) -> datetime:
        self._now += timedelta(seconds=seconds)
        return self._now


def make_payload(**overrides) -> dict:
    """Valid intake payload with three single-token priorities."""
    payload = {
        "type": "medical",
        "condition": "unconscious",
        "need": "ambulance",
        "location": {"lat": 41.0, "lng": 29.0, "mapsUrl": "https://maps.example/?q=41,29"},
        "priorities": ["token-a", "token-b", "token-c"],
        "senderUid": "user-1",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def store() -> MemoryRequestStore:
    return MemoryRequestStore()


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest.fixture
def api_headers() -> dict[str, str]:
    return {"X-API-Key": TEST_API_KEY}


@pytest_asyncio.fixture
async def client(store, dispatcher, clock) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client wired to the test store, dispatcher
    and clock."""
    app.dependency_overrides[get_request_store] = lambda: store
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_clock] = lambda: clock
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()
