"""Shared fixtures and fakes for sync engine tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from uuid import UUID

import pytest

from stepsync.fitness.base import (
    EventSink,
    FetchWindow,
    LifecycleKind,
    OAuthTokens,
    RawSample,
    SinkError,
    StepSource,
    Stream,
)
from stepsync.fitness.config_loader import SyncConfig, load_sync_config
from stepsync.fitness.store import InMemoryAccountStore
from stepsync.fitness.sync.orchestrator import SyncOrchestrator

# Canonical test identifiers
TEST_ACCOUNT_ID = UUID("12345678-1234-5678-1234-567812345678")
TEST_CURSOR = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
TEST_STREAM = Stream(stream_id="stream-1", write_token="write-token-1")


def utc(hour: int, minute: int = 0, day: int = 1) -> datetime:
    """Shorthand for a UTC timestamp on 2024-01-<day>."""
    return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class StaticSource(StepSource):
    """Returns a fixed list of samples, or raises a fixed error."""

    SOURCE_ID = "static"

    def __init__(
        self,
        samples: list[RawSample] | None = None,
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.samples = samples or []
        self.error = error
        self.gate = gate
        self.calls: list[FetchWindow] = []

    async def fetch_samples(
        self, credential: OAuthTokens, window: FetchWindow
    ) -> list[RawSample]:
        self.calls.append(window)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return list(self.samples)


class RecordingSink(EventSink):
    """Records everything it is sent; can be told to fail."""

    def __init__(
        self,
        fail_forward: bool = False,
        fail_lifecycle: set[LifecycleKind] | None = None,
    ) -> None:
        self.fail_forward = fail_forward
        self.fail_lifecycle = fail_lifecycle or set()
        self.forwarded: list[dict[str, int]] = []
        self.lifecycle: list[tuple[LifecycleKind, int | None]] = []

    async def forward_buckets(self, buckets: dict[str, int], stream: Stream) -> None:
        if self.fail_forward:
            raise SinkError("sink unavailable")
        self.forwarded.append(dict(buckets))

    async def emit_lifecycle(
        self,
        kind: LifecycleKind,
        stream: Stream,
        error_code: int | None = None,
        message: str | None = None,
    ) -> None:
        self.lifecycle.append((kind, error_code))
        if kind in self.fail_lifecycle:
            raise SinkError(f"cannot send {kind.value}")

    @property
    def kinds(self) -> list[LifecycleKind]:
        return [k for k, _ in self.lifecycle]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sync_config() -> SyncConfig:
    """Load the bundled sync config for tests."""
    return load_sync_config()


@pytest.fixture
def credential() -> OAuthTokens:
    return OAuthTokens(access_token="access-1", refresh_token="refresh-1")


@pytest.fixture
def store(credential: OAuthTokens) -> InMemoryAccountStore:
    """Store with one linked account whose cursor is TEST_CURSOR."""
    s = InMemoryAccountStore()
    s.add_account(credential, user_name="walker", account_id=TEST_ACCOUNT_ID)
    s._accounts[TEST_ACCOUNT_ID].cursor.last_processed_time = TEST_CURSOR
    return s


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def scenario_samples() -> list[RawSample]:
    """Samples 00:10=5, 00:40=3, 01:05=2 on 2024-01-01."""
    return [
        RawSample(end_time=utc(0, 10), value=5),
        RawSample(end_time=utc(0, 40), value=3),
        RawSample(end_time=utc(1, 5), value=2),
    ]


@pytest.fixture
def make_orchestrator(store: InMemoryAccountStore, sink: RecordingSink, sync_config: SyncConfig):
    """Factory building an orchestrator around a given source."""

    def _make(source: StepSource) -> SyncOrchestrator:
        return SyncOrchestrator(source=source, sink=sink, store=store, config=sync_config)

    return _make
