"""Tests for the HTTP sync trigger and health endpoints."""

from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from stepsync.dependencies import SyncRuntime
from stepsync.fitness.adapters.oneself import OneselfSink
from stepsync.fitness.base import (
    ErrorKind,
    OAuthTokens,
    RawSample,
    SyncResult,
    SyncState,
    SyncSuccess,
)
from stepsync.fitness.config_loader import load_sync_config
from stepsync.fitness.store import InMemoryAccountStore
from stepsync.fitness.sync.orchestrator import SyncOrchestrator
from stepsync.fitness.sync.scheduler import SyncScheduler
from stepsync.fitness.tests.conftest import TEST_ACCOUNT_ID, TEST_CURSOR, StaticSource, utc
from stepsync.main import create_app
from stepsync.models.sync import SyncResultRead


@pytest.fixture
def sent() -> list[httpx.Request]:
    return []


@pytest.fixture
def client(sent: list[httpx.Request]) -> TestClient:
    """App with an in-memory runtime; the lifespan (DB pool) is not started."""
    config = load_sync_config()

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(request)
        return httpx.Response(200)

    sink = OneselfSink(
        "https://api.1self.example",
        config.events,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    store = InMemoryAccountStore()
    store.add_account(OAuthTokens(access_token="a"), account_id=TEST_ACCOUNT_ID)
    store._accounts[TEST_ACCOUNT_ID].cursor.last_processed_time = TEST_CURSOR
    source = StaticSource(
        [RawSample(end_time=utc(0, 10), value=5), RawSample(end_time=utc(1, 5), value=2)]
    )
    orchestrator = SyncOrchestrator(source=source, sink=sink, store=store, config=config)

    app = create_app()
    app.state.sync_runtime = SyncRuntime(scheduler=SyncScheduler(orchestrator), sink=sink)
    return TestClient(app)


class TestSyncRoute:
    def test_missing_metadata(self, client: TestClient) -> None:
        response = client.get("/api/v1/sync", params={"uid": str(TEST_ACCOUNT_ID)})
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid request, no 1self metadata found"

    def test_malformed_uid(self, client: TestClient) -> None:
        response = client.get("/api/v1/sync", params={"uid": "nope", "streamid": "s-1"})
        assert response.status_code == 400

    def test_successful_sync(self, client: TestClient, sent: list[httpx.Request]) -> None:
        response = client.get(
            "/api/v1/sync",
            params={"uid": str(TEST_ACCOUNT_ID), "streamid": "s-1"},
            headers={"Authorization": "write-1"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["state"] == "completed"
        assert body["buckets"] == {"2024-01-01T00:00:00Z": 5, "2024-01-01T01:00:00Z": 2}
        assert [e["kind"] for e in body["events"]] == ["start", "complete"]
        assert body["viz_url"].endswith(
            "/v1/streams/s-1/events/steps/walked/sum(numberOfSteps)/daily/barchart"
        )
        # start + data batch + complete, all with the stream's write token
        assert len(sent) == 3
        assert {r.headers["Authorization"] for r in sent} == {"write-1"}

    def test_unknown_account_reported_in_body(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/sync",
            params={"uid": "00000000-0000-0000-0000-000000000000", "streamid": "s-1"},
        )
        assert response.status_code == 200
        assert response.json()["state"] == "failed"
        assert response.json()["error_kind"] == "transient"

    def test_runtime_not_initialized(self) -> None:
        app = create_app()
        response = TestClient(app).get(
            "/api/v1/sync", params={"uid": str(TEST_ACCOUNT_ID), "streamid": "s-1"}
        )
        assert response.status_code == 503


class TestHealth:
    def test_degraded_without_database(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "degraded"
        assert body["sync_config"] == "1.0"
        assert body["syncs_in_flight"] == 0


class TestSyncResultRead:
    BUCKETS = {"2024-01-01T00:00:00Z": 5}

    def _result(self, state: SyncState, error_kind: ErrorKind | None = None) -> SyncResult:
        return SyncResult(
            account_id=TEST_ACCOUNT_ID,
            state=state,
            outcome=SyncSuccess(buckets=self.BUCKETS, new_cursor=utc(0, 10)),
            error_kind=error_kind,
            cursor_before=TEST_CURSOR,
            cursor_after=TEST_CURSOR,
        )

    def test_completed_lists_buckets(self) -> None:
        body = SyncResultRead.from_result(self._result(SyncState.COMPLETED))
        assert body.buckets == self.BUCKETS

    def test_forward_failed_hides_undelivered_buckets(self) -> None:
        body = SyncResultRead.from_result(
            self._result(SyncState.FORWARD_FAILED, ErrorKind.FORWARD_FAILURE)
        )
        assert body.state == "forward_failed"
        assert body.error_kind == "forward_failure"
        assert body.buckets == {}

    def test_persist_failure_hides_buckets(self) -> None:
        body = SyncResultRead.from_result(self._result(SyncState.FAILED, ErrorKind.TRANSIENT))
        assert body.buckets == {}
