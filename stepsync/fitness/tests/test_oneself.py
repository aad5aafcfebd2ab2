"""Tests for the 1self event sink."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
import pytest

from stepsync.fitness.adapters.oneself import (
    OneselfSink,
    build_data_events,
    build_lifecycle_event,
    sync_callback_url,
)
from stepsync.fitness.base import LifecycleKind, SinkError, Stream
from stepsync.fitness.config_loader import SyncConfig
from stepsync.fitness.tests.conftest import TEST_ACCOUNT_ID, TEST_STREAM

API = "https://api.1self.example"


def _sink(sync_config: SyncConfig, handler) -> OneselfSink:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OneselfSink(
        API,
        sync_config.events,
        app_id="app-id",
        app_secret="app-secret",
        http_client=client,
    )


class TestEventShapes:
    def test_data_events_one_per_bucket(self, sync_config: SyncConfig) -> None:
        events = build_data_events(
            {"2024-01-01T01:00:00Z": 2, "2024-01-01T00:00:00Z": 8}, sync_config.events
        )
        assert events == [
            {
                "objectTags": ["steps"],
                "actionTags": ["walked"],
                "dateTime": "2024-01-01T00:00:00Z",
                "properties": {"numberOfSteps": 8},
            },
            {
                "objectTags": ["steps"],
                "actionTags": ["walked"],
                "dateTime": "2024-01-01T01:00:00Z",
                "properties": {"numberOfSteps": 2},
            },
        ]

    def test_start_event(self, sync_config: SyncConfig) -> None:
        now = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        event = build_lifecycle_event(LifecycleKind.START, sync_config.events, now=now)
        assert event == {
            "objectTags": ["1self", "integration", "sync"],
            "actionTags": ["start"],
            "dateTime": "2024-01-01T12:00:00+00:00",
            "properties": {"source": "1self-googlefit"},
        }

    def test_error_event_carries_code_and_message(self, sync_config: SyncConfig) -> None:
        event = build_lifecycle_event(
            LifecycleKind.ERROR, sync_config.events, error_code=401, message="token revoked"
        )
        assert event["actionTags"] == ["error"]
        assert event["properties"] == {
            "source": "1self-googlefit",
            "code": 401,
            "message": "token revoked",
        }

    def test_complete_event_ignores_code(self, sync_config: SyncConfig) -> None:
        event = build_lifecycle_event(LifecycleKind.COMPLETE, sync_config.events, error_code=500)
        assert "code" not in event["properties"]

    def test_callback_url(self) -> None:
        url = sync_callback_url("https://stepsync.example/", TEST_ACCOUNT_ID)
        assert url == (
            f"https://stepsync.example/api/v1/sync?uid={TEST_ACCOUNT_ID}"
            "&latestSyncField={{latestSyncField}}&streamid={{streamid}}"
        )


class TestForwarding:
    @pytest.mark.asyncio
    async def test_batch_post(self, sync_config: SyncConfig) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        await _sink(sync_config, handler).forward_buckets(
            {"2024-01-01T00:00:00Z": 8}, TEST_STREAM
        )

        assert len(seen) == 1
        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == f"{API}/v1/streams/stream-1/events/batch"
        assert request.headers["Authorization"] == "write-token-1"
        body = json.loads(request.content)
        assert body[0]["properties"] == {"numberOfSteps": 8}

    @pytest.mark.asyncio
    async def test_empty_buckets_make_no_call(self, sync_config: SyncConfig) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200)

        await _sink(sync_config, handler).forward_buckets({}, TEST_STREAM)
        assert seen == []

    @pytest.mark.asyncio
    async def test_rejected_batch_raises(self, sync_config: SyncConfig) -> None:
        sink = _sink(sync_config, lambda request: httpx.Response(503))
        with pytest.raises(SinkError):
            await sink.forward_buckets({"2024-01-01T00:00:00Z": 8}, TEST_STREAM)

    @pytest.mark.asyncio
    async def test_network_failure_raises(self, sync_config: SyncConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(SinkError):
            await _sink(sync_config, handler).emit_lifecycle(LifecycleKind.START, TEST_STREAM)

    @pytest.mark.asyncio
    async def test_lifecycle_is_single_event_batch(self, sync_config: SyncConfig) -> None:
        bodies: list[list] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200)

        await _sink(sync_config, handler).emit_lifecycle(
            LifecycleKind.ERROR, TEST_STREAM, error_code=503, message="boom"
        )

        assert len(bodies[0]) == 1
        assert bodies[0][0]["properties"]["code"] == 503


class TestStreams:
    @pytest.mark.asyncio
    async def test_register_stream(self, sync_config: SyncConfig) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json={"streamid": "s-9", "writeToken": "w-9", "readToken": "r-9"}
            )

        stream = await _sink(sync_config, handler).register_stream(
            "https://stepsync.example/api/v1/sync?uid=x",
            registration_token="reg-1",
            username="walker",
        )

        assert stream == Stream(stream_id="s-9", write_token="w-9", read_token="r-9")
        request = seen[0]
        assert str(request.url) == f"{API}/v1/streams"
        assert request.headers["Authorization"] == "app-id:app-secret"
        assert request.headers["registration-token"] == "reg-1"
        assert request.headers["1self-username"] == "walker"
        assert json.loads(request.content) == {
            "callbackUrl": "https://stepsync.example/api/v1/sync?uid=x"
        }

    @pytest.mark.asyncio
    async def test_register_stream_without_id(self, sync_config: SyncConfig) -> None:
        sink = _sink(sync_config, lambda request: httpx.Response(200, json={"ok": True}))
        with pytest.raises(SinkError):
            await sink.register_stream("https://stepsync.example/cb")

    def test_visualization_url(self, sync_config: SyncConfig) -> None:
        sink = OneselfSink(API + "/", sync_config.events)
        assert sink.visualization_url(TEST_STREAM) == (
            f"{API}/v1/streams/stream-1/events/steps/walked/sum(numberOfSteps)/daily/barchart"
        )
