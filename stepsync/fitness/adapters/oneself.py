"""1self event API adapter (the downstream event sink).

Aggregated step buckets and sync lifecycle markers are both posted to a
stream's batch endpoint; they differ only in tags and properties.

Endpoints used:
    POST /v1/streams                      — register a stream for an account
    POST /v1/streams/{id}/events/batch    — send a list of events
    GET  /v1/streams/{id}/events/steps/walked/sum(numberOfSteps)/daily/barchart
                                          — visualization (URL only)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

import httpx

from stepsync.fitness.base import EventSink, LifecycleKind, SinkError, Stream
from stepsync.fitness.config_loader import EventConfig

logger = logging.getLogger("stepsync.fitness.oneself")

_REGISTER_STREAM_PATH = "/v1/streams"
_SEND_BATCH_EVENTS_PATH = "/v1/streams/{stream_id}/events/batch"
_VISUALIZATION_PATH = "/v1/streams/{stream_id}/events/{objects}/{actions}/sum({prop})/daily/barchart"


def build_data_events(buckets: dict[str, int], config: EventConfig) -> list[dict]:
    """Reformat aggregated buckets as 1self events, one per bucket key."""
    return [
        {
            "objectTags": list(config.data_object_tags),
            "actionTags": list(config.data_action_tags),
            "dateTime": key,
            "properties": {config.data_property: total},
        }
        for key, total in sorted(buckets.items())
    ]


def build_lifecycle_event(
    kind: LifecycleKind,
    config: EventConfig,
    error_code: int | None = None,
    message: str | None = None,
    now: datetime | None = None,
) -> dict:
    """Build a sync start/complete/error event."""
    properties: dict = {"source": config.source_name}
    if kind is LifecycleKind.ERROR:
        properties["code"] = error_code
        if message:
            properties["message"] = message
    return {
        "objectTags": list(config.lifecycle_object_tags),
        "actionTags": [kind.value],
        "dateTime": (now or datetime.now(timezone.utc)).isoformat(),
        "properties": properties,
    }


class OneselfSink(EventSink):
    """Event sink backed by the 1self streams API."""

    def __init__(
        self,
        api_endpoint: str,
        event_config: EventConfig,
        app_id: str = "",
        app_secret: str = "",
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        """Initialize the sink.

        Args:
            api_endpoint:    1self API root, e.g. ``https://api.1self.co``.
            event_config:    Tags and property names for emitted events.
            app_id:          1self app id (stream registration only).
            app_secret:      1self app secret (stream registration only).
            http_client:     Optional shared httpx client (also used in tests).
            timeout_seconds: Per-request timeout when no client is injected.
        """
        self._api = api_endpoint.rstrip("/")
        self._config = event_config
        self._app_id = app_id
        self._app_secret = app_secret
        self._http_client = http_client
        self._timeout = timeout_seconds

    # ------------------------------------------------------------------
    # EventSink interface
    # ------------------------------------------------------------------

    async def forward_buckets(self, buckets: dict[str, int], stream: Stream) -> None:
        events = build_data_events(buckets, self._config)
        if not events:
            logger.info("No events to send to 1self for stream %s", stream.stream_id)
            return
        logger.debug("Sending %d data events to stream %s", len(events), stream.stream_id)
        await self._send_events(events, stream)

    async def emit_lifecycle(
        self,
        kind: LifecycleKind,
        stream: Stream,
        error_code: int | None = None,
        message: str | None = None,
    ) -> None:
        event = build_lifecycle_event(kind, self._config, error_code, message)
        logger.debug("Sending sync %s event to stream %s", kind.value, stream.stream_id)
        await self._send_events([event], stream)

    # ------------------------------------------------------------------
    # Stream management
    # ------------------------------------------------------------------

    async def register_stream(
        self,
        callback_url: str,
        registration_token: str | None = None,
        username: str | None = None,
    ) -> Stream:
        """Register a new stream whose sync callback points back at us.

        Raises:
            SinkError: Registration failed or the response had no stream id.
        """
        headers = {
            "Authorization": f"{self._app_id}:{self._app_secret}",
            "Content-Type": "application/json",
        }
        if registration_token:
            headers["registration-token"] = registration_token
        if username:
            headers["1self-username"] = username

        logger.info("Registering 1self stream")
        data = await self._post(
            self._api + _REGISTER_STREAM_PATH, {"callbackUrl": callback_url}, headers
        )
        try:
            stream = Stream(
                stream_id=data["streamid"],
                write_token=data["writeToken"],
                read_token=data.get("readToken"),
            )
        except (KeyError, TypeError) as exc:
            raise SinkError(f"stream registration returned no stream: {data!r}") from exc
        logger.info("Stream registration successful: %s", stream.stream_id)
        return stream

    def visualization_url(self, stream: Stream) -> str:
        """Bar-chart URL of daily step sums for a stream."""
        path = _VISUALIZATION_PATH.format(
            stream_id=stream.stream_id,
            objects=",".join(self._config.data_object_tags),
            actions=",".join(self._config.data_action_tags),
            prop=self._config.data_property,
        )
        return self._api + path

    # ------------------------------------------------------------------
    # Private HTTP helpers
    # ------------------------------------------------------------------

    async def _send_events(self, events: list[dict], stream: Stream) -> None:
        url = self._api + _SEND_BATCH_EVENTS_PATH.format(stream_id=stream.stream_id)
        headers = {
            "Authorization": stream.write_token,
            "Content-Type": "application/json",
        }
        await self._post(url, events, headers)

    async def _post(self, url: str, body: object, headers: dict) -> dict:
        """POST JSON, raising SinkError on any failure."""
        try:
            if self._http_client:
                response = await self._http_client.post(url, json=body, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(url, json=body, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error("1self API error: POST %s → %d", url, exc.response.status_code)
            raise SinkError(f"1self returned {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise SinkError(f"1self request failed: {exc!r}") from exc

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}


def sync_callback_url(host_domain: str, account_id: UUID) -> str:
    """Callback URL 1self calls to trigger a sync for an account."""
    return (
        f"{host_domain.rstrip('/')}/api/v1/sync?uid={account_id}"
        "&latestSyncField={{latestSyncField}}&streamid={{streamid}}"
    )
