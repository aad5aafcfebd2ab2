"""Sync trigger endpoint, called by 1self on its sync schedule."""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Header, HTTPException, Query

from stepsync.dependencies import Runtime
from stepsync.fitness.base import Stream
from stepsync.models.sync import SyncResultRead

router = APIRouter(tags=["sync"])
logger = logging.getLogger("stepsync.sync")


@router.api_route("/sync", methods=["GET", "POST"], response_model=SyncResultRead)
async def sync_account(
    runtime: Runtime,
    uid: str = Query(default=""),
    streamid: str = Query(default=""),
    authorization: str = Header(default=""),
) -> SyncResultRead:
    """Run one sync attempt for ``uid`` into stream ``streamid``.

    The stream's write token arrives in the ``Authorization`` header.  Sync
    failures are reported in the response body, not as HTTP errors, so the
    caller can decide when to retry.
    """
    if not uid or not streamid:
        raise HTTPException(status_code=400, detail="Invalid request, no 1self metadata found")
    try:
        account_id = uuid.UUID(uid)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid uid: {uid!r}") from None

    stream = Stream(stream_id=streamid, write_token=authorization)
    logger.debug("Started sync request for %s", account_id)

    result = await runtime.scheduler.trigger(account_id, stream)
    return SyncResultRead.from_result(result, viz_url=runtime.sink.visualization_url(stream))
