"""Account linking: 1self login hand-off and the Google OAuth redirect."""

from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse, RedirectResponse, Response

from stepsync.dependencies import AppSettings, Runtime, SyncRuntime
from stepsync.fitness.adapters.oneself import sync_callback_url
from stepsync.fitness.base import SinkError, SourceFetchError

router = APIRouter(tags=["auth"])
logger = logging.getLogger("stepsync.auth")


def _require_linking(runtime: SyncRuntime) -> None:
    if runtime.source is None or runtime.store is None:
        raise HTTPException(status_code=503, detail="Account linking not configured")


def _finish(redirect_uri: str | None, success: bool, error: str | None = None) -> Response:
    """Send the user back to 1self with the outcome in the query string."""
    params = {"success": "true" if success else "false"}
    if error:
        params["error"] = error
    if not redirect_uri:
        return JSONResponse(params, status_code=200 if success else 400)
    url = httpx.URL(redirect_uri).copy_merge_params(params)
    return RedirectResponse(str(url), status_code=302)


@router.get("/login")
async def login(
    runtime: Runtime,
    token: str = Query(default=""),
    username: str = Query(default=""),
    redirect_uri: str = Query(default=""),
) -> RedirectResponse:
    """Start linking: remember the 1self metadata and send the user to Google."""
    if not token or not username:
        raise HTTPException(status_code=400, detail="Invalid request, no 1self metadata found")
    _require_linking(runtime)

    state = runtime.logins.issue(token, username, redirect_uri or None)
    logger.info("Login started for 1self user %s", username)
    return RedirectResponse(runtime.source.authorization_url(state), status_code=302)


@router.get("/authRedirect")
async def auth_redirect(
    runtime: Runtime,
    settings: AppSettings,
    code: str = Query(default=""),
    state: str = Query(default=""),
    error: str = Query(default=""),
) -> Response:
    """Finish linking after Google consent.

    Exchanges the code, links the account, registers a 1self stream whose
    callback points at ``/api/v1/sync`` and runs the first sync.
    """
    _require_linking(runtime)
    pending = runtime.logins.pop(state) if state else None
    if pending is None:
        raise HTTPException(status_code=400, detail="Unknown or expired login state")

    if error or not code:
        logger.info("Google consent not granted for %s: %s", pending.username, error or "no code")
        return _finish(pending.redirect_uri, success=False, error="user_denied_access")

    try:
        tokens = await runtime.source.authenticate(code)
    except SourceFetchError as exc:
        logger.error("Token exchange failed for %s: %s", pending.username, exc)
        return _finish(pending.redirect_uri, success=False, error="token_exchange_failed")

    account = await runtime.store.link_account(tokens, user_name=pending.username)

    try:
        stream = await runtime.sink.register_stream(
            sync_callback_url(settings.host_domain, account.account_id),
            registration_token=pending.registration_token,
            username=pending.username,
        )
    except SinkError as exc:
        logger.error("Stream registration failed for %s: %s", account.account_id, exc)
        return _finish(pending.redirect_uri, success=False, error="stream_registration_failed")

    result = await runtime.scheduler.trigger(account.account_id, stream)
    logger.info(
        "Linked account %s to stream %s, first sync %s",
        account.account_id,
        stream.stream_id,
        result.state.value,
    )
    return _finish(pending.redirect_uri, success=True)
