"""Classify fetch failures into the sync error taxonomy."""

from __future__ import annotations

import httpx

from stepsync.fitness.base import (
    ErrorKind,
    SourceAuthorizationError,
    SyncAuthError,
    SyncTransientError,
)

_AUTH_STATUS_CODES = frozenset({401})


def classify_error(exc: BaseException) -> ErrorKind:
    """Return AUTH for a rejected credential, TRANSIENT for anything else.

    Source adapters raise ``SourceAuthorizationError`` for credential
    rejection.  A bare ``httpx.HTTPStatusError`` with a 401 status is treated
    the same so an adapter that lets one escape is still classified correctly.
    """
    if isinstance(exc, SourceAuthorizationError):
        return ErrorKind.AUTH
    if isinstance(exc, httpx.HTTPStatusError):
        if exc.response.status_code in _AUTH_STATUS_CODES:
            return ErrorKind.AUTH
    return ErrorKind.TRANSIENT


def classify_fetch_failure(exc: BaseException) -> SyncAuthError | SyncTransientError:
    """Wrap a fetch failure in the matching SyncOutcome variant."""
    cause = str(exc) or type(exc).__name__
    if classify_error(exc) is ErrorKind.AUTH:
        return SyncAuthError(cause=cause)
    return SyncTransientError(cause=cause)
