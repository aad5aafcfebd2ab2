"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from stepsync.config import Settings, get_settings
from stepsync.fitness.adapters.google_fit import GoogleFitAdapter
from stepsync.fitness.adapters.oneself import OneselfSink
from stepsync.fitness.base import AccountStore
from stepsync.fitness.sync.scheduler import SyncScheduler


@dataclass(frozen=True)
class PendingLogin:
    """1self metadata captured by ``/login``, held until Google redirects back."""

    registration_token: str
    username: str
    redirect_uri: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class LoginStateStore:
    """Process-local map of OAuth ``state`` values to pending logins.

    Entries are single-use and expire after ``ttl``.
    """

    def __init__(self, ttl: timedelta = timedelta(minutes=10)) -> None:
        self._ttl = ttl
        self._pending: dict[str, PendingLogin] = {}

    def issue(
        self, registration_token: str, username: str, redirect_uri: str | None = None
    ) -> str:
        """Remember the metadata and return the opaque state for the consent URL."""
        self._expire()
        state = secrets.token_urlsafe(24)
        self._pending[state] = PendingLogin(registration_token, username, redirect_uri)
        return state

    def pop(self, state: str) -> PendingLogin | None:
        """Return and forget the login for ``state``; None if unknown or expired."""
        self._expire()
        return self._pending.pop(state, None)

    def __len__(self) -> int:
        return len(self._pending)

    def _expire(self) -> None:
        cutoff = datetime.now(timezone.utc) - self._ttl
        for state in [s for s, p in self._pending.items() if p.created_at < cutoff]:
            del self._pending[state]


@dataclass(frozen=True)
class SyncRuntime:
    """Long-lived sync collaborators built once in the app lifespan."""

    scheduler: SyncScheduler
    sink: OneselfSink
    source: GoogleFitAdapter | None = None
    store: AccountStore | None = None
    logins: LoginStateStore = field(default_factory=LoginStateStore)


async def get_sync_runtime(request: Request) -> SyncRuntime:
    """Return the runtime stored on ``app.state`` by the lifespan hook."""
    runtime: SyncRuntime | None = getattr(request.app.state, "sync_runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Sync runtime not initialized")
    return runtime


# Annotated shortcuts for route signatures
Runtime = Annotated[SyncRuntime, Depends(get_sync_runtime)]
AppSettings = Annotated[Settings, Depends(get_settings)]
