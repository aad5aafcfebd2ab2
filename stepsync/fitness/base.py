"""Base classes and canonical data models for the stepsync engine.

Every collaborator the sync orchestrator talks to (step source, event sink,
account store) is described here as an ABC, together with the small set of
value types that flow between them.  These types are the single source of
truth consumed by the window calculator, aggregator, classifier, and
orchestrator.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Union
from uuid import UUID

logger = logging.getLogger("stepsync.fitness")

#: Cursor value of a freshly linked account (first-ever sync).
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Errors raised by collaborators
# ---------------------------------------------------------------------------


class SyncError(Exception):
    """Base class for expected failures raised by sync collaborators."""


class SourceFetchError(SyncError):
    """The upstream fitness API could not deliver samples (retryable)."""


class SourceAuthorizationError(SourceFetchError):
    """The upstream API rejected the credential.

    Raised when the access token is refused and cannot be refreshed, e.g. an
    HTTP 401/403 or an OAuth ``invalid_grant`` on refresh.  The account needs
    to be re-authorized before it can sync again.
    """


class SinkError(SyncError):
    """The downstream event API did not accept a request."""


class AccountNotFoundError(SyncError):
    """No linked account exists for the requested id."""


# ---------------------------------------------------------------------------
# OAuth credential / account record
# ---------------------------------------------------------------------------


@dataclass
class OAuthTokens:
    """OAuth token pair for the upstream fitness API.

    Attributes:
        access_token:  Bearer token for API calls.
        refresh_token: Long-lived token used to obtain a new access_token.
        expires_at:    UTC datetime when the access_token expires.
        token_type:    Token type, typically "Bearer".
        scope:         Granted OAuth scopes.
    """

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    token_type: str = "Bearer"
    scope: list[str] = field(default_factory=list)

    def is_expired(self, buffer_seconds: int = 60) -> bool:
        """Return True if the access token expires within ``buffer_seconds``."""
        if self.expires_at is None:
            return False
        remaining = (self.expires_at - datetime.now(timezone.utc)).total_seconds()
        return remaining < buffer_seconds


@dataclass
class SyncCursor:
    """Persisted watermark of the last aggregated and forwarded sample.

    Attributes:
        last_processed_time: End time of the newest sample already forwarded.
            Monotonically non-decreasing; starts at the epoch.
    """

    last_processed_time: datetime = EPOCH


@dataclass
class Account:
    """A linked user account: upstream credential plus sync cursor.

    Attributes:
        account_id:  Internal account UUID.
        credential:  OAuth tokens for the upstream fitness API.
        user_name:   Display name of the linked user, if known.
        cursor:      The account's SyncCursor.
    """

    account_id: UUID
    credential: OAuthTokens
    user_name: str | None = None
    cursor: SyncCursor = field(default_factory=SyncCursor)


@dataclass(frozen=True)
class Stream:
    """Downstream destination for events (a 1self stream)."""

    stream_id: str
    write_token: str
    read_token: str | None = None


# ---------------------------------------------------------------------------
# Samples, windows and outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RawSample:
    """One step-count delta reported by the upstream API.

    Attributes:
        end_time: UTC end timestamp of the sample interval.
        value:    Number of steps counted in the interval.
    """

    end_time: datetime
    value: int


@dataclass(frozen=True)
class FetchWindow:
    """Half-open fetch interval ``[start_ns, end_ns)`` in epoch nanoseconds."""

    start_ns: int
    end_ns: int

    @property
    def dataset_id(self) -> str:
        """Google Fit dataset identifier for this window."""
        return f"{self.start_ns}-{self.end_ns}"

    def contains_ns(self, timestamp_ns: int) -> bool:
        return self.start_ns <= timestamp_ns < self.end_ns


class ErrorKind(str, Enum):
    """Classification of a failed sync attempt."""

    AUTH = "auth"
    TRANSIENT = "transient"
    FORWARD_FAILURE = "forward_failure"

    @property
    def retryable(self) -> bool:
        return self is not ErrorKind.AUTH


class LifecycleKind(str, Enum):
    """Lifecycle markers describing a sync attempt itself."""

    START = "start"
    COMPLETE = "complete"
    ERROR = "error"


class SyncState(str, Enum):
    """States of the sync orchestrator."""

    IDLE = "idle"
    STARTED = "started"
    FETCHING = "fetching"
    AGGREGATING = "aggregating"
    FAILED = "failed"
    FORWARDING = "forwarding"
    COMPLETED = "completed"
    FORWARD_FAILED = "forward_failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncState.FAILED, SyncState.COMPLETED, SyncState.FORWARD_FAILED)


@dataclass(frozen=True)
class SyncSuccess:
    """Samples were fetched and aggregated."""

    buckets: dict[str, int]
    new_cursor: datetime


@dataclass(frozen=True)
class SyncAuthError:
    """The credential was rejected; the account must be re-authorized."""

    cause: str

    kind = ErrorKind.AUTH


@dataclass(frozen=True)
class SyncTransientError:
    """Any other failure; retried at the next scheduled sync."""

    cause: str

    kind = ErrorKind.TRANSIENT


SyncOutcome = Union[SyncSuccess, SyncAuthError, SyncTransientError]


@dataclass(frozen=True)
class SyncEvent:
    """A lifecycle event as emitted to the sink.

    Attributes:
        kind:       Start, Complete or Error.
        error_kind: Classified error for ``kind == ERROR``.
        code:       Numeric error code sent downstream for ``kind == ERROR``.
        delivered:  False if the sink did not accept the event.
    """

    kind: LifecycleKind
    error_kind: ErrorKind | None = None
    code: int | None = None
    delivered: bool = True


@dataclass
class SyncResult:
    """Result of a single sync attempt, returned to the caller.

    Attributes:
        account_id:    Account that was synced.
        state:         Terminal orchestrator state.
        outcome:       Fetch/aggregate outcome (None if the account could not
                       be loaded before fetching).
        error_kind:    Classified failure, None on success.
        cursor_before: Cursor read at the start of the attempt.
        cursor_after:  Cursor persisted at the end of the attempt.
        events:        Lifecycle events emitted, in order.
        synced_at:     UTC timestamp of completion.
    """

    account_id: UUID
    state: SyncState = SyncState.IDLE
    outcome: SyncOutcome | None = None
    error_kind: ErrorKind | None = None
    cursor_before: datetime | None = None
    cursor_after: datetime | None = None
    events: list[SyncEvent] = field(default_factory=list)
    synced_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def succeeded(self) -> bool:
        return self.state is SyncState.COMPLETED

    @property
    def should_retry(self) -> bool:
        """True if a scheduler should re-run this account later."""
        return self.error_kind is not None and self.error_kind.retryable


# ---------------------------------------------------------------------------
# Collaborator contracts
# ---------------------------------------------------------------------------


class StepSource(ABC):
    """Upstream fitness data source."""

    #: Unique slug used in lifecycle events and logs.
    SOURCE_ID: str = "unknown"

    @abstractmethod
    async def fetch_samples(
        self, credential: OAuthTokens, window: FetchWindow
    ) -> list[RawSample]:
        """Fetch every step sample that ended inside ``window``.

        Args:
            credential: OAuth tokens of the account being synced.
            window:     Half-open fetch interval.

        Returns:
            Samples in the order the API returned them.

        Raises:
            SourceAuthorizationError: The credential was rejected.
            SourceFetchError:         Any other failure.
        """


class EventSink(ABC):
    """Downstream event-ingestion API."""

    @abstractmethod
    async def forward_buckets(self, buckets: dict[str, int], stream: Stream) -> None:
        """Send aggregated buckets as one data event per bucket.

        Raises:
            SinkError: The sink did not accept the batch.
        """

    @abstractmethod
    async def emit_lifecycle(
        self,
        kind: LifecycleKind,
        stream: Stream,
        error_code: int | None = None,
        message: str | None = None,
    ) -> None:
        """Send a Start/Complete/Error lifecycle event.

        Raises:
            SinkError: The sink did not accept the event.
        """


class AccountStore(ABC):
    """Persistence for linked accounts and their sync cursors."""

    @abstractmethod
    async def link_account(
        self, credential: OAuthTokens, user_name: str | None = None
    ) -> Account:
        """Create an account for a freshly authorized credential.

        The new account's cursor starts at the epoch.
        """

    @abstractmethod
    async def load_account(self, account_id: UUID) -> Account:
        """Return the account record.

        Raises:
            AccountNotFoundError: No account with this id.
        """

    @abstractmethod
    async def load_cursor(self, account_id: UUID) -> SyncCursor:
        """Return the account's current sync cursor."""

    @abstractmethod
    async def store_cursor(self, account_id: UUID, cursor: SyncCursor) -> None:
        """Persist a new sync cursor for the account."""
