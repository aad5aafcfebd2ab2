"""Incremental sync orchestrator for one account.

Sequence of a sync attempt::

    IDLE → STARTED → FETCHING → AGGREGATING → FORWARDING → COMPLETED
                        │                         │
                        └→ FAILED                 └→ FORWARD_FAILED

1. Emit a Start lifecycle event (failure is logged, not fatal).
2. Load the account, compute the fetch window from its cursor, fetch samples.
3. On fetch failure: classify, emit Error, leave the cursor alone → FAILED.
4. Aggregate samples into buckets and forward them to the sink.
5. On forward failure: emit Error(forward_failure), leave the cursor alone
   → FORWARD_FAILED.
6. Persist the new cursor, emit Complete → COMPLETED.

The cursor is written only after the sink accepted the data, so a failed
pass is retried from exactly the same window.  The orchestrator does not
retry; callers re-invoke it on their own schedule.
"""

from __future__ import annotations

import logging
from uuid import UUID

from stepsync.fitness.aggregator import aggregate_samples
from stepsync.fitness.base import (
    AccountStore,
    ErrorKind,
    EventSink,
    LifecycleKind,
    StepSource,
    Stream,
    SyncCursor,
    SyncEvent,
    SyncResult,
    SyncState,
    SyncSuccess,
    SyncTransientError,
)
from stepsync.fitness.classifier import classify_fetch_failure
from stepsync.fitness.config_loader import SyncConfig
from stepsync.fitness.window import compute_window

logger = logging.getLogger("stepsync.fitness.sync.orchestrator")


class SyncOrchestrator:
    """Run one sync attempt per call to :meth:`sync`.

    Usage::

        orchestrator = SyncOrchestrator(
            source=google_fit, sink=oneself, store=accounts, config=get_sync_config()
        )
        result = await orchestrator.sync(account_id, stream)
        if result.should_retry:
            ...
    """

    def __init__(
        self,
        source: StepSource,
        sink: EventSink,
        store: AccountStore,
        config: SyncConfig,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            source: Upstream step source.
            sink:   Downstream event sink.
            store:  Account and cursor persistence.
            config: Window, granularity and event settings.
        """
        self._source = source
        self._sink = sink
        self._store = store
        self._config = config

    async def sync(self, account_id: UUID, stream: Stream) -> SyncResult:
        """Run a full sync attempt for one account.

        Failures (account load, window, fetch, forward, persistence) are
        reported through the returned SyncResult, never raised.  Every Start
        event is followed by exactly one Complete or Error event.

        Args:
            account_id: Account to sync.
            stream:     Destination stream for data and lifecycle events.

        Returns:
            SyncResult in a terminal state.
        """
        result = SyncResult(account_id=account_id)
        logger.debug("Sync started for %s", account_id)

        self._transition(result, SyncState.STARTED)
        await self._emit(result, stream, LifecycleKind.START)

        self._transition(result, SyncState.FETCHING)
        try:
            account = await self._store.load_account(account_id)
        except Exception as exc:
            logger.error("Could not load account %s: %s", account_id, exc)
            result.outcome = SyncTransientError(cause=str(exc) or type(exc).__name__)
            return await self._fail(result, stream, ErrorKind.TRANSIENT, SyncState.FAILED)

        cursor = account.cursor.last_processed_time
        result.cursor_before = cursor
        result.cursor_after = cursor

        try:
            window = compute_window(cursor, self._config.window)
        except ValueError as exc:
            logger.error("No valid fetch window for %s: %s", account_id, exc)
            result.outcome = SyncTransientError(cause=str(exc))
            return await self._fail(result, stream, ErrorKind.TRANSIENT, SyncState.FAILED)

        try:
            samples = await self._source.fetch_samples(account.credential, window)
        except Exception as exc:
            outcome = classify_fetch_failure(exc)
            logger.warning(
                "Fetch failed for %s (%s): %s", account_id, outcome.kind.value, exc
            )
            result.outcome = outcome
            return await self._fail(result, stream, outcome.kind, SyncState.FAILED)

        self._transition(result, SyncState.AGGREGATING)
        aggregation = aggregate_samples(samples, cursor, self._config.granularity)
        outcome = SyncSuccess(
            buckets=aggregation.buckets, new_cursor=aggregation.max_end_time
        )
        result.outcome = outcome
        logger.info(
            "Aggregated %d samples (%d steps) into %d buckets for %s",
            aggregation.sample_count,
            aggregation.total,
            len(aggregation.buckets),
            account_id,
        )

        self._transition(result, SyncState.FORWARDING)
        try:
            await self._sink.forward_buckets(outcome.buckets, stream)
        except Exception as exc:
            logger.warning("Forwarding failed for %s: %s", account_id, exc)
            return await self._fail(
                result, stream, ErrorKind.FORWARD_FAILURE, SyncState.FORWARD_FAILED
            )

        try:
            await self._store.store_cursor(account_id, SyncCursor(outcome.new_cursor))
        except Exception as exc:
            logger.error("Could not persist cursor for %s: %s", account_id, exc)
            return await self._fail(result, stream, ErrorKind.TRANSIENT, SyncState.FAILED)
        result.cursor_after = outcome.new_cursor

        logger.debug("Sync successfully ended for %s, sending complete event", account_id)
        await self._emit(result, stream, LifecycleKind.COMPLETE)
        self._transition(result, SyncState.COMPLETED)
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _fail(
        self,
        result: SyncResult,
        stream: Stream,
        kind: ErrorKind,
        terminal: SyncState,
    ) -> SyncResult:
        """Emit the Error event and move to a failure terminal state."""
        result.error_kind = kind
        await self._emit(result, stream, LifecycleKind.ERROR, kind)
        self._transition(result, terminal)
        return result

    async def _emit(
        self,
        result: SyncResult,
        stream: Stream,
        kind: LifecycleKind,
        error_kind: ErrorKind | None = None,
    ) -> None:
        """Send a lifecycle event; a sink failure is logged and recorded only."""
        code = self._config.events.error_code(error_kind) if error_kind else None
        message = None
        if error_kind is not None and result.outcome is not None:
            message = getattr(result.outcome, "cause", None)

        event = SyncEvent(kind=kind, error_kind=error_kind, code=code)
        try:
            await self._sink.emit_lifecycle(kind, stream, error_code=code, message=message)
        except Exception as exc:
            logger.warning(
                "Could not send %s event for %s: %s", kind.value, result.account_id, exc
            )
            event = SyncEvent(kind=kind, error_kind=error_kind, code=code, delivered=False)
        result.events.append(event)

    @staticmethod
    def _transition(result: SyncResult, state: SyncState) -> None:
        if result.state.is_terminal:
            raise RuntimeError(
                f"sync for {result.account_id} already ended in {result.state.value}"
            )
        logger.debug("Sync %s: %s → %s", result.account_id, result.state.value, state.value)
        result.state = state
