"""Fetch-window calculation for incremental step syncs.

The upstream dataset API addresses data by ``<start>-<end>`` in epoch
nanoseconds.  The window always starts just after the account's cursor and
ends at a fixed far-future horizon, so one request returns everything
recorded since the previous sync whatever the data-source latency.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from stepsync.fitness.base import EPOCH, FetchWindow
from stepsync.fitness.config_loader import WindowConfig

_NANOS_PER_MICRO = 1_000


def to_nanos(dt: datetime) -> int:
    """Convert a datetime to integer nanoseconds since the epoch.

    Naive datetimes are taken as UTC.  Uses integer arithmetic so no
    precision is lost to float conversion.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    micros = (dt - EPOCH) // timedelta(microseconds=1)
    return micros * _NANOS_PER_MICRO


def from_nanos(nanos: int) -> datetime:
    """Convert epoch nanoseconds to a UTC datetime (truncated to microseconds)."""
    return EPOCH + timedelta(microseconds=nanos // _NANOS_PER_MICRO)


def compute_window(last_processed_time: datetime, config: WindowConfig) -> FetchWindow:
    """Return the half-open interval ``[cursor + offset, horizon)``.

    The sample whose end time equals the cursor was counted by the previous
    pass; starting ``offset_ns`` after it keeps it out of this one.

    Args:
        last_processed_time: The account's cursor (epoch for a first sync).
        config:              Window offset and horizon.

    Returns:
        The FetchWindow to request.

    Raises:
        ValueError: If the offset is not positive or the cursor has reached
            the horizon (a configuration error, not a sync failure).
    """
    if config.offset_ns <= 0:
        raise ValueError(f"window offset must be positive, got {config.offset_ns}")

    start_ns = to_nanos(last_processed_time) + config.offset_ns
    if start_ns >= config.horizon_ns:
        raise ValueError(
            f"cursor {last_processed_time.isoformat()} is at or beyond the "
            f"configured horizon {config.horizon_ns}"
        )
    return FetchWindow(start_ns=start_ns, end_ns=config.horizon_ns)
