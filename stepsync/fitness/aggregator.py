"""Aggregate raw step samples into fixed-size time buckets.

Pure fold over a sample sequence; no I/O.  The same input always produces
the same buckets and cursor, so re-aggregating an overlapping window is safe.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from stepsync.fitness.base import RawSample

BUCKET_KEY_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


@dataclass
class Aggregation:
    """Result of aggregating one sync pass.

    Attributes:
        buckets:       Bucket key → summed value.
        max_end_time:  Latest sample end time seen (or the previous cursor).
        sample_count:  Number of samples consumed.
        total:         Sum of all sample values.
    """

    buckets: dict[str, int] = field(default_factory=dict)
    max_end_time: datetime | None = None
    sample_count: int = 0
    total: int = 0


def as_utc(ts: datetime) -> datetime:
    """Return ``ts`` as an aware UTC datetime; naive input is taken as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def bucket_start(ts: datetime, granularity: str = "hour") -> datetime:
    """Truncate a timestamp to the start of its UTC hour or day."""
    ts = as_utc(ts)
    if granularity == "hour":
        return ts.replace(minute=0, second=0, microsecond=0)
    if granularity == "day":
        return ts.replace(hour=0, minute=0, second=0, microsecond=0)
    raise ValueError(f"Unknown bucket granularity: {granularity!r}")


def bucket_key(ts: datetime, granularity: str = "hour") -> str:
    """Stable ISO-8601 string key for the bucket containing ``ts``."""
    return bucket_start(ts, granularity).strftime(BUCKET_KEY_FORMAT)


def aggregate_samples(
    samples: Iterable[RawSample],
    previous_cursor: datetime,
    granularity: str = "hour",
) -> Aggregation:
    """Sum samples per bucket and track the newest end time.

    Args:
        samples:         Samples in any order.
        previous_cursor: The cursor the fetch window was built from.
        granularity:     'hour' or 'day'.

    Returns:
        Aggregation.  For empty input the buckets are empty and
        ``max_end_time == previous_cursor``.  ``max_end_time`` never falls
        below ``previous_cursor`` and is always timezone-aware UTC.
    """
    result = Aggregation(max_end_time=as_utc(previous_cursor))

    for sample in samples:
        end_time = as_utc(sample.end_time)
        key = bucket_key(end_time, granularity)
        result.buckets[key] = result.buckets.get(key, 0) + sample.value
        result.sample_count += 1
        result.total += sample.value
        if end_time > result.max_end_time:
            result.max_end_time = end_time

    return result
