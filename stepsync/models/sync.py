"""Pydantic response models for the sync endpoint."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from stepsync.fitness.base import SyncResult, SyncSuccess


class StepsyncBase(BaseModel):
    """Base model with shared config for all stepsync schemas."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class SyncEventRead(StepsyncBase):
    kind: str
    error_kind: str | None = None
    code: int | None = None
    delivered: bool = True


class SyncResultRead(StepsyncBase):
    account_id: uuid.UUID
    state: str
    error_kind: str | None = None
    cause: str | None = None
    buckets: dict[str, int] = {}
    cursor_before: datetime | None = None
    cursor_after: datetime | None = None
    events: list[SyncEventRead] = []
    synced_at: datetime
    viz_url: str | None = None

    @classmethod
    def from_result(cls, result: SyncResult, viz_url: str | None = None) -> SyncResultRead:
        """Build the response; ``buckets`` lists only data the sink accepted."""
        outcome = result.outcome
        delivered = result.succeeded and isinstance(outcome, SyncSuccess)
        return cls(
            account_id=result.account_id,
            state=result.state.value,
            error_kind=result.error_kind.value if result.error_kind else None,
            cause=getattr(outcome, "cause", None),
            buckets=outcome.buckets if delivered else {},
            cursor_before=result.cursor_before,
            cursor_after=result.cursor_after,
            events=[
                SyncEventRead(
                    kind=e.kind.value,
                    error_kind=e.error_kind.value if e.error_kind else None,
                    code=e.code,
                    delivered=e.delivered,
                )
                for e in result.events
            ],
            synced_at=result.synced_at,
            viz_url=viz_url,
        )
