"""stepsync incremental step synchronization engine.

Pulls step-count samples from Google Fit, aggregates them into hourly
buckets, and forwards them to 1self with start/complete/error lifecycle
events and a cursor that only advances after a successful forward.

Subpackages:
    adapters/ — Google Fit step source and 1self event sink
    sync/     — Orchestrator, per-account single flight, batch scheduler

Core modules:
    base          — Collaborator ABCs, errors and canonical data models
    window        — Fetch-window calculation from the cursor
    aggregator    — Sample → bucket aggregation
    classifier    — Fetch failure classification
    config_loader — Load/validate/hot-reload sync_config.yaml
    store         — Account and cursor persistence
"""

from stepsync.fitness.base import (
    Account,
    AccountStore,
    ErrorKind,
    EventSink,
    LifecycleKind,
    OAuthTokens,
    RawSample,
    StepSource,
    Stream,
    SyncCursor,
    SyncResult,
    SyncState,
)
from stepsync.fitness.config_loader import SyncConfig, get_sync_config

__all__ = [
    "Account",
    "AccountStore",
    "ErrorKind",
    "EventSink",
    "LifecycleKind",
    "OAuthTokens",
    "RawSample",
    "StepSource",
    "Stream",
    "SyncConfig",
    "SyncCursor",
    "SyncResult",
    "SyncState",
    "get_sync_config",
]
