"""Sync infrastructure for stepsync.

Modules:
    orchestrator  — One sync attempt: window, fetch, aggregate, forward, cursor
    single_flight — Per-account deduplication of concurrent sync triggers
    scheduler     — Batch execution of sync jobs with bounded concurrency
"""
