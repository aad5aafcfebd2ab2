"""Load, validate, and hot-reload the stepsync sync configuration.

The config lives in ``sync_config.yaml`` alongside this module.  The
application loads it once at startup and hands the resulting ``SyncConfig``
to every orchestrator it builds.  Call ``reload_sync_config()`` to re-read
from disk after an admin update.

Usage::

    from stepsync.fitness.config_loader import get_sync_config

    config = get_sync_config()
    config.window.offset_ns          # 1000000
    config.events.error_code(kind)   # 401 for ErrorKind.AUTH
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from stepsync.fitness.base import ErrorKind

logger = logging.getLogger("stepsync.fitness.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "sync_config.yaml"

GRANULARITIES = ("hour", "day")


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass
class WindowConfig:
    """Fetch window settings, in the upstream API's unit (nanoseconds)."""

    offset_ns: int
    horizon_ns: int


@dataclass
class SourceConfig:
    """Upstream step source settings."""

    source_id: str
    api_base: str
    data_source_id: str
    scopes: list[str]


@dataclass
class EventConfig:
    """Downstream event shapes and error codes."""

    source_name: str
    lifecycle_object_tags: list[str]
    data_object_tags: list[str]
    data_action_tags: list[str]
    data_property: str
    error_codes: dict[ErrorKind, int]

    def error_code(self, kind: ErrorKind) -> int:
        return self.error_codes[kind]


@dataclass
class SyncConfig:
    """Complete, validated sync configuration.

    Attributes:
        version:      Config schema version string.
        granularity:  Bucket size for aggregation ('hour' or 'day').
        window:       Fetch window offset and horizon.
        source:       Upstream step source settings.
        events:       Downstream event settings.
    """

    version: str
    granularity: str
    window: WindowConfig
    source: SourceConfig
    events: EventConfig
    _raw: dict = field(default_factory=dict, repr=False)


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when sync_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Sync config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> SyncConfig:
    """Validate the raw YAML dict and construct a SyncConfig.

    All problems are collected and reported together.

    Raises:
        ConfigValidationError: If required fields are missing or invalid.
    """
    errors: list[str] = []

    version = str(raw.get("version", "1.0"))

    granularity = raw.get("granularity", "hour")
    if granularity not in GRANULARITIES:
        errors.append(
            f"granularity must be one of {list(GRANULARITIES)}, got {granularity!r}"
        )

    # ── Window ──
    win_raw = raw.get("window") or {}
    offset_ns = horizon_ns = 0
    try:
        offset_ns = int(win_raw.get("offset_ns", 1_000_000))
        horizon_ns = int(win_raw.get("horizon_ns", 2_025_716_200_000_000_000))
    except (TypeError, ValueError):
        errors.append("window.offset_ns and window.horizon_ns must be integers")
    else:
        if offset_ns <= 0:
            errors.append(f"window.offset_ns must be > 0, got {offset_ns}")
        if horizon_ns <= offset_ns:
            errors.append(f"window.horizon_ns must be > offset_ns, got {horizon_ns}")

    # ── Source ──
    src_raw = raw.get("source") or {}
    data_source_id = src_raw.get("data_source_id")
    if not data_source_id:
        errors.append("Missing required key 'data_source_id' in section 'source'")
    source = SourceConfig(
        source_id=src_raw.get("source_id", "google_fit"),
        api_base=str(src_raw.get("api_base", "https://www.googleapis.com/fitness/v1")).rstrip("/"),
        data_source_id=data_source_id or "",
        scopes=list(src_raw.get("scopes") or []),
    )

    # ── Events ──
    ev_raw = raw.get("events") or {}
    codes_raw = ev_raw.get("error_codes") or {}
    error_codes: dict[ErrorKind, int] = {}
    for kind in ErrorKind:
        default = {"auth": 401, "transient": 503, "forward_failure": 500}[kind.value]
        value = codes_raw.get(kind.value, default)
        try:
            error_codes[kind] = int(value)
        except (TypeError, ValueError):
            errors.append(f"events.error_codes.{kind.value} must be a number, got {value!r}")
    unknown = set(codes_raw) - {k.value for k in ErrorKind}
    for key in sorted(unknown):
        errors.append(f"events.error_codes.{key} is not a known error kind")

    events = EventConfig(
        source_name=ev_raw.get("source_name", "1self-googlefit"),
        lifecycle_object_tags=list(ev_raw.get("lifecycle_object_tags", ["1self", "integration", "sync"])),
        data_object_tags=list(ev_raw.get("data_object_tags", ["steps"])),
        data_action_tags=list(ev_raw.get("data_action_tags", ["walked"])),
        data_property=ev_raw.get("data_property", "numberOfSteps"),
        error_codes=error_codes,
    )

    if errors:
        raise ConfigValidationError(
            f"sync_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return SyncConfig(
        version=version,
        granularity=granularity,
        window=WindowConfig(offset_ns=offset_ns, horizon_ns=horizon_ns),
        source=source,
        events=events,
        _raw=raw,
    )


def load_sync_config(path: Path | None = None) -> SyncConfig:
    """Load and validate the sync config from disk.

    Args:
        path: Override path to YAML. Uses the bundled sync_config.yaml by default.

    Returns:
        Validated SyncConfig instance.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info("Loaded sync config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Cached instance for application wiring
# ---------------------------------------------------------------------------

_config: SyncConfig | None = None
_config_lock = threading.Lock()


def get_sync_config() -> SyncConfig:
    """Return the cached SyncConfig, loading it on first call.

    Thread-safe.  Use ``reload_sync_config()`` to refresh after YAML changes.
    """
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:  # double-checked locking
                _config = load_sync_config()
    return _config


def reload_sync_config(path: Path | None = None) -> SyncConfig:
    """Reload the sync config from disk and replace the cached instance.

    If validation fails, the old config is retained and the error is re-raised.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_sync_config(path)  # validate before acquiring lock
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info("Reloaded sync config: %s → %s", old_version, new_config.version)
    return new_config
