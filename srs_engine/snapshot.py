"""Versioned engine snapshots and the migrations between snapshot formats."""

from __future__ import annotations

import copy
from collections.abc import Mapping, MutableMapping
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from srs_engine.config import (
    CONFIG_ALIASES,
    DEFAULT_EASE_FACTOR,
    EASE_BONUS,
    EASE_PENALTY,
    HARD_PENALTY,
    AlgorithmType,
    EngineConfig,
)
from srs_engine.result import ErrorCode, Result
from srs_engine.state import ScheduleOutcome, format_datetime

logger = structlog.get_logger(__name__)

VERSION = "3.0.0"
LEGACY_VERSION = "1.0.0"

CHANGELOG = {
    "3.0.0": "Event bus, snapshots, adaptive parameters, middleware",
    "2.0.0": "FSRS algorithm, result values, cache",
    "1.0.0": "SM-2 and Anki",
}

REQUIRED_FIELDS = ("config", "metrics")


class MigrationError(Exception):
    pass


def _constant(value: Any) -> Callable[[], Any]:
    return lambda: copy.deepcopy(value)


def default_telemetry() -> Dict[str, Any]:
    return {
        "total_reviews": 0,
        "quality_distribution": [0, 0, 0, 0, 0, 0],
        "average_ease": DEFAULT_EASE_FACTOR,
        "average_interval": 0.0,
        "cache_hits": 0,
        "cache_misses": 0,
        "last_reset": None,
    }


METRICS_FACTORIES = {
    "total_reviews": _constant(0),
    "quality_distribution": _constant([0, 0, 0, 0, 0, 0]),
    "average_ease": _constant(DEFAULT_EASE_FACTOR),
}

COEFFICIENT_FACTORIES = {
    "ease_bonus": _constant(EASE_BONUS),
    "ease_penalty": _constant(EASE_PENALTY),
    "hard_penalty": _constant(HARD_PENALTY),
}


def _ensure_defaults(entry: MutableMapping[str, Any], factories: Mapping[str, Callable[[], Any]]) -> bool:
    changed = False
    for name, factory in factories.items():
        if name not in entry or entry[name] is None:
            entry[name] = factory()
            changed = True
    return changed


# ---------------------------------------------------------------------------
# Migration steps
# ---------------------------------------------------------------------------

def _v1_to_v2(data: Dict[str, Any]) -> Dict[str, Any]:
    """1.0.0 snapshots carried no metrics block."""

    metrics = data.get("metrics")
    if not isinstance(metrics, MutableMapping):
        metrics = {}
    _ensure_defaults(metrics, METRICS_FACTORIES)
    return {**data, "version": "2.0.0", "metrics": metrics}


def _v2_to_v3(data: Dict[str, Any]) -> Dict[str, Any]:
    """2.0.0 configs predate the ease bonus and penalty coefficients."""

    config = data.get("config")
    if isinstance(config, MutableMapping):
        config = {CONFIG_ALIASES.get(key, key): value for key, value in config.items()}
        _ensure_defaults(config, COEFFICIENT_FACTORIES)
    return {**data, "version": "3.0.0", "config": config}


MIGRATIONS: List[Tuple[str, Callable[[Dict[str, Any]], Dict[str, Any]]]] = [
    ("1.0.0", _v1_to_v2),
    ("2.0.0", _v2_to_v3),
]

KNOWN_VERSIONS = tuple(version for version, _ in MIGRATIONS) + (VERSION,)


def _normalise_keys(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Accept the double-underscore and camelCase keys of older writers."""

    aliases = {
        "__version": "version",
        "__timestamp": "timestamp",
        "cache": "cache_entries",
        "cacheEntries": "cache_entries",
        "currentStrategy": "strategy_name",
        "strategyName": "strategy_name",
    }
    result: Dict[str, Any] = {}
    for key, value in data.items():
        result[aliases.get(key, key)] = value
    return result


def migrate(data: Mapping[str, Any], *, allow_unknown_version: bool = False) -> Dict[str, Any]:
    """Apply migration steps to *data* until it reaches :data:`VERSION`.

    Raises :class:`MigrationError` for unrecognised versions unless
    *allow_unknown_version* is set, in which case the full chain is applied
    and the result is stamped with the current version.
    """

    if not isinstance(data, Mapping):
        raise MigrationError("Snapshot must be a mapping")
    migrated = copy.deepcopy(_normalise_keys(data))
    version = str(migrated.get("version") or LEGACY_VERSION)
    migrated["version"] = version

    if version == VERSION:
        return migrated
    if version not in KNOWN_VERSIONS:
        if not allow_unknown_version:
            raise MigrationError(f"Unknown snapshot version '{version}'")
        logger.warning("snapshot_unknown_version", version=version, target=VERSION)
        for _, step in MIGRATIONS:
            migrated = step(migrated)
    else:
        start = [v for v, _ in MIGRATIONS].index(version)
        for _, step in MIGRATIONS[start:]:
            migrated = step(migrated)

    migrated["version"] = VERSION
    migrated["migrated_from"] = version
    return migrated


# ---------------------------------------------------------------------------
# Snapshot building and parsing
# ---------------------------------------------------------------------------

def build_snapshot(
    config: EngineConfig,
    metrics: Mapping[str, Any],
    cache_entries: List[Tuple[str, ScheduleOutcome]],
    strategy_name: str,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    return {
        "version": VERSION,
        "timestamp": format_datetime(now or datetime.now(tz=timezone.utc)),
        "config": config.to_dict(),
        "metrics": copy.deepcopy(dict(metrics)),
        "cache_entries": [[key, outcome.to_dict()] for key, outcome in cache_entries],
        "strategy_name": strategy_name,
    }


def parse_snapshot(
    data: Any, *, allow_unknown_version: bool = False
) -> Result[Tuple[EngineConfig, Dict[str, Any], List[Tuple[str, ScheduleOutcome]]]]:
    """Migrate and validate *data*.

    Returns the config, the telemetry block and the cache entries, or a
    ``MIGRATION_ERROR`` failure.
    """

    try:
        migrated = migrate(data, allow_unknown_version=allow_unknown_version)
    except MigrationError as exc:
        return Result.fail(ErrorCode.MIGRATION_ERROR, str(exc))

    missing = [name for name in REQUIRED_FIELDS if not isinstance(migrated.get(name), Mapping)]
    if missing:
        return Result.fail(ErrorCode.MIGRATION_ERROR, f"Snapshot is missing {', '.join(missing)}")

    config_data = dict(migrated["config"])
    if not config_data.get("algorithm") and migrated.get("strategy_name"):
        config_data["algorithm"] = _algorithm_for_strategy(migrated["strategy_name"])
    try:
        config = EngineConfig.from_mapping(config_data)
    except (TypeError, ValueError) as exc:
        return Result.fail(ErrorCode.MIGRATION_ERROR, f"Invalid snapshot config: {exc}")

    metrics = default_telemetry()
    metrics.update(migrated["metrics"])

    entries: List[Tuple[str, ScheduleOutcome]] = []
    for item in migrated.get("cache_entries") or []:
        try:
            key, payload = item
            entries.append((str(key), ScheduleOutcome.from_mapping(payload)))
        except (KeyError, TypeError, ValueError) as exc:
            return Result.fail(ErrorCode.MIGRATION_ERROR, f"Invalid cache entry: {exc}")

    return Result.ok((config, metrics, entries))


def _algorithm_for_strategy(name: Any) -> Optional[str]:
    label = str(name or "").strip().lower().replace("-", "")
    for algorithm in AlgorithmType:
        if algorithm.value == label:
            return algorithm.value
    return None


__all__ = [
    "CHANGELOG",
    "MIGRATIONS",
    "MigrationError",
    "VERSION",
    "build_snapshot",
    "default_telemetry",
    "migrate",
    "parse_snapshot",
]
