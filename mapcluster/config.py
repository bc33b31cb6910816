"""Configuration helpers for the map clustering engine."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[1]
ENV_PATH = PROJECT_ROOT / ".env"

# Load environment variables early so downstream modules can rely on them.
load_dotenv(ENV_PATH, override=False)

MAX_DISTANCE_ENV = "MAPCLUSTER_MAX_DISTANCE_PX"
GRID_SIZE_ENV = "MAPCLUSTER_GRID_SIZE_PX"
CACHE_SIZE_ENV = "MAPCLUSTER_CACHE_SIZE"
PRECACHE_ENV = "MAPCLUSTER_PRECACHE"
PRECACHE_DELAY_ENV = "MAPCLUSTER_PRECACHE_DELAY_MS"
MIN_CLUSTER_SIZE_ENV = "MAPCLUSTER_MIN_CLUSTER_SIZE"
LOG_DIR_ENV = "MAPCLUSTER_LOG_DIR"

DEFAULT_MAX_DISTANCE_PX = 100
DEFAULT_GRID_SIZE_PX = 100
DEFAULT_CACHE_SIZE = 5
DEFAULT_PRECACHE = True
DEFAULT_PRECACHE_DELAY_MS = 500
DEFAULT_MIN_CLUSTER_SIZE = 4

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class ClusterSettings:
    """Tuning knobs for the algorithms, the cache and the default renderer."""

    max_distance_px: int = DEFAULT_MAX_DISTANCE_PX
    grid_size_px: int = DEFAULT_GRID_SIZE_PX
    cache_size: int = DEFAULT_CACHE_SIZE
    precache: bool = DEFAULT_PRECACHE
    precache_delay_ms: int = DEFAULT_PRECACHE_DELAY_MS
    min_cluster_size: int = DEFAULT_MIN_CLUSTER_SIZE

    @property
    def precache_delay_seconds(self) -> float:
        return self.precache_delay_ms / 1000.0


@dataclass(frozen=True)
class LoggingSettings:
    """Where the rotating log file goes, if anywhere."""

    log_dir: Optional[Path]


def _get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _get_int(name: str, default: int, minimum: int) -> int:
    raw = _get_env(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer; received '{raw}'.") from exc
    if value < minimum:
        raise RuntimeError(f"{name} must be >= {minimum}; received {value}.")
    return value


def _get_bool(name: str, default: bool) -> bool:
    raw = _get_env(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise RuntimeError(f"{name} must be a boolean (true/false); received '{raw}'.")


def get_cluster_settings() -> ClusterSettings:
    """Resolve clustering settings from the environment with sensible defaults."""

    return ClusterSettings(
        max_distance_px=_get_int(MAX_DISTANCE_ENV, DEFAULT_MAX_DISTANCE_PX, minimum=1),
        grid_size_px=_get_int(GRID_SIZE_ENV, DEFAULT_GRID_SIZE_PX, minimum=1),
        cache_size=_get_int(CACHE_SIZE_ENV, DEFAULT_CACHE_SIZE, minimum=1),
        precache=_get_bool(PRECACHE_ENV, DEFAULT_PRECACHE),
        precache_delay_ms=_get_int(PRECACHE_DELAY_ENV, DEFAULT_PRECACHE_DELAY_MS, minimum=0),
        min_cluster_size=_get_int(MIN_CLUSTER_SIZE_ENV, DEFAULT_MIN_CLUSTER_SIZE, minimum=1),
    )


def get_logging_settings() -> LoggingSettings:
    """Resolve the log directory; unset means console-only logging."""

    raw_path = _get_env(LOG_DIR_ENV)
    if raw_path is None:
        return LoggingSettings(log_dir=None)
    return LoggingSettings(log_dir=Path(raw_path).expanduser().resolve())
