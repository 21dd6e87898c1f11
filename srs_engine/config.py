"""Engine configuration, scheduling constants and JSON presets."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum, IntEnum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

PRESETS_DIR = Path(__file__).resolve().parent / "presets"
PRESET_ENV_VAR = "SRS_ENGINE_PRESET"

MIN_EASE_FACTOR = 1.3
MAX_EASE_FACTOR = 5.0
DEFAULT_EASE_FACTOR = 2.5
INTERVAL_REP_0 = 1
INTERVAL_REP_1 = 6
EASY_FIRST_INTERVAL = 4
MAX_INTERVAL = 36500

EASE_BONUS = 0.15
EASE_PENALTY = 0.2
HARD_PENALTY = 0.1
AGAIN_MULTIPLIER = 0.5
HARD_MULTIPLIER = 1.2
GOOD_MULTIPLIER = 2.5
EASY_MULTIPLIER = 3.0

CACHE_MAX_SIZE = 1000
MAX_HISTORY_LENGTH = 20
MIN_QUALITY = 0
MAX_QUALITY = 5

# Fuzzing only kicks in above this many days.
FUZZ_MIN_INTERVAL = 10
DEFAULT_FUZZ_RANGE = 0.05

RETENTION_FACTOR = 10


class AlgorithmType(str, Enum):
    """Scheduling algorithms known to the engine."""

    SM2 = "sm2"
    ANKI = "anki"
    FSRS = "fsrs"

    @classmethod
    def parse(cls, value: Any) -> "AlgorithmType":
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().lower().replace("-", "")
        for member in cls:
            if member.value == key:
                return member
        raise ValueError(f"Unknown algorithm: {value!r}")


class ReviewQuality(IntEnum):
    """Four-grade answer buttons used by the Anki strategy."""

    AGAIN = 0
    HARD = 1
    GOOD = 2
    EASY = 3


@dataclass(frozen=True)
class FSRSParameters:
    """Constants of the simplified FSRS memory model."""

    w0: float = 0.4
    w1: float = 0.6
    w2: float = 1.0
    decay: float = 0.5
    difficulty_decay: float = 0.1
    difficulty_increase: float = 0.2
    stability_multiplier: float = 30.0

    @classmethod
    def from_mapping(cls, payload: Optional[Mapping[str, Any]]) -> "FSRSParameters":
        if not payload:
            return cls()
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in payload.items():
            name = CONFIG_ALIASES.get(key, key)
            if name in known and value is not None:
                values[name] = float(value)
        return cls(**values)


@dataclass(frozen=True)
class EngineConfig:
    """Immutable per-engine settings.

    The engine never mutates a config. Switching algorithm or adapting to a
    learner builds a fresh instance through :meth:`replace`.
    """

    algorithm: AlgorithmType = AlgorithmType.SM2
    max_interval: int = MAX_INTERVAL
    enable_fuzzing: bool = False
    fuzz_range: float = DEFAULT_FUZZ_RANGE
    enable_telemetry: bool = False
    cache_size: int = CACHE_MAX_SIZE
    ease_bonus: float = EASE_BONUS
    ease_penalty: float = EASE_PENALTY
    hard_penalty: float = HARD_PENALTY
    again_multiplier: float = AGAIN_MULTIPLIER
    hard_multiplier: float = HARD_MULTIPLIER
    good_multiplier: float = GOOD_MULTIPLIER
    easy_multiplier: float = EASY_MULTIPLIER
    fsrs: FSRSParameters = field(default_factory=FSRSParameters)

    def __post_init__(self) -> None:
        # Frozen, so coercion goes through object.__setattr__.
        object.__setattr__(self, "algorithm", AlgorithmType.parse(self.algorithm))
        if isinstance(self.fsrs, Mapping):
            object.__setattr__(self, "fsrs", FSRSParameters.from_mapping(self.fsrs))
        if self.max_interval <= 0:
            raise ValueError("max_interval must be positive")
        if self.cache_size <= 0:
            raise ValueError("cache_size must be positive")
        if not 0 <= self.fuzz_range < 1:
            raise ValueError("fuzz_range must be in [0, 1)")

    @classmethod
    def from_mapping(cls, payload: Optional[Mapping[str, Any]]) -> "EngineConfig":
        """Build a config from a JSON-style mapping, ignoring unknown keys."""

        if not payload:
            return cls()
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in payload.items():
            name = CONFIG_ALIASES.get(key, key)
            if name not in known or value is None:
                continue
            if name == "fsrs":
                values[name] = FSRSParameters.from_mapping(value)
            elif name in _INT_FIELDS:
                values[name] = int(value)
            elif name in _BOOL_FIELDS:
                values[name] = bool(value)
            elif name == "algorithm":
                values[name] = AlgorithmType.parse(value)
            else:
                values[name] = float(value)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["algorithm"] = self.algorithm.value
        return data

    def replace(self, **changes: Any) -> "EngineConfig":
        """Return a new config with *changes* applied."""

        return replace(self, **changes)


_INT_FIELDS = {"max_interval", "cache_size"}
_BOOL_FIELDS = {"enable_fuzzing", "enable_telemetry"}

CONFIG_ALIASES = {
    "maxInterval": "max_interval",
    "enableFuzzing": "enable_fuzzing",
    "fuzzRange": "fuzz_range",
    "enableTelemetry": "enable_telemetry",
    "cacheSize": "cache_size",
    "easeBonus": "ease_bonus",
    "easePenalty": "ease_penalty",
    "hardPenalty": "hard_penalty",
    "againMultiplier": "again_multiplier",
    "hardMultiplier": "hard_multiplier",
    "goodMultiplier": "good_multiplier",
    "easyMultiplier": "easy_multiplier",
    "difficultyDecay": "difficulty_decay",
    "difficultyIncrease": "difficulty_increase",
    "stabilityMultiplier": "stability_multiplier",
}


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------

_PRESET_CACHE: Dict[str, EngineConfig] = {}


def load_config(path: Path) -> EngineConfig:
    """Read an :class:`EngineConfig` from the JSON file at *path*."""

    with Path(path).open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, Mapping):
        raise ValueError(f"Config file {path} must contain a JSON object")
    return EngineConfig.from_mapping(payload)


def _iter_preset_files() -> Iterable[Path]:
    if not PRESETS_DIR.exists():
        return []
    return sorted(PRESETS_DIR.glob("*.json"))


def load_preset(name: Optional[str] = None) -> EngineConfig:
    """Load the bundled preset called *name*.

    When *name* is omitted the ``SRS_ENGINE_PRESET`` environment variable is
    consulted, then the first preset on disk is used.
    """

    name = name or os.environ.get(PRESET_ENV_VAR) or None
    if name in _PRESET_CACHE:
        return _PRESET_CACHE[name]  # type: ignore[index]

    for path in _iter_preset_files():
        if name is None or path.stem == name:
            config = load_config(path)
            _PRESET_CACHE[path.stem] = config
            return config

    if name is not None:
        raise FileNotFoundError(f"No preset named '{name}' in {PRESETS_DIR}")
    raise FileNotFoundError(f"No preset files found in {PRESETS_DIR}")


def available_presets() -> List[str]:
    return [path.stem for path in _iter_preset_files()]


__all__ = [
    "AlgorithmType",
    "EngineConfig",
    "FSRSParameters",
    "ReviewQuality",
    "available_presets",
    "load_config",
    "load_preset",
]
