"""Spaced-repetition scheduling engine with SM-2, Anki and FSRS strategies."""

from .config import AlgorithmType, EngineConfig, FSRSParameters, ReviewQuality, load_config, load_preset
from .engine import SchedulingEngine
from .events import Event, EventType
from .middleware import Middleware, MiddlewareContext
from .result import ErrorCode, Result, SchedulingError
from .state import ScheduleOutcome, SchedulingMetrics, SchedulingState
from .stats import calculate_deck_stats

__version__ = "3.0.0"

__all__ = [
    "AlgorithmType",
    "EngineConfig",
    "ErrorCode",
    "Event",
    "EventType",
    "FSRSParameters",
    "Middleware",
    "MiddlewareContext",
    "Result",
    "ReviewQuality",
    "ScheduleOutcome",
    "SchedulingEngine",
    "SchedulingError",
    "SchedulingMetrics",
    "SchedulingState",
    "calculate_deck_stats",
    "load_config",
    "load_preset",
]
