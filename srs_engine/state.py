"""Scheduling state and derived metrics for a single learning item.

:class:`SchedulingState` is owned by the caller. Strategies never mutate it;
every review produces a fresh frozen instance. The module also carries the
helpers used to serialise states to and from the JSON records that the
surrounding application persists.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from srs_engine.config import DEFAULT_EASE_FACTOR, MAX_HISTORY_LENGTH


def ensure_utc(value: datetime) -> datetime:
    """Normalise *value* to a UTC timezone aware datetime."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Convert a JSON field into a :class:`datetime` in UTC if possible."""

    if value in (None, "", 0):
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1]
        try:
            return ensure_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    """Serialise a datetime in ISO-8601 format (UTC) for JSON storage."""

    if value is None:
        return None
    return ensure_utc(value).isoformat().replace("+00:00", "Z")


def trim_history(history: Sequence[int], limit: int = MAX_HISTORY_LENGTH) -> Tuple[int, ...]:
    """Keep only the *limit* most recent entries of *history*."""

    if limit <= 0:
        return ()
    return tuple(int(q) for q in history)[-limit:]


# Mapping keys accepted on input, including the camelCase spellings used by
# browser clients.
_FIELD_ALIASES = {
    "repetition": ("repetition", "repetitions"),
    "ease_factor": ("ease_factor", "easeFactor"),
    "interval": ("interval", "interval_days", "intervalDays"),
    "lapses": ("lapses",),
    "last_duration": ("last_duration", "lastDuration"),
    "review_history": ("review_history", "reviewHistory"),
    "last_review_date": ("last_review_date", "lastReviewDate"),
    "next_review": ("next_review", "nextReview"),
}


def read_field(source: Any, name: str, default: Any = None) -> Any:
    """Fetch *name* from a :class:`SchedulingState` or a mapping.

    Mappings are searched for every known alias of the field.
    """

    if isinstance(source, SchedulingState):
        return getattr(source, name)
    if isinstance(source, Mapping):
        for key in _FIELD_ALIASES.get(name, (name,)):
            if key in source and source[key] is not None:
                return source[key]
    return default


@dataclass(frozen=True)
class SchedulingState:
    """Scheduling attributes tracked per learning item.

    Parameters
    ----------
    repetition:
        Consecutive successful recalls since the last lapse.
    ease_factor:
        Interval growth multiplier, kept within ``[1.3, 5.0]``.
    interval:
        Days until the next review.
    lapses:
        Lifetime count of failed recalls.
    last_duration:
        Seconds spent on the last answer. Informational only.
    review_history:
        Most recent quality scores, oldest first.
    last_review_date / next_review:
        Optional UTC timestamps.
    """

    repetition: int = 0
    ease_factor: float = DEFAULT_EASE_FACTOR
    interval: int = 0
    lapses: int = 0
    last_duration: float = 0.0
    review_history: Tuple[int, ...] = ()
    last_review_date: Optional[datetime] = None
    next_review: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not isinstance(self.review_history, tuple):
            object.__setattr__(self, "review_history", trim_history(self.review_history))
        for name in ("last_review_date", "next_review"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, datetime):
                object.__setattr__(self, name, parse_datetime(value))

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------
    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "SchedulingState":
        """Create a state from a JSON record, tolerating legacy key names."""

        raw_history = read_field(payload, "review_history", ())
        history: Tuple[int, ...] = ()
        if isinstance(raw_history, Sequence) and not isinstance(raw_history, (str, bytes)):
            history = trim_history(raw_history)

        return cls(
            repetition=int(read_field(payload, "repetition", 0) or 0),
            ease_factor=float(read_field(payload, "ease_factor", DEFAULT_EASE_FACTOR)),
            interval=int(read_field(payload, "interval", 0) or 0),
            lapses=int(read_field(payload, "lapses", 0) or 0),
            last_duration=float(read_field(payload, "last_duration", 0.0) or 0.0),
            review_history=history,
            last_review_date=parse_datetime(read_field(payload, "last_review_date")),
            next_review=parse_datetime(read_field(payload, "next_review")),
        )

    @classmethod
    def coerce(cls, value: Any) -> "SchedulingState":
        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            return cls.from_mapping(value)
        raise TypeError(f"Cannot build a SchedulingState from {type(value).__name__}")

    def to_dict(self) -> Dict[str, Any]:
        """Serialise the state into a JSON friendly dictionary."""

        return {
            "repetition": self.repetition,
            "ease_factor": self.ease_factor,
            "interval": self.interval,
            "lapses": self.lapses,
            "last_duration": self.last_duration,
            "review_history": list(self.review_history),
            "last_review_date": format_datetime(self.last_review_date),
            "next_review": format_datetime(self.next_review),
        }

    def replace(self, **changes: Any) -> "SchedulingState":
        """Return a new instance with *changes* applied."""

        return replace(self, **changes)


@dataclass(frozen=True)
class SchedulingMetrics:
    """Derived figures computed from a freshly produced state."""

    retention: float
    stability: float
    difficulty: float
    average_quality: float
    streak: int
    fsrs_stability: Optional[float] = None
    fsrs_difficulty: Optional[float] = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "SchedulingMetrics":
        return cls(
            retention=float(payload.get("retention", 0.0)),
            stability=float(payload.get("stability", 0.0)),
            difficulty=float(payload.get("difficulty", 0.0)),
            average_quality=float(payload.get("average_quality", payload.get("averageQuality", 0.0))),
            streak=int(payload.get("streak", 0)),
            fsrs_stability=payload.get("fsrs_stability"),
            fsrs_difficulty=payload.get("fsrs_difficulty"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.fsrs_stability is None:
            data.pop("fsrs_stability")
        if self.fsrs_difficulty is None:
            data.pop("fsrs_difficulty")
        return data


@dataclass(frozen=True)
class ScheduleOutcome:
    """The new state of an item together with its metrics."""

    state: SchedulingState
    metrics: SchedulingMetrics

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "ScheduleOutcome":
        return cls(
            state=SchedulingState.from_mapping(payload["state"]),
            metrics=SchedulingMetrics.from_mapping(payload["metrics"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"state": self.state.to_dict(), "metrics": self.metrics.to_dict()}

    def replace(self, **changes: Any) -> "ScheduleOutcome":
        return replace(self, **changes)


__all__ = [
    "ScheduleOutcome",
    "SchedulingMetrics",
    "SchedulingState",
    "ensure_utc",
    "format_datetime",
    "parse_datetime",
    "read_field",
    "trim_history",
]
