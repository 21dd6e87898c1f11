"""Aggregate figures over a whole deck of scheduling states."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

import pandas as pd

from srs_engine.config import DEFAULT_EASE_FACTOR, RETENTION_FACTOR
from srs_engine.state import ensure_utc, parse_datetime, read_field
from srs_engine.strategies import round_half_up

MATURE_INTERVAL = 21
LOW_EASE = 2.0
HIGH_EASE = 3.0


def _empty_stats() -> Dict[str, Any]:
    return {
        "total_cards": 0,
        "due_cards": 0,
        "average_ease": 0.0,
        "average_interval": 0,
        "retention": 0.0,
        "cards_by_ease": {"low": 0, "medium": 0, "high": 0},
        "learning_rate": 0.0,
    }


def build_frame(cards: Iterable[Any]) -> pd.DataFrame:
    """One row per card with ``ease_factor``, ``interval`` and ``next_review``.

    Cards may be :class:`~srs_engine.state.SchedulingState` instances or JSON
    records; missing ease factors fall back to the default.
    """

    rows = [
        {
            "ease_factor": float(read_field(card, "ease_factor", DEFAULT_EASE_FACTOR) or DEFAULT_EASE_FACTOR),
            "interval": float(read_field(card, "interval", 0) or 0),
            "next_review": parse_datetime(read_field(card, "next_review")),
        }
        for card in cards
    ]
    frame = pd.DataFrame(rows, columns=["ease_factor", "interval", "next_review"])
    frame["next_review"] = pd.to_datetime(frame["next_review"], utc=True)
    return frame


def calculate_deck_stats(cards: Iterable[Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Summarise *cards*.

    Only cards with a ``next_review`` at or before *now* count as due. Cards
    with an interval above three weeks count as mature for ``learning_rate``.
    """

    frame = build_frame(cards)
    if frame.empty:
        return _empty_stats()

    current = pd.Timestamp(ensure_utc(now or datetime.now(tz=timezone.utc)))
    total = len(frame)
    avg_ease = float(frame["ease_factor"].mean())
    avg_interval = float(frame["interval"].mean())

    ease_band = pd.cut(
        frame["ease_factor"],
        bins=[-math.inf, LOW_EASE, HIGH_EASE, math.inf],
        labels=["low", "medium", "high"],
        right=False,
    )
    by_ease = ease_band.value_counts()

    return {
        "total_cards": total,
        "due_cards": int((frame["next_review"].notna() & (frame["next_review"] <= current)).sum()),
        "average_ease": round(avg_ease, 2),
        "average_interval": round_half_up(avg_interval),
        "retention": round(math.exp(-avg_interval / (avg_ease * RETENTION_FACTOR)), 3),
        "cards_by_ease": {label: int(by_ease.get(label, 0)) for label in ("low", "medium", "high")},
        "learning_rate": round(float((frame["interval"] > MATURE_INTERVAL).sum()) / total, 2),
    }


__all__ = ["build_frame", "calculate_deck_stats"]
