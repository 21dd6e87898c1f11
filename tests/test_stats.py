import math
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from srs_engine.state import SchedulingState
from srs_engine.stats import calculate_deck_stats


NOW = datetime(2024, 3, 1, tzinfo=timezone.utc)


def test_empty_deck():
    stats = calculate_deck_stats([], now=NOW)

    assert stats["total_cards"] == 0
    assert stats["due_cards"] == 0
    assert stats["retention"] == 0.0
    assert stats["cards_by_ease"] == {"low": 0, "medium": 0, "high": 0}


def test_mixed_deck():
    cards = [
        SchedulingState(ease_factor=1.5, interval=2, next_review=NOW - timedelta(days=1)),
        {"easeFactor": 2.5, "interval": 30, "nextReview": "2024-03-01T00:00:00Z"},
        {"ease_factor": 3.2, "interval": 40, "next_review": (NOW + timedelta(days=5)).isoformat()},
        {"interval": 0},
    ]

    stats = calculate_deck_stats(cards, now=NOW)

    average_ease = (1.5 + 2.5 + 3.2 + 2.5) / 4
    average_interval = (2 + 30 + 40 + 0) / 4
    assert stats["total_cards"] == 4
    assert stats["due_cards"] == 2
    assert stats["average_ease"] == pytest.approx(round(average_ease, 2))
    assert stats["average_interval"] == 18
    assert stats["retention"] == pytest.approx(round(math.exp(-average_interval / (average_ease * 10)), 3))
    assert stats["cards_by_ease"] == {"low": 1, "medium": 2, "high": 1}
    assert stats["learning_rate"] == 0.5


def test_cards_without_next_review_are_not_due():
    stats = calculate_deck_stats([SchedulingState(), SchedulingState()], now=NOW)

    assert stats["due_cards"] == 0
    assert stats["average_ease"] == 2.5
