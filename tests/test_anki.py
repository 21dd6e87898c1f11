import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from srs_engine.anki import AnkiStrategy, easy_interval, good_interval, hard_interval
from srs_engine.config import EngineConfig, ReviewQuality
from srs_engine.state import SchedulingState


MATURE = SchedulingState(repetition=3, ease_factor=2.5, interval=10, lapses=1)


@pytest.mark.parametrize(
    "grade, repetition, interval, ease",
    [
        (ReviewQuality.AGAIN, 0, 1, 2.3),
        (ReviewQuality.HARD, 4, 12, 2.4),
        (ReviewQuality.GOOD, 4, 25, 2.5),
        (ReviewQuality.EASY, 4, 75, 2.65),
    ],
)
def test_grades_on_mature_card(grade, repetition, interval, ease):
    outcome = AnkiStrategy().calculate(int(grade), MATURE, EngineConfig())

    assert outcome.state.repetition == repetition
    assert outcome.state.interval == interval
    assert outcome.state.ease_factor == pytest.approx(ease)


@pytest.mark.parametrize(
    "state",
    [
        SchedulingState(),
        SchedulingState(repetition=1, ease_factor=1.35, interval=1),
        SchedulingState(repetition=7, ease_factor=3.1, interval=120, lapses=4),
    ],
)
def test_again_resets_and_applies_penalty(state):
    config = EngineConfig()

    outcome = AnkiStrategy().calculate(0, state, config)

    assert outcome.state.repetition == 0
    assert outcome.state.interval == 1
    assert outcome.state.ease_factor == pytest.approx(round(max(1.3, state.ease_factor - config.ease_penalty), 2))
    assert outcome.state.lapses == state.lapses + 1


def test_new_card_intervals():
    new = SchedulingState()
    config = EngineConfig()

    assert hard_interval(new, config) == 1
    assert good_interval(new, config) == 1
    assert easy_interval(new, config) == 4


def test_second_step_good_interval_is_six_days():
    state = SchedulingState(repetition=1, ease_factor=2.5, interval=1)

    outcome = AnkiStrategy().calculate(2, state, EngineConfig())

    assert outcome.state.interval == 6


def test_better_grade_never_schedules_sooner_with_low_ease():
    # With ease below the hard multiplier, raw Good would undercut Hard.
    state = SchedulingState(repetition=4, ease_factor=1.3, interval=50)
    config = EngineConfig(hard_multiplier=1.5)

    intervals = [AnkiStrategy().calculate(q, state, config).state.interval for q in range(4)]

    assert intervals == sorted(intervals)


def test_streak_counts_grades_from_good_upward():
    state = SchedulingState(repetition=2, ease_factor=2.5, interval=6, review_history=(0, 2, 3))

    outcome = AnkiStrategy().calculate(2, state, EngineConfig())

    assert outcome.metrics.streak == 3


@pytest.mark.parametrize("quality", [4, 5])
def test_qualities_above_easy_are_rejected(quality):
    with pytest.raises(ValueError):
        AnkiStrategy().calculate(quality, MATURE, EngineConfig())


def test_difficulty_counts_entries_below_three_as_lapses():
    state = SchedulingState(repetition=2, interval=6, review_history=(2, 2))

    outcome = AnkiStrategy().calculate(2, state, EngineConfig())

    assert outcome.metrics.difficulty == 1.0
    assert outcome.metrics.streak == 3
