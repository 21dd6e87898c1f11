import math
import random
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from srs_engine.config import EngineConfig
from srs_engine.sm2 import SM2Strategy, ease_adjustment, next_repetition
from srs_engine.state import SchedulingState


@pytest.mark.parametrize(
    "quality, expected",
    [
        (5, 0.1),
        (4, 0.0),
        (3, -0.14),
        (2, -0.32),
        (1, -0.54),
        (0, -0.8),
    ],
)
def test_ease_adjustment_matches_supermemo_table(quality, expected):
    assert ease_adjustment(quality) == pytest.approx(expected)


def test_first_three_successes_follow_classic_schedule():
    strategy = SM2Strategy()
    config = EngineConfig()
    state = SchedulingState(repetition=0, ease_factor=2.5, interval=0)

    first = strategy.calculate(4, state, config).state
    assert (first.repetition, first.interval) == (1, 1)

    second = strategy.calculate(4, first, config).state
    assert (second.repetition, second.interval) == (2, 6)

    third = strategy.calculate(5, second, config).state
    assert third.repetition == 3
    assert third.ease_factor > 2.5
    assert third.interval == round(6 * third.ease_factor) == 16


@pytest.mark.parametrize("quality", [0, 1, 2])
def test_lapse_resets_progress(quality):
    state = SchedulingState(repetition=5, ease_factor=2.2, interval=40, lapses=1)

    outcome = SM2Strategy().calculate(quality, state, EngineConfig())

    assert outcome.state.repetition == 0
    assert outcome.state.interval == 1
    assert outcome.state.lapses == 2
    assert outcome.state.ease_factor < 2.2


def test_ease_never_drops_below_floor():
    state = SchedulingState(repetition=2, ease_factor=1.3, interval=6)

    outcome = SM2Strategy().calculate(0, state, EngineConfig())

    assert outcome.state.ease_factor == 1.3


def test_interval_is_clamped_to_configured_maximum():
    state = SchedulingState(repetition=8, ease_factor=3.0, interval=300)

    outcome = SM2Strategy().calculate(5, state, EngineConfig(max_interval=365))

    assert outcome.state.interval == 365


def test_next_repetition_uses_given_ease_after_second_step():
    assert next_repetition(0, 0, 2.5) == (1, 1)
    assert next_repetition(1, 1, 2.5) == (2, 6)
    assert next_repetition(2, 6, 2.0) == (3, 12)


def test_metrics_follow_ease_formulas():
    state = SchedulingState(repetition=1, ease_factor=2.5, interval=1, review_history=(4, 2))

    outcome = SM2Strategy().calculate(4, state, EngineConfig())
    metrics = outcome.metrics
    new = outcome.state

    assert metrics.retention == pytest.approx(round(math.exp(-new.interval / (new.ease_factor * 10)), 3))
    assert metrics.stability == pytest.approx(round(new.interval * new.ease_factor, 1))
    assert metrics.difficulty == pytest.approx(0.5)
    assert metrics.average_quality == pytest.approx(3.33)
    assert metrics.streak == 1


def test_history_is_capped_at_twenty_entries():
    strategy = SM2Strategy()
    config = EngineConfig()
    state = SchedulingState()
    for _ in range(30):
        state = strategy.calculate(4, state, config).state

    assert len(state.review_history) == 20


def test_fuzzing_stays_within_range_and_is_reproducible():
    config = EngineConfig(enable_fuzzing=True, fuzz_range=0.05)
    state = SchedulingState(repetition=4, ease_factor=2.5, interval=40)

    first = SM2Strategy().calculate(4, state, config, rng=random.Random(7)).state.interval
    again = SM2Strategy().calculate(4, state, config, rng=random.Random(7)).state.interval

    assert first == again
    assert 95 <= first <= 105


def test_input_state_is_not_mutated():
    state = SchedulingState(repetition=2, ease_factor=2.5, interval=6, review_history=(4, 4))

    SM2Strategy().calculate(5, state, EngineConfig())

    assert state == SchedulingState(repetition=2, ease_factor=2.5, interval=6, review_history=(4, 4))


def test_out_of_range_quality_raises():
    with pytest.raises(ValueError):
        SM2Strategy().calculate(6, SchedulingState(), EngineConfig())
