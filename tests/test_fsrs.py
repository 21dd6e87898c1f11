import math
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from srs_engine.config import EngineConfig, FSRSParameters
from srs_engine.fsrs import (
    MIN_STABILITY,
    FSRSStrategy,
    current_stability,
    forget_stability,
    history_difficulty,
    recall_stability,
)
from srs_engine.state import SchedulingState


def almost_equal(a: float, b: float, tol: float = 1e-9) -> bool:
    return math.isclose(a, b, rel_tol=tol, abs_tol=tol)


@pytest.mark.parametrize(
    "history, expected",
    [
        ((), 0.4),
        ((5, 5, 5), 0.0),
        ((0, 0), 1.0),
        ((4, 2), 0.4),
    ],
)
def test_history_difficulty(history, expected):
    assert almost_equal(history_difficulty(history), expected)


def test_new_card_uses_base_stability_and_one_day_interval():
    outcome = FSRSStrategy().calculate(4, SchedulingState(), EngineConfig())

    assert outcome.state.repetition == 1
    assert outcome.state.interval == 1
    assert outcome.metrics.fsrs_stability == pytest.approx(0.4 * (1 + 0.8 * 0.6))
    assert outcome.metrics.fsrs_difficulty == pytest.approx(0.3)
    assert outcome.state.ease_factor == 1.3


def test_success_grows_stability_and_interval():
    state = SchedulingState(repetition=2, ease_factor=2.5, interval=10, review_history=(4, 4))

    outcome = FSRSStrategy().calculate(5, state, EngineConfig())

    stability = 10 * 1.5 ** -2
    expected = stability * 1.6
    assert outcome.metrics.fsrs_stability == pytest.approx(expected)
    assert outcome.state.interval == 213
    assert outcome.state.ease_factor == 5.0
    assert outcome.state.lapses == 0


def test_failure_shrinks_stability_and_counts_lapse():
    state = SchedulingState(repetition=2, ease_factor=2.5, interval=10, review_history=(4, 4), lapses=2)

    outcome = FSRSStrategy().calculate(1, state, EngineConfig())

    assert outcome.metrics.fsrs_stability == pytest.approx(10 * 1.5 ** -2 * 0.5)
    assert outcome.state.interval == 67
    assert outcome.state.repetition == 3
    assert outcome.state.lapses == 3
    assert outcome.metrics.fsrs_difficulty == pytest.approx(0.4)


def test_stability_respects_floor():
    config = EngineConfig(again_multiplier=0.01)

    assert forget_stability(0.2, config) == MIN_STABILITY
    assert current_stability(SchedulingState(repetition=30, interval=1), FSRSParameters()) == MIN_STABILITY


def test_recall_stability_scales_with_quality():
    params = FSRSParameters()

    assert recall_stability(2.0, 5, params) > recall_stability(2.0, 3, params) > 2.0


def test_custom_parameters_change_interval():
    state = SchedulingState(repetition=2, interval=10, review_history=(4, 4))
    config = EngineConfig(fsrs={"w1": 0.8, "stability_multiplier": 25})

    outcome = FSRSStrategy().calculate(5, state, config)

    assert outcome.state.interval == round(10 * 1.5 ** -2 * 1.8 * 25)


def test_common_metrics_sit_beside_raw_model_values():
    state = SchedulingState(repetition=2, interval=10, review_history=(4, 1))

    outcome = FSRSStrategy().calculate(3, state, EngineConfig())
    new = outcome.state
    metrics = outcome.metrics

    assert metrics.retention == pytest.approx(round(math.exp(-new.interval / (new.ease_factor * 10)), 3))
    assert metrics.stability == pytest.approx(round(new.interval * new.ease_factor, 1))
    assert metrics.difficulty == pytest.approx(0.5)
    assert metrics.average_quality == pytest.approx(2.67)
    assert metrics.streak == 1
    assert metrics.fsrs_stability == pytest.approx(10 * 1.5 ** -2 * 1.36)
    assert metrics.fsrs_difficulty == pytest.approx(0.4)

    payload = metrics.to_dict()
    assert "fsrs_stability" in payload
    assert "fsrs_difficulty" in payload
