"""Simplified FSRS memory model.

Difficulty is derived from the learner's recent answers and stability from
the current interval. The ease factor is not used as an input; it is derived
from the new stability so that the shared state keeps the same shape across
algorithms.
"""

from __future__ import annotations

import math
import random
from dataclasses import replace
from typing import Optional, Sequence

from srs_engine.config import AlgorithmType, EngineConfig, FSRSParameters
from srs_engine.state import ScheduleOutcome, SchedulingState, trim_history
from srs_engine.strategies import Strategy, average, clamp, clamp_ease, ease_metrics, finalize_interval, round_half_up

MIN_STABILITY = 0.1
NEUTRAL_QUALITY = 3
PASS_MARK = 3


def history_difficulty(history: Sequence[int]) -> float:
    return clamp(1 - average(history, NEUTRAL_QUALITY) / 5, 0.0, 1.0)


def current_stability(state: SchedulingState, params: FSRSParameters) -> float:
    if state.repetition == 0:
        return params.w0
    value = state.interval * math.pow(1 + params.decay, -state.repetition)
    return max(value, MIN_STABILITY)


def recall_stability(stability: float, quality: int, params: FSRSParameters) -> float:
    return stability * (1 + (quality / 5) * params.w1)


def forget_stability(stability: float, config: EngineConfig) -> float:
    return max(stability * config.again_multiplier, MIN_STABILITY)


class FSRSStrategy(Strategy):
    name = "FSRS"
    algorithm = AlgorithmType.FSRS
    quality_range = (0, 5)
    pass_mark = PASS_MARK

    def calculate(
        self,
        quality: int,
        state: SchedulingState,
        config: EngineConfig,
        *,
        rng: Optional[random.Random] = None,
    ) -> ScheduleOutcome:
        self.check_quality(quality)
        params = config.fsrs
        difficulty = history_difficulty(state.review_history)
        stability = current_stability(state, params)

        if quality >= PASS_MARK:
            new_stability = recall_stability(stability, quality, params)
            new_difficulty = max(0.0, difficulty - params.difficulty_decay)
            lapses = state.lapses
        else:
            new_stability = forget_stability(stability, config)
            new_difficulty = min(1.0, difficulty + params.difficulty_increase)
            lapses = state.lapses + 1

        if state.repetition == 0:
            interval = 1
        else:
            interval = max(1, round_half_up(new_stability * params.stability_multiplier))

        history = trim_history(state.review_history + (quality,))
        updated = state.replace(
            repetition=state.repetition + 1,
            ease_factor=clamp_ease(new_stability * 2),
            interval=finalize_interval(interval, config, rng),
            lapses=lapses,
            review_history=history,
        )

        metrics = replace(
            ease_metrics(updated, self.pass_mark),
            fsrs_stability=new_stability,
            fsrs_difficulty=new_difficulty,
        )
        return ScheduleOutcome(state=updated, metrics=metrics)


__all__ = [
    "FSRSStrategy",
    "current_stability",
    "forget_stability",
    "history_difficulty",
    "recall_stability",
]
