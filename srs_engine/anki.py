"""Anki-style four-button scheduling (Again, Hard, Good, Easy)."""

from __future__ import annotations

import random
from typing import Optional, Tuple

from srs_engine.config import (
    EASY_FIRST_INTERVAL,
    INTERVAL_REP_0,
    INTERVAL_REP_1,
    MAX_EASE_FACTOR,
    MIN_EASE_FACTOR,
    AlgorithmType,
    EngineConfig,
    ReviewQuality,
)
from srs_engine.state import ScheduleOutcome, SchedulingState, trim_history
from srs_engine.strategies import Strategy, ease_metrics, finalize_interval, round_half_up


def hard_interval(state: SchedulingState, config: EngineConfig) -> int:
    return max(1, round_half_up(state.interval * config.hard_multiplier))


def good_interval(state: SchedulingState, config: EngineConfig) -> int:
    if state.repetition == 0:
        interval = INTERVAL_REP_0
    elif state.repetition == 1:
        interval = INTERVAL_REP_1
    else:
        interval = round_half_up(state.interval * state.ease_factor)
    # A better answer never schedules sooner than a worse one.
    return max(interval, hard_interval(state, config))


def easy_interval(state: SchedulingState, config: EngineConfig) -> int:
    if state.repetition == 0:
        interval = EASY_FIRST_INTERVAL
    else:
        interval = round_half_up(state.interval * state.ease_factor * config.easy_multiplier)
    return max(interval, good_interval(state, config))


def process_grade(
    grade: ReviewQuality, state: SchedulingState, config: EngineConfig
) -> Tuple[int, int, float]:
    """Return ``(repetition, interval, ease)`` for *grade*."""

    ease = state.ease_factor
    if grade is ReviewQuality.AGAIN:
        return 0, 1, max(MIN_EASE_FACTOR, ease - config.ease_penalty)
    if grade is ReviewQuality.HARD:
        return state.repetition + 1, hard_interval(state, config), max(MIN_EASE_FACTOR, ease - config.hard_penalty)
    if grade is ReviewQuality.GOOD:
        return state.repetition + 1, good_interval(state, config), ease
    return state.repetition + 1, easy_interval(state, config), min(MAX_EASE_FACTOR, ease + config.ease_bonus)


class AnkiStrategy(Strategy):
    """Accepts quality 0-3 only; 4 and 5 are rejected, not folded into Easy."""

    name = "Anki"
    algorithm = AlgorithmType.ANKI
    quality_range = (0, 3)
    pass_mark = 2

    def calculate(
        self,
        quality: int,
        state: SchedulingState,
        config: EngineConfig,
        *,
        rng: Optional[random.Random] = None,
    ) -> ScheduleOutcome:
        self.check_quality(quality)
        grade = ReviewQuality(quality)
        repetition, interval, ease = process_grade(grade, state, config)

        updated = state.replace(
            repetition=repetition,
            ease_factor=round(ease, 2),
            interval=finalize_interval(interval, config, rng),
            lapses=state.lapses + (1 if grade is ReviewQuality.AGAIN else 0),
            review_history=trim_history(state.review_history + (quality,)),
        )
        return ScheduleOutcome(state=updated, metrics=ease_metrics(updated, self.pass_mark))


__all__ = ["AnkiStrategy", "easy_interval", "good_interval", "hard_interval", "process_grade"]
