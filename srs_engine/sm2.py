"""Classic SuperMemo-2 scheduling."""

from __future__ import annotations

import random
from typing import Optional, Tuple

from srs_engine.config import INTERVAL_REP_0, INTERVAL_REP_1, AlgorithmType, EngineConfig
from srs_engine.state import ScheduleOutcome, SchedulingState, trim_history
from srs_engine.strategies import Strategy, clamp_ease, ease_metrics, finalize_interval, round_half_up

BASE_INCREASE = 0.1
QUALITY_FACTOR = 0.08
QUALITY_SQUARE_FACTOR = 0.02
PASS_MARK = 3


def ease_adjustment(quality: int) -> float:
    miss = 5 - quality
    return BASE_INCREASE - miss * (QUALITY_FACTOR + miss * QUALITY_SQUARE_FACTOR)


def next_repetition(repetition: int, interval: int, ease: float) -> Tuple[int, int]:
    """Repetition count and interval after a successful recall."""

    repetition += 1
    if repetition == 1:
        return repetition, INTERVAL_REP_0
    if repetition == 2:
        return repetition, INTERVAL_REP_1
    return repetition, max(1, round_half_up(interval * ease))


class SM2Strategy(Strategy):
    """Quality 0-5; anything below 3 is a lapse."""

    name = "SM-2"
    algorithm = AlgorithmType.SM2
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
        ease = clamp_ease(state.ease_factor + ease_adjustment(quality))

        if quality >= PASS_MARK:
            repetition, interval = next_repetition(state.repetition, state.interval, ease)
            lapses = state.lapses
        else:
            repetition, interval = 0, 1
            lapses = state.lapses + 1

        updated = state.replace(
            repetition=repetition,
            ease_factor=ease,
            interval=finalize_interval(interval, config, rng),
            lapses=lapses,
            review_history=trim_history(state.review_history + (quality,)),
        )
        return ScheduleOutcome(state=updated, metrics=ease_metrics(updated, self.pass_mark))


__all__ = ["SM2Strategy", "ease_adjustment", "next_repetition"]
