"""Strategy interface, shared scheduling helpers and the algorithm registry."""

from __future__ import annotations

import math
import random
from typing import Dict, Iterable, Optional, Sequence, Tuple

from srs_engine.config import (
    FUZZ_MIN_INTERVAL,
    MAX_EASE_FACTOR,
    MIN_EASE_FACTOR,
    RETENTION_FACTOR,
    AlgorithmType,
    EngineConfig,
)
from srs_engine.state import ScheduleOutcome, SchedulingMetrics, SchedulingState

LAPSE_MARK = 3


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp_ease(value: float) -> float:
    return round(clamp(value, MIN_EASE_FACTOR, MAX_EASE_FACTOR), 2)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def apply_fuzz(interval: int, fuzz_range: float, rng: Optional[random.Random] = None) -> int:
    """Spread *interval* by up to ``fuzz_range`` of its length in either direction.

    Short intervals are returned untouched.
    """

    if interval <= FUZZ_MIN_INTERVAL or fuzz_range <= 0:
        return interval
    rng = rng or random
    spread = max(1, int(math.floor(interval * fuzz_range)))
    return max(1, interval + rng.randint(-spread, spread))


def finalize_interval(
    interval: int,
    config: EngineConfig,
    rng: Optional[random.Random] = None,
) -> int:
    if config.enable_fuzzing:
        interval = apply_fuzz(interval, config.fuzz_range, rng)
    return int(clamp(interval, 0, config.max_interval))


def streak(history: Sequence[int], pass_mark: int) -> int:
    """Count the trailing run of entries at or above *pass_mark*."""

    count = 0
    for quality in reversed(history):
        if quality < pass_mark:
            break
        count += 1
    return count


def average(history: Sequence[int], default: float = 0.0) -> float:
    if not history:
        return default
    return sum(history) / len(history)


def ease_metrics(state: SchedulingState, streak_mark: int, lapse_mark: int = LAPSE_MARK) -> SchedulingMetrics:
    """Common metrics of a freshly produced state.

    History entries below *lapse_mark* count towards difficulty; the streak
    counts trailing entries at or above *streak_mark*.
    """

    history = state.review_history
    retention = math.exp(-state.interval / (state.ease_factor * RETENTION_FACTOR))
    lapse_rate = (
        sum(1 for q in history if q < lapse_mark) / len(history) if history else 0.5
    )
    return SchedulingMetrics(
        retention=round(retention, 3),
        stability=round(state.interval * state.ease_factor, 1),
        difficulty=round(min(1.0, lapse_rate * 1.5), 2),
        average_quality=round(average(history), 2),
        streak=streak(history, streak_mark),
    )


class Strategy:
    """Maps ``(quality, state, config)`` to a new :class:`ScheduleOutcome`.

    Implementations must be pure apart from the optional fuzzing RNG: the
    engine caches their results by input.
    """

    name: str = "strategy"
    algorithm: AlgorithmType
    quality_range: Tuple[int, int] = (0, 5)
    pass_mark: int = 3

    def calculate(
        self,
        quality: int,
        state: SchedulingState,
        config: EngineConfig,
        *,
        rng: Optional[random.Random] = None,
    ) -> ScheduleOutcome:
        raise NotImplementedError

    def check_quality(self, quality: int) -> None:
        low, high = self.quality_range
        if not low <= quality <= high:
            raise ValueError(f"{self.name} accepts quality {low}..{high}, got {quality}")

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class StrategyRegistry:
    """Maps each :class:`AlgorithmType` to a strategy instance."""

    def __init__(self, strategies: Optional[Iterable[Strategy]] = None) -> None:
        self._strategies: Dict[AlgorithmType, Strategy] = {}
        for strategy in strategies or ():
            self.register(strategy)

    @classmethod
    def default(cls) -> "StrategyRegistry":
        from srs_engine.anki import AnkiStrategy
        from srs_engine.fsrs import FSRSStrategy
        from srs_engine.sm2 import SM2Strategy

        return cls([SM2Strategy(), AnkiStrategy(), FSRSStrategy()])

    def register(self, strategy: Strategy) -> None:
        self._strategies[strategy.algorithm] = strategy

    def get(self, algorithm: AlgorithmType) -> Optional[Strategy]:
        return self._strategies.get(algorithm)

    def find_by_name(self, name: str) -> Optional[Strategy]:
        for strategy in self._strategies.values():
            if strategy.name == name:
                return strategy
        return None

    def __contains__(self, algorithm: object) -> bool:
        return algorithm in self._strategies

    def algorithms(self) -> Tuple[AlgorithmType, ...]:
        return tuple(self._strategies)


__all__ = [
    "Strategy",
    "StrategyRegistry",
    "apply_fuzz",
    "average",
    "clamp",
    "clamp_ease",
    "ease_metrics",
    "finalize_interval",
    "round_half_up",
    "streak",
]
