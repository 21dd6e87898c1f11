"""Personalise scheduling coefficients from a learner's review history."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from srs_engine.config import AGAIN_MULTIPLIER, MAX_INTERVAL, EngineConfig
from srs_engine.strategies import average


@dataclass(frozen=True)
class AdaptationPolicy:
    """Thresholds that decide when and how far coefficients move."""

    min_history: int = 10
    factor: float = 0.2
    struggling_below: float = 2.5
    excelling_above: float = 4.0
    failure_quality: int = 2
    high_failure_rate: float = 0.3
    low_failure_rate: float = 0.1
    interval_ceiling: int = MAX_INTERVAL


@dataclass(frozen=True)
class Adaptation:
    old_config: EngineConfig
    new_config: EngineConfig
    average_quality: float
    failure_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "old_config": self.old_config.to_dict(),
            "new_config": self.new_config.to_dict(),
            "average_quality": self.average_quality,
            "failure_rate": self.failure_rate,
        }


def failure_rate(history: Sequence[int], failure_quality: int = 2) -> float:
    if not history:
        return 0.0
    return sum(1 for q in history if q < failure_quality) / len(history)


def tune(
    history: Sequence[int],
    config: EngineConfig,
    policy: Optional[AdaptationPolicy] = None,
) -> Optional[Adaptation]:
    """Derive a new config from *history*, or ``None`` if there is too little data.

    Struggling learners get smaller penalties and a larger bonus; learners
    who excel get a smaller bonus and a higher interval ceiling. The
    again-multiplier is set from the failure rate: many failures shrink
    lapsed intervals harder, few failures shrink them less.
    """

    policy = policy or AdaptationPolicy()
    history = [int(q) for q in history]
    if len(history) < policy.min_history:
        return None

    avg = average(history)
    failures = failure_rate(history, policy.failure_quality)
    up = 1 + policy.factor
    down = 1 - policy.factor
    changes: Dict[str, Any] = {}

    if avg < policy.struggling_below:
        changes["ease_bonus"] = config.ease_bonus * up
        changes["ease_penalty"] = config.ease_penalty * down
        changes["hard_penalty"] = config.hard_penalty * down
    elif avg > policy.excelling_above:
        changes["ease_bonus"] = config.ease_bonus * down
        changes["max_interval"] = max(
            config.max_interval,
            min(int(config.max_interval * up), policy.interval_ceiling),
        )

    if failures > policy.high_failure_rate:
        changes["again_multiplier"] = AGAIN_MULTIPLIER * down
    elif failures < policy.low_failure_rate:
        changes["again_multiplier"] = min(1.0, AGAIN_MULTIPLIER * up)

    return Adaptation(
        old_config=config,
        new_config=config.replace(**changes),
        average_quality=avg,
        failure_rate=failures,
    )


__all__ = ["Adaptation", "AdaptationPolicy", "failure_rate", "tune"]
