"""Input checks that run before any scheduling computation."""

from __future__ import annotations

from numbers import Integral, Real
from typing import Any, Mapping, Optional, Tuple

from srs_engine.config import MAX_EASE_FACTOR, MAX_QUALITY, MIN_EASE_FACTOR, MIN_QUALITY
from srs_engine.result import ErrorCode, Result
from srs_engine.state import SchedulingState, read_field

_OK: Result[None] = Result.ok(None)


def _is_int(value: Any) -> bool:
    return isinstance(value, Integral) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def validate_quality(quality: Any, accepted: Optional[Tuple[int, int]] = None) -> Result[None]:
    """Check *quality* against ``[0, 5]`` and, if given, a strategy subrange."""

    if not _is_int(quality) or not MIN_QUALITY <= quality <= MAX_QUALITY:
        return Result.fail(
            ErrorCode.INVALID_QUALITY,
            f"Quality must be an integer between {MIN_QUALITY} and {MAX_QUALITY}, got {quality!r}",
        )
    if accepted is not None:
        low, high = accepted
        if not low <= quality <= high:
            return Result.fail(
                ErrorCode.INVALID_QUALITY,
                f"Quality {quality} is outside the accepted range {low}..{high} of the active algorithm",
            )
    return _OK


def validate_state(state: Any, max_interval: int) -> Result[None]:
    """Check the fields of *state* that feed the strategies.

    Missing fields are allowed; they fall back to their defaults.
    """

    if not isinstance(state, (SchedulingState, Mapping)):
        return Result.fail(ErrorCode.INVALID_DATA, "Current state must be a SchedulingState or a mapping")

    repetition = read_field(state, "repetition")
    if repetition is not None and (not _is_int(repetition) or repetition < 0):
        return Result.fail(ErrorCode.INVALID_REPETITION, "Repetition must be a non-negative integer")

    ease = read_field(state, "ease_factor")
    if ease is not None and (not _is_number(ease) or not MIN_EASE_FACTOR <= ease <= MAX_EASE_FACTOR):
        return Result.fail(
            ErrorCode.INVALID_EASE_FACTOR,
            f"Ease factor must be between {MIN_EASE_FACTOR} and {MAX_EASE_FACTOR}",
        )

    interval = read_field(state, "interval")
    if interval is not None and (
        not _is_number(interval) or not float(interval).is_integer() or not 0 <= interval <= max_interval
    ):
        return Result.fail(
            ErrorCode.INVALID_INTERVAL,
            f"Interval must be a whole number of days between 0 and {max_interval}",
        )

    return _OK


def validate(
    quality: Any,
    state: Any,
    *,
    max_interval: int,
    accepted: Optional[Tuple[int, int]] = None,
) -> Result[None]:
    checked = validate_quality(quality, accepted)
    if not checked.success:
        return checked
    return validate_state(state, max_interval)


__all__ = ["validate", "validate_quality", "validate_state"]
