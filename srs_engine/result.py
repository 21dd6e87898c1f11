"""Tagged success/failure values returned across the engine boundary."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorCode(str, Enum):
    INVALID_QUALITY = "INVALID_QUALITY"
    INVALID_REPETITION = "INVALID_REPETITION"
    INVALID_EASE_FACTOR = "INVALID_EASE_FACTOR"
    INVALID_INTERVAL = "INVALID_INTERVAL"
    INVALID_DATA = "INVALID_DATA"
    ALGORITHM_NOT_FOUND = "ALGORITHM_NOT_FOUND"
    MIDDLEWARE_ERROR = "MIDDLEWARE_ERROR"
    MIGRATION_ERROR = "MIGRATION_ERROR"
    CACHE_ERROR = "CACHE_ERROR"


class SchedulingError(Exception):
    """Raised by :meth:`Result.unwrap` when the result is a failure."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(f"{code.value}: {message}")
        self.code = code
        self.message = message


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a success carrying ``value`` or a failure carrying ``code``.

    Expected failures (bad input, unknown algorithm, failed migration) are
    returned as values so callers branch on :attr:`success` instead of
    catching exceptions.
    """

    success: bool
    value: Optional[T] = None
    code: Optional[ErrorCode] = None
    message: str = ""

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, code: ErrorCode, message: str) -> "Result[Any]":
        return cls(success=False, code=ErrorCode(code), message=message)

    def __bool__(self) -> bool:
        return self.success

    def unwrap(self) -> T:
        if not self.success:
            raise SchedulingError(self.code, self.message)  # type: ignore[arg-type]
        return self.value  # type: ignore[return-value]

    def to_dict(self) -> dict:
        if self.success:
            value = self.value.to_dict() if hasattr(self.value, "to_dict") else self.value
            return {"success": True, "value": value}
        return {"success": False, "code": self.code.value, "message": self.message}


__all__ = ["ErrorCode", "Result", "SchedulingError"]
