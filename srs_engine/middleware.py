"""Ordered before/after hooks around strategy execution."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import structlog

from srs_engine.config import EngineConfig
from srs_engine.events import EventBus, EventType
from srs_engine.result import ErrorCode
from srs_engine.state import ScheduleOutcome, SchedulingState

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class MiddlewareContext:
    """Inputs of a single computation as seen by ``before`` hooks."""

    quality: int
    state: SchedulingState
    config: EngineConfig
    extra: Dict[str, Any] = field(default_factory=dict)

    def replace(self, **changes: Any) -> "MiddlewareContext":
        return replace(self, **changes)


BeforeHook = Callable[[MiddlewareContext], MiddlewareContext]
AfterHook = Callable[[ScheduleOutcome, MiddlewareContext], ScheduleOutcome]


@dataclass
class Middleware:
    name: str = ""
    before: Optional[BeforeHook] = None
    after: Optional[AfterHook] = None

    @classmethod
    def coerce(cls, value: Union["Middleware", Mapping[str, Any], Any]) -> "Middleware":
        """Accept a :class:`Middleware`, a mapping, or any object with hook methods."""

        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            return cls(name=value.get("name") or "", before=value.get("before"), after=value.get("after"))
        return cls(
            name=getattr(value, "name", "") or "",
            before=getattr(value, "before", None),
            after=getattr(value, "after", None),
        )


class MiddlewarePipeline:
    """Runs hooks in registration order and isolates their failures.

    A failing hook is reported on the event bus as ``middleware:error`` and
    the pipeline continues with the value it had before that hook.
    """

    def __init__(self, events: EventBus) -> None:
        self._events = events
        self._middlewares: List[Middleware] = []

    def add(self, middleware: Union[Middleware, Mapping[str, Any], Any]) -> Middleware:
        entry = Middleware.coerce(middleware)
        if not entry.name:
            entry.name = f"middleware_{len(self._middlewares)}"
        self._middlewares.append(entry)
        return entry

    def __len__(self) -> int:
        return len(self._middlewares)

    def names(self) -> List[str]:
        return [mw.name for mw in self._middlewares]

    def run_before(self, context: MiddlewareContext) -> MiddlewareContext:
        for mw in self._middlewares:
            if mw.before is None:
                continue
            try:
                updated = mw.before(context)
            except Exception as exc:
                self._report(mw, "before", exc)
                continue
            if isinstance(updated, MiddlewareContext):
                context = updated
            else:
                self._report(mw, "before", TypeError("before hook must return a MiddlewareContext"))
        return context

    def run_after(self, outcome: ScheduleOutcome, context: MiddlewareContext) -> ScheduleOutcome:
        for mw in self._middlewares:
            if mw.after is None:
                continue
            try:
                updated = mw.after(outcome, context)
            except Exception as exc:
                self._report(mw, "after", exc)
                continue
            if isinstance(updated, ScheduleOutcome):
                outcome = updated
            else:
                self._report(mw, "after", TypeError("after hook must return a ScheduleOutcome"))
        return outcome

    def _report(self, mw: Middleware, stage: str, exc: Exception) -> None:
        logger.warning("middleware_failed", middleware=mw.name, stage=stage, error=str(exc))
        self._events.emit(
            EventType.MIDDLEWARE_ERROR,
            {"code": ErrorCode.MIDDLEWARE_ERROR, "middleware": mw.name, "stage": stage, "error": exc},
        )


__all__ = ["Middleware", "MiddlewareContext", "MiddlewarePipeline"]
