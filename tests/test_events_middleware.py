import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from srs_engine.config import EngineConfig
from srs_engine.events import EventBus, EventType
from srs_engine.middleware import Middleware, MiddlewareContext, MiddlewarePipeline
from srs_engine.state import ScheduleOutcome, SchedulingMetrics, SchedulingState


def _outcome(interval: int = 6) -> ScheduleOutcome:
    return ScheduleOutcome(
        state=SchedulingState(repetition=2, interval=interval),
        metrics=SchedulingMetrics(retention=0.9, stability=15.0, difficulty=0.1, average_quality=4.0, streak=2),
    )


def _context(quality: int = 4) -> MiddlewareContext:
    return MiddlewareContext(quality=quality, state=SchedulingState(), config=EngineConfig())


def test_failing_listener_does_not_block_others():
    bus = EventBus()
    seen = []

    def broken(event):
        raise RuntimeError("boom")

    bus.on(EventType.CARD_RESET, broken)
    bus.on("card:reset", lambda event: seen.append(event.data))

    bus.emit(EventType.CARD_RESET, {"id": 1})

    assert seen == [{"id": 1}]


def test_unsubscribe_function_removes_listener():
    bus = EventBus()
    seen = []
    unsubscribe = bus.on(EventType.CACHE_CLEARED, seen.append)

    bus.emit(EventType.CACHE_CLEARED)
    unsubscribe()
    bus.emit(EventType.CACHE_CLEARED)

    assert len(seen) == 1
    assert seen[0].type == "cache:cleared"
    assert bus.events() == []


def test_before_hooks_run_in_order():
    pipeline = MiddlewarePipeline(EventBus())
    pipeline.add(Middleware(name="bump", before=lambda ctx: ctx.replace(quality=ctx.quality + 1)))
    pipeline.add({"name": "double", "before": lambda ctx: ctx.replace(quality=ctx.quality * 2)})

    context = pipeline.run_before(_context(quality=1))

    assert context.quality == 4
    assert pipeline.names() == ["bump", "double"]


def test_failing_hook_is_skipped_and_reported():
    bus = EventBus()
    errors = []
    bus.on(EventType.MIDDLEWARE_ERROR, lambda event: errors.append(event.data))
    pipeline = MiddlewarePipeline(bus)

    def explode(outcome, context):
        raise ValueError("bad hook")

    pipeline.add({"after": explode})
    pipeline.add({"name": "cap", "after": lambda outcome, ctx: outcome.replace(state=outcome.state.replace(interval=3))})

    result = pipeline.run_after(_outcome(), _context())

    assert result.state.interval == 3
    assert len(errors) == 1
    assert errors[0]["middleware"] == "middleware_0"
    assert errors[0]["stage"] == "after"


def test_hook_returning_wrong_type_keeps_previous_value():
    bus = EventBus()
    errors = []
    bus.on(EventType.MIDDLEWARE_ERROR, errors.append)
    pipeline = MiddlewarePipeline(bus)
    pipeline.add({"name": "sloppy", "before": lambda ctx: None})

    context = _context(quality=2)

    assert pipeline.run_before(context) is context
    assert len(errors) == 1


def test_object_with_hook_methods_is_accepted():
    class Annotate:
        name = "annotate"

        def after(self, outcome, context):
            return outcome.replace(state=outcome.state.replace(lapses=9))

    pipeline = MiddlewarePipeline(EventBus())
    pipeline.add(Annotate())

    assert pipeline.run_after(_outcome(), _context()).state.lapses == 9
