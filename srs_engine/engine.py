"""The scheduling engine facade.

:class:`SchedulingEngine` wires validation, the middleware pipeline, the
result cache, the active strategy, telemetry and the event bus into the
public API. Each call is self-contained: the only changes that outlive a
call are algorithm switches and adaptations, and both replace the whole
config.
"""

from __future__ import annotations

import asyncio
import random
import time
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import structlog

from srs_engine.adaptive import AdaptationPolicy, tune
from srs_engine.cache import LRUCache
from srs_engine.config import AlgorithmType, EngineConfig
from srs_engine.events import EventBus, EventName, EventType, Listener
from srs_engine.middleware import Middleware, MiddlewareContext, MiddlewarePipeline
from srs_engine.result import ErrorCode, Result
from srs_engine.snapshot import VERSION, build_snapshot, default_telemetry, parse_snapshot
from srs_engine.state import ScheduleOutcome, SchedulingState, ensure_utc, format_datetime, parse_datetime, read_field
from srs_engine.strategies import Strategy, StrategyRegistry
from srs_engine.validation import validate

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]
BatchItem = Union[Tuple[int, Any], Mapping[str, Any]]


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def cache_key(quality: int, state: SchedulingState) -> str:
    """``quality_repetition_ease_interval`` followed by the remaining inputs.

    Lapses, duration and history shape the returned state too, so two items
    differing only there must not share an entry.
    """

    history = ",".join(str(q) for q in state.review_history)
    return (
        f"{quality}_{state.repetition}_{state.ease_factor}_{state.interval}"
        f"_{state.lapses}_{state.last_duration}_{history}"
    )


class SchedulingEngine:
    """Computes the next review schedule for learning items."""

    def __init__(
        self,
        config: Union[EngineConfig, Mapping[str, Any], None] = None,
        *,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        registry: Optional[StrategyRegistry] = None,
        policy: Optional[AdaptationPolicy] = None,
    ) -> None:
        if config is None:
            config = EngineConfig()
        elif not isinstance(config, EngineConfig):
            config = EngineConfig.from_mapping(config)

        self._registry = registry or StrategyRegistry.default()
        strategy = self._registry.get(config.algorithm)
        if strategy is None:
            raise ValueError(f"Strategy not found for algorithm: {config.algorithm.value}")

        self._config = config
        self._strategy: Strategy = strategy
        self._generation = 0
        self._config_lock = Lock()
        self._clock: Clock = clock or _utc_now
        self._rng = rng or random.Random()
        self._policy = policy or AdaptationPolicy()
        self._cache: LRUCache[str, ScheduleOutcome] = LRUCache(config.cache_size)
        self._events = EventBus()
        self._pipeline = MiddlewarePipeline(self._events)
        self._plugins: Dict[str, Any] = {}
        self._telemetry = self._fresh_telemetry()
        self._telemetry_lock = Lock()
        self._active_calls = 0
        self._status_lock = Lock()

        self._emit(EventType.ENGINE_INITIALIZED, {"algorithm": config.algorithm.value, "version": VERSION})

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def strategy(self) -> Strategy:
        return self._strategy

    @property
    def status(self) -> str:
        """``"computing"`` while any call is in flight, otherwise ``"idle"``."""
        with self._status_lock:
            return "computing" if self._active_calls else "idle"

    @property
    def events(self) -> EventBus:
        return self._events

    def _active(self) -> Tuple[EngineConfig, Strategy, int]:
        with self._config_lock:
            return self._config, self._strategy, self._generation

    def _replace_active(self, config: EngineConfig, strategy: Strategy) -> None:
        """Install a new config and strategy. Callers hold ``_config_lock``."""
        self._config = config
        self._strategy = strategy
        self._generation += 1
        self._cache.clear()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    def calculate(
        self,
        quality: int,
        state: Union[SchedulingState, Mapping[str, Any]],
        *,
        reviewed_at: Optional[datetime] = None,
    ) -> Result[ScheduleOutcome]:
        """Schedule the next review of an item answered with *quality*.

        When *reviewed_at* is given the returned state carries it as
        ``last_review_date`` and ``next_review`` is set *interval* days later.
        """

        started = time.perf_counter()
        config, strategy, generation = self._active()

        checked = validate(quality, state, max_interval=config.max_interval, accepted=strategy.quality_range)
        if not checked.success:
            logger.debug("validation_failed", code=checked.code.value, message=checked.message)
            self._emit(EventType.ERROR, checked)
            return checked

        self._enter()
        try:
            context = MiddlewareContext(
                quality=quality,
                state=SchedulingState.coerce(state),
                config=config,
                extra={"started": started},
            )
            context = self._pipeline.run_before(context)

            # Keys ignore config, so a hook-supplied config bypasses the cache.
            cacheable = context.config is config
            key = cache_key(context.quality, context.state)
            cached = self._cache_get(key, generation) if cacheable else None
            if cached is not None:
                self._track_cache(hit=True)
                self._emit(EventType.CACHE_HIT, {"cache_key": key})
                return Result.ok(self._stamp(cached, reviewed_at))
            self._track_cache(hit=False)

            outcome = strategy.calculate(context.quality, context.state, context.config, rng=self._rng)
            outcome = self._pipeline.run_after(outcome, context)

            if cacheable:
                self._cache_set(key, outcome, generation)
            self._track_review(context.quality, outcome)
            self._emit(
                EventType.CARD_REVIEWED,
                {
                    "quality": context.quality,
                    "outcome": outcome,
                    "duration": time.perf_counter() - started,
                    "algorithm": config.algorithm.value,
                },
            )
            return Result.ok(self._stamp(outcome, reviewed_at))
        except Exception as exc:
            logger.exception("strategy_failed", algorithm=config.algorithm.value)
            failure = Result.fail(ErrorCode.ALGORITHM_NOT_FOUND, str(exc) or type(exc).__name__)
            self._emit(EventType.ERROR, failure)
            return failure
        finally:
            self._leave()

    def calculate_batch(self, items: Iterable[BatchItem], *, parallel: bool = False) -> List[Result[ScheduleOutcome]]:
        """Run :meth:`calculate` over *items*, keeping their order.

        Each item is a ``(quality, state)`` pair or a mapping with ``quality``
        and ``state`` keys. With *parallel* the calls fan out over worker
        threads. Malformed items yield an ``INVALID_DATA`` failure in their
        slot.
        """

        pairs = [self._unpack(item) for item in items]
        if parallel:
            return asyncio.run(self._gather(pairs))
        return [self._calculate_pair(pair) for pair in pairs]

    async def calculate_batch_async(self, items: Iterable[BatchItem]) -> List[Result[ScheduleOutcome]]:
        return await self._gather([self._unpack(item) for item in items])

    async def _gather(self, pairs: Sequence[Optional[Tuple[Any, Any]]]) -> List[Result[ScheduleOutcome]]:
        tasks = [asyncio.to_thread(self._calculate_pair, pair) for pair in pairs]
        return list(await asyncio.gather(*tasks))

    def _calculate_pair(self, pair: Optional[Tuple[Any, Any]]) -> Result[ScheduleOutcome]:
        if pair is None:
            failure = Result.fail(ErrorCode.INVALID_DATA, "Batch item must be a (quality, state) pair or a mapping")
            self._emit(EventType.ERROR, failure)
            return failure
        quality, state = pair
        return self.calculate(quality, state)

    @staticmethod
    def _unpack(item: Any) -> Optional[Tuple[Any, Any]]:
        if isinstance(item, Mapping):
            state = item.get("state", item.get("data"))
            return item.get("quality"), state
        if isinstance(item, Sequence) and not isinstance(item, (str, bytes)) and len(item) == 2:
            quality, state = item
            return quality, state
        return None

    # ------------------------------------------------------------------
    # Configuration changes
    # ------------------------------------------------------------------
    def switch_algorithm(self, name: Union[AlgorithmType, str]) -> Result[EngineConfig]:
        try:
            algorithm = AlgorithmType.parse(name)
        except ValueError:
            algorithm = None
        strategy = self._registry.get(algorithm) if algorithm is not None else None
        if strategy is None:
            failure = Result.fail(ErrorCode.ALGORITHM_NOT_FOUND, f"Algorithm {name!r} not found")
            self._emit(EventType.ERROR, failure)
            return failure

        with self._config_lock:
            previous = self._config.algorithm
            config = self._config.replace(algorithm=algorithm)
            self._replace_active(config, strategy)
        logger.info("algorithm_switched", previous=previous.value, algorithm=algorithm.value)
        self._emit(EventType.ALGORITHM_CHANGED, {"algorithm": algorithm.value, "previous": previous.value})
        return Result.ok(config)

    def adapt_to_user(self, history: Sequence[int]) -> "SchedulingEngine":
        """Retune coefficients from the learner's quality *history*.

        Histories shorter than the policy minimum leave the engine unchanged.
        """

        with self._config_lock:
            adaptation = tune(history, self._config, self._policy)
            if adaptation is None:
                return self
            self._replace_active(adaptation.new_config, self._strategy)
        logger.info(
            "parameters_adapted",
            average_quality=round(adaptation.average_quality, 2),
            failure_rate=round(adaptation.failure_rate, 2),
        )
        self._emit(EventType.PARAMETERS_ADAPTED, adaptation.to_dict())
        return self

    def use(self, middleware: Union[Middleware, Mapping[str, Any], Any]) -> "SchedulingEngine":
        self._pipeline.add(middleware)
        return self

    def register_plugin(self, name: str, plugin: Any) -> "SchedulingEngine":
        self._plugins[name] = plugin
        on_register = getattr(plugin, "on_register", None)
        if callable(on_register):
            on_register(self)
        return self

    def get_plugin(self, name: str) -> Any:
        return self._plugins.get(name)

    # ------------------------------------------------------------------
    # Cards and dates
    # ------------------------------------------------------------------
    def reset_card(self, partial: Union[SchedulingState, Mapping[str, Any], None] = None) -> SchedulingState:
        """Fresh default state, with any fields in *partial* applied on top."""

        state = SchedulingState.coerce(partial) if partial else SchedulingState()
        if state.last_review_date is None:
            state = state.replace(last_review_date=self._clock())
        self._emit(EventType.CARD_RESET, {"state": state})
        return state

    def is_due(self, state: Union[SchedulingState, Mapping[str, Any], None], now: Optional[datetime] = None) -> bool:
        """Items without a ``next_review`` are always due."""

        if state is None:
            return True
        next_review = parse_datetime(read_field(state, "next_review"))
        if next_review is None:
            return True
        current = ensure_utc(now) if now is not None else ensure_utc(self._clock())
        return next_review <= current

    def get_next_review_date(self, interval_days: float, from_: Optional[datetime] = None) -> datetime:
        start = ensure_utc(from_) if from_ is not None else ensure_utc(self._clock())
        return start + timedelta(days=interval_days)

    def _stamp(self, outcome: ScheduleOutcome, reviewed_at: Optional[datetime]) -> ScheduleOutcome:
        if reviewed_at is None:
            return outcome
        reviewed_at = ensure_utc(reviewed_at)
        state = outcome.state.replace(
            last_review_date=reviewed_at,
            next_review=self.get_next_review_date(outcome.state.interval, reviewed_at),
        )
        return outcome.replace(state=state)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def on(self, event: EventName, listener: Listener) -> Callable[[], None]:
        return self._events.on(event, listener)

    def off(self, event: EventName, listener: Listener) -> None:
        self._events.off(event, listener)

    def _emit(self, event: EventType, data: Any) -> None:
        self._events.emit(event, data)

    # ------------------------------------------------------------------
    # Cache and telemetry
    # ------------------------------------------------------------------
    def clear_cache(self) -> None:
        self._cache.clear()
        self._emit(EventType.CACHE_CLEARED, {"timestamp": format_datetime(self._clock())})

    def cache_info(self):
        return self._cache.info()

    def _cache_get(self, key: str, generation: int) -> Optional[ScheduleOutcome]:
        try:
            with self._config_lock:
                if generation != self._generation:
                    return None
                return self._cache.get(key)
        except Exception as exc:
            self._report_cache_error("get", exc)
            return None

    def _cache_set(self, key: str, outcome: ScheduleOutcome, generation: int) -> None:
        # A result computed under a replaced config must not outlive the switch.
        try:
            with self._config_lock:
                if generation != self._generation:
                    return
                self._cache.set(key, outcome)
        except Exception as exc:
            self._report_cache_error("set", exc)

    def _report_cache_error(self, operation: str, exc: Exception) -> None:
        logger.warning("cache_failed", operation=operation, error=str(exc))
        self._emit(EventType.ERROR, Result.fail(ErrorCode.CACHE_ERROR, f"Cache {operation} failed: {exc}"))

    def _fresh_telemetry(self) -> Dict[str, Any]:
        telemetry = default_telemetry()
        telemetry["last_reset"] = format_datetime(self._clock())
        return telemetry

    def _track_cache(self, *, hit: bool) -> None:
        if not self._config.enable_telemetry:
            return
        with self._telemetry_lock:
            self._telemetry["cache_hits" if hit else "cache_misses"] += 1

    def _track_review(self, quality: int, outcome: ScheduleOutcome) -> None:
        if not self._config.enable_telemetry:
            return
        with self._telemetry_lock:
            telemetry = self._telemetry
            telemetry["total_reviews"] += 1
            total = telemetry["total_reviews"]
            if 0 <= quality < len(telemetry["quality_distribution"]):
                telemetry["quality_distribution"][quality] += 1
            telemetry["average_ease"] = (
                telemetry["average_ease"] * (total - 1) + outcome.state.ease_factor
            ) / total
            telemetry["average_interval"] = (
                telemetry["average_interval"] * (total - 1) + outcome.state.interval
            ) / total

    def get_metrics(self) -> Dict[str, Any]:
        with self._telemetry_lock:
            telemetry = dict(self._telemetry)
            telemetry["quality_distribution"] = list(self._telemetry["quality_distribution"])
        info = self._cache.info()
        telemetry.update(
            {
                "cache_size": info.currsize,
                "cache_info": info._asdict(),
                "algorithm": self._config.algorithm.value,
                "strategy": self._strategy.name,
                "middleware_count": len(self._pipeline),
                "plugin_count": len(self._plugins),
                "status": self.status,
            }
        )
        return telemetry

    def _enter(self) -> None:
        with self._status_lock:
            self._active_calls += 1

    def _leave(self) -> None:
        with self._status_lock:
            self._active_calls -= 1

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    def to_snapshot(self) -> Dict[str, Any]:
        with self._telemetry_lock:
            telemetry = dict(self._telemetry)
        return build_snapshot(
            self._config,
            telemetry,
            self._cache.entries(),
            self._strategy.name,
            now=self._clock(),
        )

    @classmethod
    def from_snapshot(
        cls,
        data: Any,
        *,
        allow_unknown_version: bool = False,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
    ) -> Result["SchedulingEngine"]:
        """Rebuild an engine from :meth:`to_snapshot` output, migrating old formats."""

        parsed = parse_snapshot(data, allow_unknown_version=allow_unknown_version)
        if not parsed.success:
            logger.warning("snapshot_restore_failed", message=parsed.message)
            return parsed
        config, telemetry, entries = parsed.value  # type: ignore[misc]

        try:
            engine = cls(config, clock=clock, rng=rng)
        except ValueError as exc:
            return Result.fail(ErrorCode.MIGRATION_ERROR, str(exc))
        engine._telemetry.update(telemetry)
        for key, outcome in entries:
            engine._cache.set(key, outcome)
        logger.info("snapshot_restored", algorithm=config.algorithm.value, cache_entries=len(entries))
        return Result.ok(engine)

    def __repr__(self) -> str:
        return f"<SchedulingEngine algorithm={self._config.algorithm.value} status={self.status}>"


__all__ = ["SchedulingEngine", "cache_key"]
