"""Health stats hub: the cache and orchestration façade for daily scores.

The hub owns the per-day pipeline:

    fetch metrics + baseline  →  recovery ‖ sleep  →  trends  →  CacheEntry

and publishes each finished entry as one unit. Entries are cached per
calendar day for a TTL (five minutes by default); a fresh entry is
republished without touching the metrics source. Concurrent loads of the
same day share one in-flight task. A load that finishes after the user
has moved to another day still fills the cache but is not published.
Switching days clears ``current`` until the new day is published, and a
failed load of the displayed day leaves it empty; state listeners hear
every LOADING, READY, FAILED and IDLE transition.

The hub is an ordinary object: construct one per process and pass it to
whatever needs it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import date, datetime, timezone
from enum import Enum

from vitalscore.core.config.settings import Settings
from vitalscore.core.storage.models import PersistedScore, ScoreType, day_key
from vitalscore.core.storage.score_history import ScoreHistoryStore
from vitalscore.domains.health.connectors import MetricsSource
from vitalscore.domains.health.domain_logic import calculators
from vitalscore.domains.health.domain_logic.baseline_engine import BaselineEngine, gather_or_cancel
from vitalscore.domains.health.domain_logic.models import CacheEntry
from vitalscore.domains.health.domain_logic.trend_aggregator import TrendAggregator

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0

Subscriber = Callable[[CacheEntry], None]


class LoadState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


StateListener = Callable[[str, LoadState], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthStatsHub:
    """Single entry point for computed daily health stats.

    Usage::

        hub = HealthStatsHub(source, store=store)
        unsubscribe = hub.subscribe(render)
        entry = await hub.load_data(date.today())
        await hub.refresh()
        hub.clear_cache()
    """

    def __init__(
        self,
        source: MetricsSource,
        *,
        baseline_engine: BaselineEngine | None = None,
        trend_aggregator: TrendAggregator | None = None,
        store: ScoreHistoryStore | None = None,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        lookback_days: int = 60,
        trend_days: int = 7,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._source = source
        self._baseline = baseline_engine or BaselineEngine(source)
        self._trends = trend_aggregator or TrendAggregator(source)
        self._store = store
        self._ttl = ttl_seconds
        self._lookback_days = lookback_days
        self._trend_days = trend_days
        self._clock = clock

        self._cache: dict[str, CacheEntry] = {}
        self._states: dict[str, LoadState] = {}
        self._errors: dict[str, BaseException] = {}
        self._in_flight: dict[str, asyncio.Task[CacheEntry | None]] = {}
        self._subscribers: list[Subscriber] = []
        self._state_listeners: list[StateListener] = []
        self._displayed: str | None = None
        self._current: CacheEntry | None = None

    @classmethod
    def from_settings(
        cls,
        source: MetricsSource,
        settings: Settings,
        *,
        store: ScoreHistoryStore | None = None,
    ) -> HealthStatsHub:
        """Build a hub with engines configured from ``Settings``."""
        return cls(
            source,
            baseline_engine=BaselineEngine(
                source,
                min_samples=settings.baseline_min_samples,
                concurrency=settings.fetch_concurrency,
                short_window_days=settings.baseline_short_lookback_days,
            ),
            trend_aggregator=TrendAggregator(source, concurrency=settings.fetch_concurrency),
            store=store,
            ttl_seconds=settings.cache_ttl_seconds,
            lookback_days=settings.baseline_lookback_days,
            trend_days=settings.trend_days,
        )

    # ------------------------------------------------------------------
    # Published state
    # ------------------------------------------------------------------

    @property
    def current(self) -> CacheEntry | None:
        """The entry published for the displayed day; None while it loads or after it fails."""
        return self._current

    @property
    def displayed_date(self) -> str | None:
        return self._displayed

    @property
    def store(self) -> ScoreHistoryStore | None:
        return self._store

    def state(self, day: date | datetime | str) -> LoadState:
        return self._states.get(day_key(day), LoadState.IDLE)

    def last_error(self, day: date | datetime | str) -> BaseException | None:
        return self._errors.get(day_key(day))

    def cached(self, day: date | datetime | str) -> CacheEntry | None:
        return self._cache.get(day_key(day))

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback for published entries. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def subscribe_state(self, callback: StateListener) -> Callable[[], None]:
        """Register a callback for load state changes, called as ``callback(day, state)``."""
        self._state_listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._state_listeners:
                self._state_listeners.remove(callback)

        return _unsubscribe

    def _publish(self, entry: CacheEntry) -> None:
        self._current = entry
        for callback in list(self._subscribers):
            try:
                callback(entry)
            except Exception:
                logger.exception("Subscriber %r failed", callback)

    def _set_state(self, key: str, state: LoadState) -> None:
        self._states[key] = state
        for callback in list(self._state_listeners):
            try:
                callback(key, state)
            except Exception:
                logger.exception("State listener %r failed", callback)

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return (self._clock() - entry.timestamp).total_seconds() <= self._ttl

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load_data(self, day: date | datetime | str) -> CacheEntry | None:
        """Show ``day``: serve it from cache or compute it.

        Returns:
            The entry for ``day``, or None if the pipeline failed (see
            ``state`` and ``last_error``).
        """
        key = day_key(day)
        if key != self._displayed:
            # Never leave another day's scores showing for this one
            self._current = None
        self._displayed = key

        entry = self._cache.get(key)
        if entry is not None and self._is_fresh(entry):
            logger.debug("Cache hit for %s", key)
            self._publish(entry)
            return entry

        return await self._get_or_load(key)

    async def _get_or_load(self, key: str) -> CacheEntry | None:
        entry = self._cache.get(key)
        if entry is not None and self._is_fresh(entry):
            return entry

        task = self._in_flight.get(key)
        if task is None:
            self._set_state(key, LoadState.LOADING)
            task = asyncio.ensure_future(self._run_pipeline(key))
            self._in_flight[key] = task

            def _done(finished: asyncio.Task, k: str = key) -> None:
                if self._in_flight.get(k) is finished:
                    del self._in_flight[k]

            task.add_done_callback(_done)
        else:
            logger.debug("Joining in-flight load for %s", key)

        # A caller that gives up must not cancel the shared computation
        return await asyncio.shield(task)

    async def _run_pipeline(self, key: str) -> CacheEntry | None:
        target = date.fromisoformat(key)
        try:
            metrics, baseline = await gather_or_cancel(
                self._source.fetch(target),
                self._baseline.calculate_baseline(target, self._lookback_days),
            )
            scores = await calculators.calculate_all(target, metrics, baseline)
            trends = await self._trends.trends(target, self._trend_days)
        except Exception as exc:
            logger.exception("Score pipeline failed for %s", key)
            self._errors[key] = exc
            if self._displayed == key:
                self._current = None
            self._set_state(key, LoadState.FAILED)
            return None

        entry = CacheEntry(
            date=target,
            raw_data=metrics,
            baseline=baseline,
            recovery=scores[ScoreType.RECOVERY],
            sleep=scores[ScoreType.SLEEP],
            trends=trends,
            timestamp=self._clock(),
        )
        self._cache[key] = entry
        self._errors.pop(key, None)
        self._set_state(key, LoadState.READY)

        if metrics is None:
            logger.info("No metrics recorded for %s", key)
        if self._displayed == key:
            self._publish(entry)
        else:
            logger.debug("Cached %s without publishing (displayed: %s)", key, self._displayed)
        return entry

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    async def refresh(self) -> CacheEntry | None:
        """Evict and recompute the displayed day."""
        if self._displayed is None:
            return None
        key = self._displayed
        self._cache.pop(key, None)
        if key not in self._in_flight:
            self._set_state(key, LoadState.IDLE)
        logger.info("Refreshing scores for %s", key)
        return await self.load_data(key)

    def clear_cache(self) -> None:
        """Drop every cached entry. In-flight loads still complete."""
        count = len(self._cache)
        self._cache.clear()
        self._errors.clear()
        self._states = {
            key: state for key, state in self._states.items() if key in self._in_flight
        }
        logger.info("Cleared %d cached score entries", count)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def save_scores(
        self,
        day: date | datetime | str,
        *,
        tool_name: str = "",
    ) -> list[PersistedScore]:
        """Persist the computed scores for ``day`` with their baseline snapshot.

        Computes the day first if it is not cached. Days without a score
        are skipped.

        Raises:
            RuntimeError: If the hub has no store.
            PersistenceError: If the store write fails after its retry.
        """
        if self._store is None:
            raise RuntimeError("No score history store configured")

        key = day_key(day)
        entry = await self._get_or_load(key)
        if entry is None:
            return []

        snapshot = entry.baseline.to_dict()
        saved: list[PersistedScore] = []
        for score_type in ScoreType:
            result = entry.result(score_type)
            if result is None:
                continue
            score = PersistedScore(
                date=key,
                score_type=score_type,
                final_score=result.final_score,
                baseline_snapshot=snapshot,
                calculated_at=result.computed_at.isoformat(),
            )
            self._store.upsert(score, tool_name=tool_name)
            saved.append(score)
        return saved
