"""
Search cycle orchestration and trending bookkeeping.

One cycle: query the catalog and publish the movies. For real user searches
with results a background task then bumps the per-term counter and recomputes
the trending list, so a slow store never holds up the search. Bookkeeping is
best effort: any failure there is logged and swallowed so that search keeps
working while the record store is down.
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, List, Optional, Set, Union

from .catalog import CatalogClient
from .config import MAX_TRENDING
from .errors import CatalogUnavailable, MovieTrendsError
from .models import (
    CounterRecord,
    CycleOutcome,
    MovieDetail,
    MovieSummary,
    TrendingEntry,
    ViewState,
    normalize_term,
)
from .store import CounterStore

logger = logging.getLogger(__name__)

Listener = Callable[[ViewState], Union[None, Awaitable[None]]]


class TrendingOrchestrator:
    def __init__(
        self,
        catalog: CatalogClient,
        store: CounterStore,
        image_base_url: str = "https://image.tmdb.org/t/p/w500",
        trending_limit: int = MAX_TRENDING,
    ):
        self.catalog = catalog
        self.store = store
        self.image_base_url = image_base_url
        self.trending_limit = min(trending_limit, MAX_TRENDING)
        self.state = ViewState()
        self._listeners: List[Listener] = []
        self._dispatched_seq = 0
        self._trending_dispatched = 0
        self._trending_applied = 0
        self._tasks: Set[asyncio.Task] = set()

    # --- View state publishing ---
    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def _publish(self, **changes) -> None:
        self.state = self.state.model_copy(update=changes)
        snapshot = self.state.model_copy(deep=True)
        for listener in list(self._listeners):
            try:
                result = listener(snapshot)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.error("View listener failed: %s", exc)

    # --- Search cycle ---
    def is_latest(self, seq: int) -> bool:
        return seq == self._dispatched_seq

    async def run_cycle(self, query: Optional[str]) -> CycleOutcome:
        self._dispatched_seq += 1
        seq = self._dispatched_seq
        term = (query or "").strip()
        outcome = CycleOutcome(seq=seq, query=term)
        await self._publish(loading=True, error_message="")

        try:
            movies: List[MovieSummary] = await (self.catalog.search(term) if term else self.catalog.discover())
        except CatalogUnavailable as exc:
            logger.error("Error fetching movies for '%s': %s", term, exc)
            outcome.error_message = f"Failed to fetch movies: {exc}"
            outcome.stale = not self.is_latest(seq)
            if not outcome.stale:
                await self._publish(loading=False, error_message=outcome.error_message)
            return outcome

        outcome.movies = movies
        outcome.stale = not self.is_latest(seq)
        if outcome.stale:
            logger.debug("Dropping results of cycle %d for '%s', a newer search is running", seq, term)
        else:
            await self._publish(movies=movies, loading=False)

        # The popular listing never counts toward trending
        if term and movies:
            task = asyncio.ensure_future(self._record_and_refresh(term, outcome))
            self._tasks.add(task)
            task.add_done_callback(self._task_done)
        return outcome

    async def _record_and_refresh(self, term: str, outcome: CycleOutcome) -> None:
        outcome.recorded = await self.record_hit(term)
        await self.refresh_trending()

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Trending bookkeeping failed: %s", exc, exc_info=exc)

    async def wait_idle(self) -> None:
        """Wait until every bookkeeping task started so far has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # --- Trending bookkeeping ---
    async def record_hit(self, query: str) -> bool:
        """Upsert the counter for ``query``. Returns False when bookkeeping failed."""
        term = normalize_term(query)
        if not term:
            return False
        try:
            existing = await self.store.find_by_term(term)
            if existing is not None:
                await self.store.increment(existing.id, existing.count + 1, existing.poster_url)
                logger.info("Search count for '%s' is now %d", term, existing.count + 1)
                return True

            detail = MovieDetail.from_summary(await self.catalog.fetch_detail(term))
            await self.store.create(
                CounterRecord(
                    search_term=term,
                    count=1,
                    poster_url=f"{self.image_base_url}{detail.poster_path}",
                    movie_id=detail.id,
                    title=detail.title,
                )
            )
            logger.info("Started counting searches for '%s' (%s)", term, detail.title)
            return True
        except MovieTrendsError as exc:
            logger.warning("Error updating search count for '%s': %s", term, exc)
            return False

    async def refresh_trending(self) -> List[TrendingEntry]:
        self._trending_dispatched += 1
        ticket = self._trending_dispatched
        try:
            records = await self.store.top_n(self.trending_limit)
        except MovieTrendsError as exc:
            logger.error("Error fetching trending movies: %s", exc)
            return self.state.trending

        trending = TrendingEntry.from_records(records)
        # An older refresh that finishes late must not overwrite a newer one
        if ticket > self._trending_applied:
            self._trending_applied = ticket
            await self._publish(trending=trending)
        return trending
