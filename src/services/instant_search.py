# src/services/instant_search.py

"""Debounced type-ahead search on top of the coordinator."""

import asyncio
import logging

from src.config.settings import Settings
from src.models.search import SearchOutcome, SearchRequest
from src.services.search_coordinator import SearchCoordinator

logger = logging.getLogger("aggregator.instant_search")


class InstantSearch:
    """Runs only the latest of a burst of rapidly issued searches.

    Each :meth:`submit` waits ``debounce`` seconds before dispatching.
    A newer submission cancels the pending one, whose caller gets
    ``None`` back instead of an outcome.
    """

    def __init__(
        self,
        coordinator: SearchCoordinator,
        debounce: float | None = None,
    ) -> None:
        self.coordinator = coordinator
        self.debounce = (
            debounce
            if debounce is not None
            else Settings.INSTANT_SEARCH_DEBOUNCE
        )
        self._pending: asyncio.Task[SearchOutcome] | None = None

    async def _run(self, request: SearchRequest) -> SearchOutcome:
        await asyncio.sleep(self.debounce)
        return await self.coordinator.search(request)

    async def submit(self, request: SearchRequest) -> SearchOutcome | None:
        """Debounce, then search; ``None`` if superseded meanwhile."""
        previous = self._pending
        if previous is not None and not previous.done():
            previous.cancel()
            logger.debug("Superseded pending search")

        task = asyncio.create_task(self._run(request))
        self._pending = task
        try:
            return await task
        except asyncio.CancelledError:
            if self._pending is not task and task.cancelled():
                return None
            raise
        finally:
            if self._pending is task:
                self._pending = None

    def cancel(self) -> None:
        """Drop whatever search is waiting or running."""
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
