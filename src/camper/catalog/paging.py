"""
Lazy, restartable paged result sequences.

A PagedResults wraps a page fetcher (cursor -> Page) and accumulates items as
the caller asks for more. Fetches for one sequence are applied strictly in
request order; a restart() discards any page still in flight for the old
generation.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar

from camper.catalog.models import Page
from camper.utils.exceptions import NetworkError, ParseError

logger = logging.getLogger(__name__)

T = TypeVar('T')


class PagedResults(Generic[T]):
    """
    Caller-driven sequence of pages.

    Content errors never escape next_page(): a NetworkError or ParseError is
    recorded on .error and the call returns no items, so a browsing view
    degrades to what it already has. AuthExpired does propagate, since the
    caller has to re-trigger login rather than retry.
    """

    def __init__(self, fetch: Callable[[Any], Awaitable[Page[T]]], first_cursor: Any = None,
                 label: str = "results"):
        self._fetch = fetch
        self._first_cursor = first_cursor
        self.label = label

        self._lock = asyncio.Lock()
        self._generation = 0
        self._cursor = first_cursor
        self._exhausted = False
        self._items: List[T] = []
        self.pages_fetched = 0
        self.skipped = 0
        self.error: Optional[Exception] = None

    @property
    def items(self) -> List[T]:
        """Snapshot of everything fetched so far, in page order."""
        return list(self._items)

    @property
    def has_more(self) -> bool:
        return not self._exhausted

    def __len__(self) -> int:
        return len(self._items)

    def restart(self):
        """Drop fetched pages and start again from the first cursor."""
        self._generation += 1
        self._cursor = self._first_cursor
        self._exhausted = False
        self._items = []
        self.pages_fetched = 0
        self.skipped = 0
        self.error = None
        logger.debug(f"[CATALOG] {self.label}: restarted")

    async def next_page(self) -> List[T]:
        """
        Fetch and append the next page.

        Returns:
            List of the newly fetched items (empty at the end or on error)
        """
        generation = self._generation
        async with self._lock:
            if generation != self._generation or self._exhausted:
                return []

            cursor = self._cursor
            try:
                page = await self._fetch(cursor)
            except (NetworkError, ParseError) as e:
                if generation == self._generation:
                    self.error = e
                logger.warning(f"[CATALOG] {self.label}: page {cursor!r} failed: {e.message}")
                return []

            if generation != self._generation:
                logger.debug(f"[CATALOG] {self.label}: discarding page {cursor!r} from before restart")
                return []

            self.error = None
            self._items.extend(page.items)
            self.pages_fetched += 1
            self.skipped += page.skipped
            self._cursor = page.next_cursor
            self._exhausted = not page.has_more
            return list(page.items)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        while self.has_more:
            items = await self.next_page()
            if self.error is not None:
                break
            for item in items:
                yield item
