"""Cursor walker that turns page fetches into one lazy item sequence.

Supports both QuickBase cursor styles:

- skip-based: ``metadata`` carries ``totalRecords``, ``numRecords`` and
  ``skip``; the next page starts at ``skip + numRecords``.
- token-based: ``metadata`` carries a non-empty ``nextPageToken`` or
  ``nextToken``; the next page is requested with that token.

A page with neither is the last page. Pages are fetched strictly one after
another and only when the consumer asks for more items.
"""

import logging
from contextlib import closing
from typing import Generic, Iterator, List, Optional

from qbclient.domain.models.errors import PaginationProtocolError
from qbclient.domain.models.pagination import (
    Page,
    PageCursor,
    PageFetcher,
    PaginationMetadata,
    PaginationStyle,
    SkipCursor,
    T,
    TokenCursor,
)

logger = logging.getLogger(__name__)


class PaginationIterator(Generic[T]):
    """Walks every page a fetcher can return.

    Each call to `iterate` or `pages` starts an independent walk from
    `start_skip`; the generator it returns is forward-only and can be
    abandoned at any point without leaving state behind.
    """

    def __init__(self, fetcher: PageFetcher, start_skip: int = 0, lock_style: bool = True):
        """Initializes the iterator.

        Args:
            fetcher: Called as ``fetcher(skip, next_token)`` for each page.
            start_skip: Offset of the first page for skip-based endpoints.
            lock_style: Pin the cursor style detected on the first page that
                continues, and raise PaginationProtocolError if a later page
                switches style. When False the style is re-inferred per page.
        """
        if start_skip < 0:
            raise ValueError("start_skip must be non-negative")
        self._fetcher = fetcher
        self.start_skip = start_skip
        self.lock_style = lock_style

    def __iter__(self) -> Iterator[T]:
        return self.iterate()

    def pages(self) -> Iterator[Page[T]]:
        """Yields pages until the cursor is exhausted.

        A fetch error propagates to the consumer and ends the walk.
        """
        cursor: Optional[PageCursor] = SkipCursor(skip=self.start_skip, page_size=0)
        locked = PaginationStyle.NONE
        fetches = 0

        while cursor is not None:
            if isinstance(cursor, TokenCursor):
                page = self._fetcher(0, cursor.token)
            else:
                if fetches:
                    logger.debug(f"Fetching page {fetches + 1} at skip {cursor.skip} (previous page held {cursor.page_size})")
                page = self._fetcher(cursor.skip, "")
            fetches += 1
            yield page

            metadata = page.metadata or PaginationMetadata()
            self._check_style(locked, metadata, fetches)
            cursor = self._next_cursor(cursor, metadata, locked)
            if cursor is not None and self.lock_style and locked is PaginationStyle.NONE:
                locked = PaginationStyle.TOKEN if isinstance(cursor, TokenCursor) else PaginationStyle.SKIP

        logger.debug(f"Pagination finished after {fetches} page(s)")

    def iterate(self) -> Iterator[T]:
        """Yields items across all pages, fetching lazily."""
        for page in self.pages():
            yield from page.items

    def materialize_all(self, limit: Optional[int] = None) -> List[T]:
        """Collects every item, or at most `limit` items when given."""
        if limit is not None:
            return self.materialize_up_to(limit)
        return list(self.iterate())

    def materialize_up_to(self, n: int) -> List[T]:
        """Collects at most `n` items, stopping mid-page if needed.

        No page beyond the one containing the n-th item is fetched.
        """
        if n < 0:
            raise ValueError("n must be non-negative")
        items: List[T] = []
        if n == 0:
            return items
        with closing(self.iterate()) as sequence:
            for item in sequence:
                items.append(item)
                if len(items) >= n:
                    break
        return items

    # --- Cursor logic ---

    @staticmethod
    def _check_style(locked: PaginationStyle, metadata: PaginationMetadata, page_number: int) -> None:
        if locked is PaginationStyle.SKIP:
            if metadata.has_token:
                raise PaginationProtocolError(
                    f"Page {page_number} returned a continuation token after skip-based pagination was detected"
                )
            if not metadata.has_skip_fields:
                raise PaginationProtocolError(
                    f"Page {page_number} is missing skip metadata after skip-based pagination was detected"
                )
        # A token-based walk ends on the first page without a token, whatever else it reports.

    @staticmethod
    def _next_cursor(current: PageCursor, metadata: PaginationMetadata,
                     locked: PaginationStyle) -> Optional[PageCursor]:
        """Returns the cursor for the next page, or None when the walk is over."""
        if metadata.has_token:
            if isinstance(current, TokenCursor) and current.token == metadata.next_token:
                logger.warning("Server repeated the same continuation token; treating as end of results.")
                return None
            return TokenCursor(token=metadata.next_token)

        if locked is PaginationStyle.TOKEN or not metadata.has_skip_fields:
            return None

        returned = metadata.returned_count
        if returned <= 0:
            # Zero-progress page: stop rather than request the same offset forever.
            return None
        next_skip = metadata.skip + returned
        if next_skip >= metadata.total_count:
            return None
        previous_skip = current.skip if isinstance(current, SkipCursor) else -1
        if next_skip <= previous_skip:
            logger.warning(f"Skip cursor would move backwards ({previous_skip} -> {next_skip}); stopping.")
            return None
        return SkipCursor(skip=next_skip, page_size=returned)


class PaginatedRequest(Generic[T]):
    """Fluent wrapper choosing how much of a paged endpoint to fetch.

    Example:

        users = client.get_users()
        first = users.no_paginate()        # one page
        everyone = users.all()             # every page, combined
        some = users.paginate(limit=500)   # stop after 500 items
        for user in users.iterator():      # lazily
            ...
    """

    def __init__(self, fetcher: PageFetcher, auto_paginate: bool = False, lock_style: bool = True):
        self._fetcher = fetcher
        self.auto_paginate = auto_paginate
        self.lock_style = lock_style

    def execute(self) -> Page[T]:
        """All pages when auto-pagination is enabled, otherwise the first page."""
        if self.auto_paginate:
            return self.all()
        return self.no_paginate()

    def all(self) -> Page[T]:
        return self.paginate()

    def paginate(self, limit: Optional[int] = None, skip: int = 0) -> Page[T]:
        """Fetches pages and combines their items into one Page.

        Args:
            limit: Maximum number of items across all pages. None for no limit.
            skip: Starting offset for skip-based endpoints.

        Returns:
            A Page holding the combined items and the last page's metadata.
        """
        if limit is not None and limit < 0:
            raise ValueError("limit must be non-negative")
        items: List[T] = []
        last: Optional[Page[T]] = None
        if limit == 0:
            return Page(items=items)

        walker = PaginationIterator(self._fetcher, start_skip=skip, lock_style=self.lock_style)
        with closing(walker.pages()) as pages:
            for page in pages:
                last = page
                if limit is None:
                    items.extend(page.items)
                    continue
                items.extend(page.items[: limit - len(items)])
                if len(items) >= limit:
                    break

        if last is None:
            return Page(items=items)
        return Page(items=items, metadata=last.metadata, raw=last.raw)

    def no_paginate(self) -> Page[T]:
        """Fetches only the first page."""
        return self._fetcher(0, "")

    def iterator(self) -> Iterator[T]:
        return PaginationIterator(self._fetcher, lock_style=self.lock_style).iterate()
