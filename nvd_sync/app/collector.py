"""변경 CVE 식별자 수집(Discovery of changed CVE identifiers)."""
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Optional, Set

from common_lib.errors import FetchError
from common_lib.logger import get_logger

from .models import QueryWindow, WindowKind
from .service import NVDFetcher

logger = get_logger(__name__)


class PageWalker:
    """윈도우 페이지 순회기(Walks one query window page by page until exhausted)."""

    def __init__(self, fetcher: NVDFetcher, results_per_page: Optional[int] = None) -> None:
        self._fetcher = fetcher
        self._results_per_page = results_per_page or fetcher.results_per_page

    async def walk_window(self, window: QueryWindow) -> Set[str]:
        """윈도우 전체 식별자 수집(Collect every identifier touched by the window).

        Stops on the first empty or short page. A fetch error ends the walk
        early and the identifiers gathered so far are returned.
        """

        identifiers: Set[str] = set()
        start_index = 0
        pages = 0

        while True:
            try:
                page = await self._fetcher.fetch_page(window, start_index, self._results_per_page)
            except FetchError as exc:
                logger.error(
                    "Error fetching vulnerabilities for %s at startIndex=%d; returning %d partial ids: %s",
                    window.describe(),
                    start_index,
                    len(identifiers),
                    exc,
                )
                break

            pages += 1
            identifiers.update(page.cve_ids())
            if page.is_last:
                break
            start_index += self._results_per_page

        logger.info("Window %s yielded %d ids over %d pages", window.describe(), len(identifiers), pages)
        return identifiers


class WorkSetCollector:
    """두 윈도우 합집합 수집기(Unions the modified and published windows)."""

    def __init__(self, walker: PageWalker, window_hours: int = 24) -> None:
        self._walker = walker
        self._window_hours = window_hours

    async def collect_work_set(self, reference: datetime) -> Set[str]:
        modified = QueryWindow.trailing(WindowKind.LAST_MODIFIED, reference, self._window_hours)
        published = QueryWindow.trailing(WindowKind.PUBLISHED, reference, self._window_hours)

        modified_ids, published_ids = await asyncio.gather(
            self._walker.walk_window(modified),
            self._walker.walk_window(published),
        )
        work_set = modified_ids | published_ids
        logger.info(
            "Found %d CVEs to process (modified=%d, published=%d, overlap=%d)",
            len(work_set),
            len(modified_ids),
            len(published_ids),
            len(modified_ids & published_ids),
        )
        return work_set
