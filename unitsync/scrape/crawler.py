"""Bounded-concurrency crawl over a list of unit codes."""

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from unitsync.core.constants import ITEM_JITTER_MAX, ITEM_JITTER_MIN, MAX_CONCURRENCY, unit_url
from unitsync.core.context import RunContext
from unitsync.core.errors import BrowserLaunchError
from unitsync.core.models import CompetencyRecord, Invalid
from unitsync.storage.outcome_store import OutcomeStore

from .extractor import check_unit_page, parse_unit_html

logger = logging.getLogger(__name__)

MAX_LOGGED_FAILURES = 10


@dataclass
class CrawlFailure:
    code: str
    url: str
    message: str
    invalid: bool = False


@dataclass
class CrawlSummary:
    """Outcome counts for one pass over the queue."""

    targets: int = 0
    succeeded: List[str] = field(default_factory=list)
    failures: List[CrawlFailure] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def invalid(self) -> List[str]:
        return [f.code for f in self.failures if f.invalid]

    @property
    def errors(self) -> List[str]:
        return [f.code for f in self.failures if not f.invalid]

    @property
    def average(self) -> float:
        return self.elapsed / len(self.succeeded) if self.succeeded else 0.0

    def log(self, label: str = "Crawl") -> None:
        logger.info(
            f"{label} Summary targets={self.targets} ok={len(self.succeeded)} fail={self.failed} "
            f"total={self.elapsed:.1f}s avg={self.average:.1f}s"
        )
        for failure in self.failures[:MAX_LOGGED_FAILURES]:
            logger.info(f"Fail {failure.code} {failure.url} :: {failure.message}")
        if self.failed > MAX_LOGGED_FAILURES:
            logger.info(f"(and {self.failed - MAX_LOGGED_FAILURES} more failures)")


class CrawlScheduler:
    """Worker pool that fetches, validates, extracts and persists units.

    Workers share one queue through an integer cursor. Claiming an index is a
    read and an increment with no await in between, so no lock is needed.
    """

    def __init__(
        self,
        fetcher,
        store: OutcomeStore,
        context: Optional[RunContext] = None,
        concurrency: int = 3,
        jitter: Tuple[float, float] = (ITEM_JITTER_MIN, ITEM_JITTER_MAX),
        url_for: Callable[[str], str] = unit_url,
    ):
        """
        Initialize crawl scheduler.

        Args:
            fetcher: FetchEngine or PageCache (anything with async fetch/close)
            store: Outcome store receiving every result
            context: Run context
            concurrency: Worker count, clamped to 1..5
            jitter: Bounds of the random pause after each successful item (seconds)
            url_for: Maps a unit code to its detail-page URL
        """
        self.fetcher = fetcher
        self.store = store
        self.context = context or RunContext()
        self.concurrency = max(1, min(MAX_CONCURRENCY, concurrency))
        self.jitter = jitter
        self.url_for = url_for

    async def _pause(self) -> None:
        low, high = self.jitter
        if high > 0:
            await asyncio.sleep(random.uniform(low, high))

    async def _run_pool(self, codes: List[str], handle, close_after: bool) -> CrawlSummary:
        queue = list(dict.fromkeys(codes))
        summary = CrawlSummary(targets=len(queue))
        cursor = 0
        start = time.monotonic()

        async def worker() -> None:
            nonlocal cursor
            while True:
                i = cursor
                cursor += 1
                if i >= len(queue):
                    return
                code = queue[i]
                url = self.url_for(code)
                try:
                    await handle(code, url)
                except BrowserLaunchError:
                    raise
                except Exception as e:
                    outcome = await self.store.record_failure(code, e)
                    message = self.context.classifier.describe(e)
                    kind = self.context.classifier.classify(e).value
                    logger.warning(f"Fail {kind} {code} -> {message}")
                    summary.failures.append(
                        CrawlFailure(code=code, url=url, message=message, invalid=isinstance(outcome, Invalid))
                    )
                    continue
                summary.succeeded.append(code)
                await self._pause()

        workers = min(self.concurrency, len(queue)) or 1
        tasks = [asyncio.ensure_future(worker()) for _ in range(workers)]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        finally:
            if close_after:
                await self.fetcher.close()
            summary.elapsed = time.monotonic() - start

        return summary

    async def crawl(self, codes: Iterable[str], close_after: bool = True) -> CrawlSummary:
        """
        Fetch, validate, extract and persist every code.

        One unit's failure is recorded in the store and never stops the pool.
        The fetcher is closed once all workers finish, unless close_after is False.

        Raises:
            BrowserLaunchError: The rendering session could not start
        """
        async def handle(code: str, url: str) -> CompetencyRecord:
            html = await self.fetcher.fetch(url)
            check_unit_page(html, code)
            record = parse_unit_html(html, url)
            await self.store.record_success(record)
            logger.info(f"Saved {record.code} ({len(record.elements)} elements)")
            return record

        summary = await self._run_pool(list(codes), handle, close_after)
        summary.log("Crawl")
        return summary

    async def validate(self, codes: Iterable[str], close_after: bool = False) -> CrawlSummary:
        """Check that each code has a unit page without extracting it.

        Failures are recorded in the store like crawl failures. With a
        PageCache fetcher the rendered pages are kept for the following crawl.
        """
        async def handle(code: str, url: str) -> None:
            html = await self.fetcher.fetch(url)
            check_unit_page(html, code)

        summary = await self._run_pool(list(codes), handle, close_after)
        summary.log("Validation")
        return summary
