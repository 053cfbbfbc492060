"""Incremental sync: discover codes, plan, validate, crawl, persist, export."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from unitsync.config import AppConfig
from unitsync.core.context import RunContext
from unitsync.core.identifiers import extract_identifiers_from_workbook
from unitsync.core.planner import SyncPlan, plan_sync
from unitsync.export import export_workbook
from unitsync.scrape.crawler import CrawlScheduler, CrawlSummary
from unitsync.scrape.fetcher import FetchEngine, PageCache
from unitsync.storage.outcome_store import OutcomeStore

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """What one run did."""

    plan: SyncPlan
    valid: List[str] = field(default_factory=list)
    invalid: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    export_path: Optional[Path] = None

    @property
    def total_checked(self) -> int:
        return len(self.plan.work_queue)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def summary(self) -> Dict[str, int]:
        return {
            "total_checked": self.total_checked,
            "valid": len(self.valid),
            "invalid": len(self.invalid),
            "errors": len(self.errors),
        }


class SyncRunner:
    """Runs one incremental sync against the configured data directory."""

    def __init__(self, config: AppConfig, context: Optional[RunContext] = None, fetcher=None):
        """
        Initialize sync runner.

        Args:
            config: Application configuration
            context: Run context (created from config if None)
            fetcher: Fetcher to use instead of a Playwright FetchEngine
        """
        self.config = config
        self.context = context or RunContext(config=config)
        self._fetcher = fetcher
        self.store = OutcomeStore(config.sync.data_dir, self.context)

    def requested_codes(self) -> List[str]:
        """Read candidate codes from the configured input workbook."""
        sync = self.config.sync
        if sync.input_path is None:
            return []
        return extract_identifiers_from_workbook(sync.input_path, column=sync.input_column)

    async def plan(self, codes: Optional[Iterable[str]] = None) -> SyncPlan:
        if not self.store.loaded:
            await self.store.load()
        requested = list(codes) if codes is not None else self.requested_codes()
        plan = plan_sync(requested, self.store.snapshot(), max_retries=self.config.sync.max_retries)
        logger.info(
            f"Plan: {len(plan.present)} present, {len(plan.invalid)} invalid, {len(plan.exhausted)} exhausted, "
            f"{len(plan.retry)} retry, {len(plan.new)} new"
        )
        return plan

    async def run(self, codes: Optional[Iterable[str]] = None) -> SyncResult:
        """
        Execute a full incremental run.

        Args:
            codes: Codes to sync; read from the input workbook when None

        Returns:
            SyncResult with this run's valid/invalid/error codes

        Raises:
            InputUnavailableError: The input workbook cannot be read
            BrowserLaunchError: The rendering session could not start
        """
        sync = self.config.sync
        plan = await self.plan(codes)
        result = SyncResult(plan=plan)

        queue = plan.work_queue
        if queue:
            fetcher = PageCache(self._fetcher or FetchEngine(self.config.scrape, self.context))
            try:
                summaries: List[CrawlSummary] = []
                to_crawl = queue
                if sync.validate_first:
                    validator = CrawlScheduler(
                        fetcher, self.store, self.context, concurrency=sync.validate_concurrency
                    )
                    validation = await validator.validate(queue)
                    summaries.append(validation)
                    to_crawl = validation.succeeded

                crawler = CrawlScheduler(fetcher, self.store, self.context, concurrency=sync.concurrency)
                crawl = await crawler.crawl(to_crawl, close_after=False)
                summaries.append(crawl)
            finally:
                await fetcher.close()

            result.valid = list(crawl.succeeded)
            for summary in summaries:
                result.invalid.extend(summary.invalid)
                result.errors.extend(summary.errors)
        else:
            logger.info("Nothing to fetch; corpus is up to date")

        await self.store.save_classification_log(result.summary())

        if sync.output_excel is not None:
            result.export_path = export_workbook(self.store.iter_records(), sync.output_excel)

        logger.info(
            f"Sync complete: {len(result.valid)} valid, {len(result.invalid)} invalid, {len(result.errors)} errors"
        )
        return result


async def run_sync(config: AppConfig, codes: Optional[Iterable[str]] = None, fetcher=None) -> SyncResult:
    """Convenience wrapper: build a runner and execute one sync."""
    context = RunContext.create(config)
    try:
        return await SyncRunner(config, context, fetcher=fetcher).run(codes)
    finally:
        context.close()
