"""Direct scrape of specific units."""

import asyncio
import sys
from pathlib import Path
from typing import Dict, Optional, Tuple

import click

from unitsync.cli.options import build_config, data_dir_option, fail
from unitsync.config import AppConfig
from unitsync.core.constants import unit_url
from unitsync.core.context import RunContext
from unitsync.core.errors import UnitSyncError
from unitsync.core.identifiers import find_identifiers
from unitsync.scrape.crawler import CrawlScheduler, CrawlSummary
from unitsync.scrape.fetcher import FetchEngine
from unitsync.storage.outcome_store import OutcomeStore


def resolve_targets(targets: Tuple[str, ...]) -> Dict[str, str]:
    """Map each unit code to the URL to fetch.

    Accepts bare codes or detail-page URLs; a URL is keyed by the code found in it.
    """
    resolved: Dict[str, str] = {}
    for target in targets:
        target = target.strip()
        if target.startswith("http://") or target.startswith("https://"):
            codes = find_identifiers(target)
            code = codes[0] if codes else target
            resolved[code] = target
        else:
            code = target.upper()
            resolved[code] = unit_url(code)
    return resolved


async def _scrape(config: AppConfig, urls: Dict[str, str], fetcher=None) -> CrawlSummary:
    context = RunContext.create(config)
    try:
        store = await OutcomeStore(config.sync.data_dir, context).load()
        scheduler = CrawlScheduler(
            fetcher or FetchEngine(config.scrape, context),
            store,
            context,
            concurrency=config.sync.concurrency,
            url_for=lambda code: urls[code],
        )
        summary = await scheduler.crawl(list(urls))
        await store.save_classification_log({
            "total_checked": summary.targets,
            "valid": len(summary.succeeded),
            "invalid": len(summary.invalid),
            "errors": len(summary.errors),
        })
        return summary
    finally:
        context.close()


@click.command()
@click.argument("targets", nargs=-1, required=True)
@data_dir_option
@click.option("--concurrency", type=click.IntRange(1, 5), default=None, help="Crawl workers (1-5)")
def scrape(targets: Tuple[str, ...], data_dir: Optional[Path], concurrency: Optional[int]):
    """Fetch and store specific units, replacing any stored copy.

    Examples:
        unitsync scrape BSBWHS521
        unitsync scrape https://training.gov.au/training/details/MARB027/unitdetails
    """
    config = build_config(data_dir=data_dir, concurrency=concurrency)
    urls = resolve_targets(targets)

    try:
        summary = asyncio.run(_scrape(config, urls))
    except UnitSyncError as e:
        fail(e.message)

    for code in summary.succeeded:
        click.echo(f"Saved {code}")
    for failure in summary.failures:
        label = "invalid" if failure.invalid else "failed"
        click.echo(f"{failure.code} {label}: {failure.message}", err=True)
    if summary.errors:
        sys.exit(1)
