"""Show what a sync would do without fetching."""

import asyncio
import json
from pathlib import Path
from typing import Optional

import click

from unitsync.cli.options import build_config, data_dir_option, fail, input_options
from unitsync.core.errors import UnitSyncError
from unitsync.sync import SyncRunner


@click.command()
@input_options
@data_dir_option
@click.option("--max-retries", type=click.IntRange(min=1), default=None)
@click.option("--json", "as_json", is_flag=True, help="Print the plan as JSON")
def plan(
    input_path: Optional[Path],
    column: Optional[str],
    data_dir: Optional[Path],
    max_retries: Optional[int],
    as_json: bool,
):
    """Classify workbook units as skip, retry or new."""
    config = build_config(input_path=input_path, input_column=column, data_dir=data_dir, max_retries=max_retries)
    if config.sync.input_path is None:
        fail("No input workbook; pass --input or set UNITSYNC_INPUT")

    try:
        result = asyncio.run(SyncRunner(config).plan())
    except UnitSyncError as e:
        if as_json:
            click.echo(json.dumps(e.to_dict(), indent=2))
        fail(e.message)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.echo(f"Skip:  {len(result.skip)} (present {len(result.present)}, invalid {len(result.invalid)}, "
               f"exhausted {len(result.exhausted)})")
    click.echo(f"Retry: {len(result.retry)}")
    for code in result.retry:
        click.echo(f"  {code}")
    click.echo(f"New:   {len(result.new)}")
    for code in result.new:
        click.echo(f"  {code}")
