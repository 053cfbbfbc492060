"""Incremental sync command."""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click

from unitsync.cli.options import build_config, data_dir_option, fail, input_options
from unitsync.core.errors import UnitSyncError
from unitsync.sync import SyncResult, run_sync


def print_result(result: SyncResult) -> None:
    plan = result.plan
    click.echo("\n" + "=" * 60)
    click.echo("  Sync Results")
    click.echo("=" * 60 + "\n")
    click.echo(f"Requested:         {plan.total}")
    click.echo(f"Already present:   {len(plan.present)}")
    click.echo(f"Known invalid:     {len(plan.invalid)}")
    if plan.exhausted:
        click.echo(f"Retries exhausted: {len(plan.exhausted)}")
    click.echo(f"Checked this run:  {result.total_checked}")
    click.echo(f"  Valid:           {len(result.valid)}")
    if result.invalid:
        click.echo(f"  Invalid (404):   {len(result.invalid)}")
    if result.errors:
        click.echo(f"  Errors:          {len(result.errors)}")
    if result.export_path:
        click.echo(f"\nWorkbook: {result.export_path}")
    click.echo()


@click.command()
@input_options
@data_dir_option
@click.option("--output", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Workbook to write after the run [env: UNITSYNC_OUTPUT]")
@click.option("--max-retries", type=click.IntRange(min=1), default=None,
              help="Runs a failing unit is retried before it is abandoned")
@click.option("--concurrency", type=click.IntRange(1, 5), default=None, help="Crawl workers (1-5)")
@click.option("--no-validate", is_flag=True, help="Skip the page check pass")
@click.option("--no-export", is_flag=True, help="Do not write the workbook")
def sync(
    input_path: Optional[Path],
    column: Optional[str],
    data_dir: Optional[Path],
    output: Optional[Path],
    max_retries: Optional[int],
    concurrency: Optional[int],
    no_validate: bool,
    no_export: bool,
):
    """Sync units listed in a workbook into the corpus.

    Units already in the corpus or known not to exist are skipped; units that
    failed on earlier runs are retried until --max-retries is reached.

    Examples:
        unitsync sync --input units.xlsx
        unitsync sync --input units.xlsx --column "Unit Code" --output out.xlsx
    """
    config = build_config(
        input_path=input_path,
        input_column=column,
        data_dir=data_dir,
        output_excel=output,
        max_retries=max_retries,
        concurrency=concurrency,
        validate_first=False if no_validate else None,
    )
    if no_export:
        config.sync = config.sync.model_copy(update={"output_excel": None})
    if config.sync.input_path is None:
        fail("No input workbook; pass --input or set UNITSYNC_INPUT")

    try:
        result = asyncio.run(run_sync(config))
    except UnitSyncError as e:
        fail(e.message)

    print_result(result)
    if result.has_errors:
        click.echo(f"{len(result.errors)} units failed; run again to retry them.", err=True)
        sys.exit(1)
