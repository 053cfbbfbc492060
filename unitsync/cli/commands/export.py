"""Workbook export command."""

import asyncio
from pathlib import Path
from typing import Optional

import click

from unitsync.cli.options import build_config, data_dir_option, fail
from unitsync.core.errors import UnitSyncError
from unitsync.export import export_workbook
from unitsync.storage.outcome_store import OutcomeStore


@click.command()
@data_dir_option
@click.option("--output", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Workbook path [env: UNITSYNC_OUTPUT, default: <data-dir>/units.xlsx]")
def export(data_dir: Optional[Path], output: Optional[Path]):
    """Write the stored corpus to an Excel workbook."""
    config = build_config(data_dir=data_dir, output_excel=output)
    target = config.sync.output_excel or config.sync.data_dir / "units.xlsx"

    try:
        store = asyncio.run(OutcomeStore(config.sync.data_dir).load())
    except UnitSyncError as e:
        fail(e.message)

    records = store.iter_records()
    if not records:
        click.echo("Corpus is empty; nothing to export.")
        return

    path = export_workbook(records, target)
    click.echo(f"Exported {len(records)} units to {path}")
