"""List unit codes found in a workbook."""

from pathlib import Path
from typing import Optional

import click

from unitsync.cli.options import fail
from unitsync.core.errors import InputUnavailableError
from unitsync.core.identifiers import extract_identifiers_from_workbook


@click.command()
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--column", default=None, help="Only scan cells under this header")
def codes(path: Path, column: Optional[str]):
    """Print the candidate unit codes in a workbook, one per line."""
    try:
        found = extract_identifiers_from_workbook(path, column=column)
    except InputUnavailableError as e:
        fail(e.message)

    for code in found:
        click.echo(code)
    click.echo(f"{len(found)} codes", err=True)
