"""Shared CLI options and config assembly."""

from pathlib import Path
from typing import Any, Callable

import click

from unitsync.config import AppConfig, load_config
from unitsync.core.errors import UnitSyncError


def data_dir_option(f: Callable) -> Callable:
    return click.option(
        "--data-dir",
        type=click.Path(file_okay=False, path_type=Path),
        default=None,
        help="Directory holding uoc.jsonl and error-log.json [env: UNITSYNC_DATA_DIR]",
    )(f)


def input_options(f: Callable) -> Callable:
    f = click.option("--column", default=None, help="Only scan cells under this header")(f)
    f = click.option(
        "--input",
        "input_path",
        type=click.Path(dir_okay=False, path_type=Path),
        default=None,
        help="Workbook listing the wanted units [env: UNITSYNC_INPUT]",
    )(f)
    return f


def build_config(**overrides: Any) -> AppConfig:
    """Environment config with CLI overrides applied (None means not given)."""
    try:
        return load_config().with_overrides(**overrides)
    except UnitSyncError as e:
        raise click.BadParameter(e.message)


def fail(message: str) -> None:
    """Print an error and abort with exit code 1."""
    click.echo(f"Error: {message}", err=True)
    raise click.Abort()
