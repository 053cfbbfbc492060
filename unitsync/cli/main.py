"""
unitsync CLI - keep a local corpus of units of competency in sync.

Examples:
    unitsync codes units.xlsx
    unitsync plan --input units.xlsx
    unitsync sync --input units.xlsx --output data/units.xlsx
    unitsync scrape BSBWHS521
    unitsync export --output units.xlsx
"""

import click

from unitsync import __version__
from unitsync.core.context import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="unitsync")
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING... [env: UNITSYNC_LOG_LEVEL]")
def cli(log_level):
    """
    unitsync - incremental scraper for training.gov.au units of competency.
    """
    if log_level:
        setup_logging(log_level)


# Import commands
from unitsync.cli.commands import codes, export, plan, scrape, sync

cli.add_command(sync.sync)
cli.add_command(scrape.scrape)
cli.add_command(plan.plan)
cli.add_command(export.export)
cli.add_command(codes.codes)


def main():
    """Entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
