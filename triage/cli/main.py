"""CLI entry point for the email triage engine."""

import logging

import click
from dotenv import load_dotenv

from triage.pipeline.config import TriageConfig

logger = logging.getLogger(__name__)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log progress at INFO level.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Email triage: duplicate grouping and link-or-create ticket recommendations."""
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )
    ctx.obj = TriageConfig.from_env()


# Import and register commands after cli is defined to avoid circular imports.
from triage.cli.commands import analyze, import_records, inspect  # noqa: E402

cli.add_command(import_records)
cli.add_command(analyze)
cli.add_command(inspect)
