"""covplane CLI - coverage collection and reporting."""

import click

from covplane.cli.check import check_command
from covplane.cli.merge import report_merge_command
from covplane.cli.resolve import resolve_command
from covplane.core.logging import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="covplane")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """covplane - test coverage collection, thresholds and merged reports."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging(level="DEBUG" if verbose else None)


cli.add_command(resolve_command, name="resolve")
cli.add_command(check_command, name="check")
cli.add_command(report_merge_command, name="report-merge")


if __name__ == "__main__":
    cli()
