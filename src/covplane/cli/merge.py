"""covplane report-merge command - report the union of result blobs."""

import asyncio
from pathlib import Path
from typing import Any

import click

from covplane.cli.utils import config_file, config_option, load_options, project_root
from covplane.collector import CoverageCollector
from covplane.config.loader import save_thresholds
from covplane.core.errors import CovPlaneError
from covplane.core.progress import pluralize, status
from covplane.providers import ReportContext


@click.command()
@click.argument(
    "blobs", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@config_option
@click.option("--reporter", "reporters", multiple=True, help="Reporter name (repeatable)")
@click.option("--report-on-failure", is_flag=True, default=None, help="Report even if tests failed")
@click.option("--all/--no-all", "include_all", default=None, help="Include untested files")
@click.option("--allow-external", is_flag=True, default=None, help="Keep files outside the root")
@click.pass_context
def report_merge_command(
    ctx: click.Context,
    blobs: tuple[Path, ...],
    config_path: Path | None,
    reporters: tuple[str, ...],
    report_on_failure: bool | None,
    include_all: bool | None,
    allow_external: bool | None,
) -> None:
    """Merge result blobs from separate runs (e.g. CI shards) and report them."""
    overrides: dict[str, Any] = {}
    if reporters:
        overrides["reporter"] = list(reporters)
    if report_on_failure is not None:
        overrides["reportOnFailure"] = report_on_failure
    if include_all is not None:
        overrides["all"] = include_all
    if allow_external is not None:
        overrides["allowExternal"] = allow_external

    options = load_options(config_path, overrides)
    target = config_file(config_path)
    collector = CoverageCollector(
        options,
        root=project_root(config_path),
        on_thresholds_updated=lambda thresholds: save_thresholds(target, thresholds),
    )

    try:
        result = asyncio.run(collector.merge_reports(list(blobs)))
    except CovPlaneError as e:
        raise click.ClickException(str(e)) from e

    status(f"Merged {pluralize(len(blobs), 'result blob')}", style="success")
    ctx.exit(result.exit_code)
