"""covplane check command - evaluate thresholds on stored results."""

import json
from pathlib import Path

import click

from covplane.cli.utils import config_file, config_option, load_options
from covplane.config.loader import save_thresholds
from covplane.core.errors import CovPlaneError
from covplane.core.progress import print_violations, status
from covplane.coverage.thresholds import ThresholdEvaluator, apply_updates
from covplane.providers import provider_registry


@click.command()
@click.argument("results", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@config_option
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def check_command(
    ctx: click.Context, results: Path, config_path: Path | None, as_json: bool
) -> None:
    """Check a persisted result blob against the configured thresholds.

    Exits with status 1 when any threshold is not met.
    """
    options = load_options(config_path)
    try:
        provider = provider_registry.create(options).get_provider()
        loaded = provider.load_results(results)
    except CovPlaneError as e:
        raise click.ClickException(str(e)) from e

    per_file, total = provider.summarize(loaded)
    evaluation = ThresholdEvaluator().evaluate(options.thresholds, per_file, total)

    if evaluation.updated_thresholds and options.thresholds is not None:
        save_thresholds(
            config_file(config_path),
            apply_updates(options.thresholds, evaluation.updated_thresholds),
        )

    if as_json:
        click.echo(
            json.dumps(
                {
                    "passed": evaluation.passed,
                    "total": total.to_dict(),
                    "violations": [v.describe() for v in evaluation.violations],
                }
            )
        )
    elif evaluation.passed:
        status("Coverage thresholds met", style="success")
    else:
        print_violations(evaluation.violations)

    ctx.exit(0 if evaluation.passed else 1)
