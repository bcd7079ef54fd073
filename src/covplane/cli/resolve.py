"""covplane resolve command - show resolved coverage options."""

import json
from pathlib import Path

import click

from covplane.cli.utils import config_option, load_options


@click.command()
@config_option
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def resolve_command(config_path: Path | None, as_json: bool) -> None:
    """Print coverage options after defaults are applied."""
    options = load_options(config_path)
    data = options.model_dump(mode="json", exclude={"source"})
    data["custom_provider_module"] = options.custom_provider_module

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    for key, value in data.items():
        if isinstance(value, list | dict):
            value = json.dumps(value)
        click.echo(f"{key}: {value}")
