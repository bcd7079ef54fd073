"""CLI utilities."""

from pathlib import Path
from typing import Any

import click

from covplane.config.loader import find_config_file, load_config, load_coverage_options
from covplane.config.models import ResolvedCoverageOptions
from covplane.core.errors import CovPlaneError
from covplane.core.logging import configure_logging


def project_root(config_path: Path | None) -> Path:
    """Directory that relative paths in the config resolve against."""
    if config_path is not None:
        return config_path.resolve().parent
    return Path.cwd().resolve()


def config_file(config_path: Path | None) -> Path:
    return config_path if config_path is not None else find_config_file(project_root(None))


def _verbose() -> bool:
    ctx = click.get_current_context(silent=True)
    if ctx is None:
        return False
    obj = ctx.find_root().obj
    return bool(obj and obj.get("verbose"))


def load_options(
    config_path: Path | None, overrides: dict[str, Any] | None = None
) -> ResolvedCoverageOptions:
    """Load the config, apply its logging section and resolve coverage options.

    ``-v`` on the root command forces DEBUG over the configured level.

    Raises:
        click.ClickException: The configuration is invalid.
    """
    root = project_root(config_path)
    try:
        config = load_config(root, config_path=config_path)
        configure_logging(config=config.logging, level="DEBUG" if _verbose() else None)
        return load_coverage_options(root, config=config, overrides=overrides)
    except CovPlaneError as e:
        raise click.ClickException(str(e)) from e


config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: ./covplane.yaml)",
)
