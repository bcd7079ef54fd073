"""Configuration loading with pydantic-settings.

Supports loading configuration from multiple sources with precedence:
1. Direct kwargs (highest priority)
2. Environment variables (COVPLANE__SECTION__KEY)
3. Repo config (covplane.yaml, or an explicit path)
4. Built-in defaults (lowest priority)

The ``coverage`` section stays sparse after loading; resolve it with
``covplane.config.resolver.resolve`` or use ``load_coverage_options``.
"""

from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from covplane.config.models import (
    CovPlaneConfig,
    LoggingConfig,
    ResolvedCoverageOptions,
    Thresholds,
)
from covplane.config.resolver import resolve
from covplane.core.errors import ConfigError

log = structlog.get_logger(__name__)

CONFIG_FILENAME = "covplane.yaml"


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e
    if not isinstance(data, dict):
        raise ConfigError.parse_error(str(path), "top-level value must be a mapping")
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


class _YamlSource(PydanticBaseSettingsSource):
    """Settings source that reads from pre-loaded YAML config."""

    def __init__(self, settings_cls: type[BaseSettings], yaml_config: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._yaml_config = yaml_config

    def get_field_value(
        self,
        field: Any,  # noqa: ARG002
        field_name: str,
    ) -> tuple[Any, str, bool]:
        val = self._yaml_config.get(field_name)
        return val, field_name, val is not None

    def __call__(self) -> dict[str, Any]:
        return self._yaml_config


def _make_settings_class(yaml_config: dict[str, Any]) -> type[BaseSettings]:
    """Create a Settings class with instance-based YAML source (thread-safe)."""

    class CovPlaneSettings(BaseSettings):
        """Root config. Env vars: COVPLANE__LOGGING__LEVEL, COVPLANE__COVERAGE__ENABLED, etc."""

        model_config = SettingsConfigDict(
            env_prefix="COVPLANE__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        logging: LoggingConfig = LoggingConfig()
        coverage: dict[str, Any] = {}

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            # Precedence (first wins): init kwargs > env vars > yaml files
            return (init_settings, env_settings, _YamlSource(settings_cls, yaml_config))

    return CovPlaneSettings


CovPlaneSettings = _make_settings_class({})


def find_config_file(repo_root: Path | None = None) -> Path:
    """Default config location for a project root."""
    return (repo_root or Path.cwd()) / CONFIG_FILENAME


def load_config(
    repo_root: Path | None = None,
    *,
    config_path: Path | None = None,
    **kwargs: Any,
) -> CovPlaneConfig:
    """Load config: defaults < YAML < env vars < kwargs.

    Args:
        repo_root: Project root holding covplane.yaml. Defaults to cwd.
        config_path: Explicit config file. Must exist when given.
        **kwargs: Override values (highest precedence).

    Returns:
        Root configuration with a sparse ``coverage`` section.

    Raises:
        ConfigError: On missing explicit file, invalid YAML, or validation errors.
    """
    if config_path is not None:
        if not config_path.exists():
            raise ConfigError.file_not_found(str(config_path))
        path = config_path
    else:
        path = find_config_file(repo_root)

    yaml_config = _load_yaml(path)
    settings_cls = _make_settings_class(yaml_config)
    try:
        settings = settings_cls(**kwargs)
    except ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(loc) for loc in err["loc"])
        raise ConfigError.invalid_value(field, err.get("input"), err["msg"]) from e

    return CovPlaneConfig(
        logging=settings.logging,  # type: ignore[attr-defined]
        coverage=settings.coverage,  # type: ignore[attr-defined]
    )


def load_coverage_options(
    repo_root: Path | None = None,
    *,
    config_path: Path | None = None,
    config: CovPlaneConfig | None = None,
    overrides: dict[str, Any] | None = None,
    strict: bool = True,
) -> ResolvedCoverageOptions:
    """Load config and resolve its coverage section.

    ``overrides`` are run-mode flags (CLI) applied on top of the file. A
    ``config`` already loaded by the caller is used instead of reading again.
    """
    if config is None:
        config = load_config(repo_root, config_path=config_path)
    raw = _deep_merge(config.coverage, overrides or {})
    return resolve(raw, strict=strict)


def save_thresholds(path: Path, thresholds: Thresholds) -> None:
    """Write thresholds back into the ``coverage.thresholds`` key of a YAML config.

    Other keys in the file are preserved. Used by threshold auto-update.
    """
    data = _load_yaml(path)
    coverage = data.setdefault("coverage", {})
    if not isinstance(coverage, dict):
        raise ConfigError.parse_error(str(path), "'coverage' must be a mapping")
    coverage["thresholds"] = thresholds.to_config()
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w") as f:
        yaml.safe_dump(data, f, sort_keys=False)
    log.info("thresholds_updated", path=str(path), thresholds=coverage["thresholds"])
