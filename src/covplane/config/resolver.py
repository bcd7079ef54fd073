"""Coverage options resolution.

Turns sparse, possibly invalid user options into ResolvedCoverageOptions:

1. Pick the provider variant (explicit ``provider`` or the default backend)
2. Validate the variant with pydantic
3. Fill every unset field from the default table (shallow, explicit empty
   lists are kept)
4. Normalize reporters to ``(name, options)`` pairs
5. Dedupe and validate glob lists
6. Validate ``processing_concurrency``, falling back to the system default

Resolution is pure: the same input always yields an equal result.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import structlog
from pydantic import BaseModel, TypeAdapter, ValidationError

from covplane.config.constants import (
    CUSTOM_PROVIDER,
    DEFAULT_EXCLUDE,
    DEFAULT_EXTENSIONS,
    DEFAULT_PROVIDER,
    DEFAULT_REPORTERS,
    DEFAULT_REPORTS_DIRECTORY,
    KNOWN_PROVIDERS,
    default_processing_concurrency,
)
from covplane.config.models import (
    BaseCoverageOptions,
    CoverageOptions,
    ReporterEntry,
    ResolvedCoverageOptions,
    Watermarks,
)
from covplane.core.errors import ConfigError
from covplane.core.excludes import validate_globs

log = structlog.get_logger(__name__)

_options_adapter: TypeAdapter[BaseCoverageOptions] = TypeAdapter(CoverageOptions)

# Mandatory-defaults table. Values are applied only when the user left the field unset.
DEFAULTS: dict[str, Any] = {
    "enabled": False,
    "clean": True,
    "clean_on_rerun": True,
    "reports_directory": DEFAULT_REPORTS_DIRECTORY,
    "exclude": DEFAULT_EXCLUDE,
    "extension": DEFAULT_EXTENSIONS,
    "report_on_failure": False,
    "allow_external": False,
    "all": True,
    "skip_full": False,
    "exclude_after_remap": False,
}


def _dedupe(values: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(values))


def _normalize_reporter(value: Any) -> tuple[ReporterEntry, ...]:
    """Every entry becomes a ``(name, options)`` pair."""
    if value is None:
        return tuple((name, {}) for name in DEFAULT_REPORTERS)
    if isinstance(value, str):
        return ((value, {}),)
    if isinstance(value, tuple) and value and isinstance(value[0], str) and (
        len(value) == 1 or isinstance(value[1], Mapping)
    ):
        # A single [name] or [name, options] pair
        value = [value]

    entries: list[ReporterEntry] = []
    for item in value:
        if isinstance(item, str):
            entries.append((item, {}))
        elif len(item) == 1:
            entries.append((item[0], {}))
        else:
            entries.append((item[0], dict(item[1] or {})))
    return tuple(entries)


def _resolve_concurrency(value: Any, cpu_count: int | None) -> int:
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return value
    if value is not None:
        log.warning(
            "invalid_processing_concurrency",
            value=value,
            fallback=default_processing_concurrency(cpu_count),
        )
    return default_processing_concurrency(cpu_count)


def _to_raw_dict(raw: Mapping[str, Any] | BaseModel | None) -> dict[str, Any]:
    if raw is None:
        return {}
    if isinstance(raw, BaseModel):
        return raw.model_dump(exclude_unset=True)
    return dict(raw)


def _select_provider(data: dict[str, Any], strict: bool) -> str:
    provider = data.get("provider")
    if provider is None:
        return DEFAULT_PROVIDER
    if provider not in KNOWN_PROVIDERS:
        if strict:
            raise ConfigError.unknown_provider(str(provider), list(KNOWN_PROVIDERS))
        log.warning("unknown_coverage_provider", provider=provider, fallback=DEFAULT_PROVIDER)
        return DEFAULT_PROVIDER
    return str(provider)


def _validation_error(e: ValidationError, provider: str) -> ConfigError:
    err = e.errors()[0]
    loc = [str(part) for part in err["loc"]]
    # Discriminated unions prefix the location with the tag
    if loc and loc[0] == provider:
        loc = loc[1:]
    field = ".".join(["coverage", *loc])
    return ConfigError.invalid_value(field, err.get("input"), err["msg"])


def parse_options(
    raw: Mapping[str, Any] | BaseModel | None, *, strict: bool = True
) -> BaseCoverageOptions:
    """Validate raw options into the provider-specific variant, keeping unset fields unset."""
    data = _to_raw_dict(raw)
    provider = _select_provider(data, strict)
    data["provider"] = provider

    if provider == CUSTOM_PROVIDER and not (
        data.get("custom_provider_module") or data.get("customProviderModule")
    ):
        raise ConfigError.missing_required("coverage.customProviderModule")

    try:
        return _options_adapter.validate_python(data)
    except ValidationError as e:
        raise _validation_error(e, provider) from e


def resolve(
    raw: Mapping[str, Any] | BaseModel | None,
    *,
    strict: bool = True,
    cpu_count: int | None = None,
) -> ResolvedCoverageOptions:
    """Resolve user coverage options into a fully-defaulted configuration.

    Args:
        raw: Sparse user options (mapping or a parsed CoverageOptions variant).
        strict: Raise on an unknown provider name instead of falling back.
        cpu_count: Override available parallelism (for deterministic defaults).

    Returns:
        ResolvedCoverageOptions with every mandatory field set.

    Raises:
        ConfigError: Unknown provider (strict), missing custom provider module,
            invalid field values, or a malformed glob.
    """
    options = parse_options(raw, strict=strict)
    values: dict[str, Any] = {}
    for name, default in DEFAULTS.items():
        value = getattr(options, name)
        values[name] = default if value is None else value

    extension = values["extension"]
    if isinstance(extension, str):
        extension = (extension,)
    values["extension"] = _dedupe(extension)
    values["exclude"] = _dedupe(values["exclude"])
    validate_globs(values["exclude"])

    include = None
    if options.include is not None:
        include = _dedupe(options.include)
        validate_globs(include)

    resolved = ResolvedCoverageOptions(
        provider=options.provider,  # type: ignore[attr-defined]
        include=include,
        reporter=_normalize_reporter(options.reporter),
        processing_concurrency=_resolve_concurrency(options.processing_concurrency, cpu_count),
        thresholds=options.thresholds,
        watermarks=options.watermarks or Watermarks(),
        source=options,
        **values,
    )
    log.debug(
        "coverage_options_resolved",
        provider=resolved.provider,
        enabled=resolved.enabled,
        reporters=resolved.reporter_names,
        processing_concurrency=resolved.processing_concurrency,
    )
    return resolved


class OptionsResolver:
    """Resolver bound to a validation mode and parallelism hint."""

    def __init__(self, *, strict: bool = True, cpu_count: int | None = None) -> None:
        self._strict = strict
        self._cpu_count = cpu_count

    def resolve(self, raw: Mapping[str, Any] | BaseModel | None) -> ResolvedCoverageOptions:
        return resolve(raw, strict=self._strict, cpu_count=self._cpu_count)
