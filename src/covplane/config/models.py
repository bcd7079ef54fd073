"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (COVPLANE__SECTION__KEY)
3. Repo YAML (covplane.yaml)
4. Built-in defaults (constants.py, applied by the options resolver)

Environment Variable Format:
    COVPLANE__<SECTION>__<KEY>=<VALUE>

Examples:
    COVPLANE__LOGGING__LEVEL=DEBUG
    COVPLANE__COVERAGE__ENABLED=true
    COVPLANE__COVERAGE__PROVIDER=istanbul

Coverage keys accept both snake_case and camelCase (``cleanOnRerun``).
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from covplane.config.constants import DEFAULT_WATERMARK
from covplane.core.excludes import validate_globs

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

ProviderName = Literal["v8", "istanbul", "custom"]

MetricName = Literal["statements", "branches", "functions", "lines"]

METRICS: tuple[MetricName, ...] = ("statements", "branches", "functions", "lines")

ReporterEntry = tuple[str, dict[str, Any]]


class LogOutputConfig(BaseModel):
    """Single logging output configuration."""

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        COVPLANE__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG logs every collected payload.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


# =============================================================================
# Coverage options (user supplied, sparse)
# =============================================================================


class _OptionsModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


Percentage = Annotated[float, Field(ge=0, le=100)]

_GLOBAL_ONLY_KEYS = frozenset({"perFile", "per_file", "autoUpdate", "auto_update"})
_METRIC_KEYS = frozenset({*METRICS, "100", "all_100"})


class GlobThresholds(_OptionsModel):
    """Thresholds that a glob-keyed entry may set."""

    statements: Percentage | None = None
    functions: Percentage | None = None
    branches: Percentage | None = None
    lines: Percentage | None = None
    all_100: bool | None = Field(default=None, alias="100")

    def metric_thresholds(self) -> dict[MetricName, float]:
        """Configured thresholds with the ``100`` shortcut expanded."""
        if self.all_100:
            return dict.fromkeys(METRICS, 100.0)
        return {m: v for m in METRICS if (v := getattr(self, m)) is not None}

    def to_config(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Thresholds(GlobThresholds):
    """Global thresholds plus glob-keyed thresholds.

    In config files glob entries sit next to the global keys::

        thresholds:
          functions: 95
          perFile: true
          "src/utils/**":
            lines: 100
    """

    per_file: bool = False
    auto_update: bool = False
    globs: dict[str, GlobThresholds] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _split_globs(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        known = _METRIC_KEYS | _GLOBAL_ONLY_KEYS
        result: dict[str, Any] = {}
        globs: dict[str, Any] = dict(data.get("globs") or {})
        for raw_key, value in data.items():
            key = str(raw_key)
            if key == "globs":
                continue
            if key in known:
                result[key] = value
                continue
            if isinstance(value, Mapping):
                offending = sorted(str(k) for k in value if str(k) in _GLOBAL_ONLY_KEYS)
                if offending:
                    raise ValueError(
                        f"glob {key!r} cannot set {', '.join(offending)}; these are global-only"
                    )
            globs[key] = value
        # YAML reads a bare 100 key as an int
        result["globs"] = {
            str(k): {str(mk): mv for mk, mv in v.items()} if isinstance(v, Mapping) else v
            for k, v in globs.items()
        }
        return result

    @field_validator("globs")
    @classmethod
    def _validate_glob_keys(cls, v: dict[str, GlobThresholds]) -> dict[str, GlobThresholds]:
        validate_globs(v)
        return v

    def to_config(self) -> dict[str, Any]:
        """Flatten back to the config-file shape (camelCase, globs inline)."""
        out = self.model_dump(by_alias=True, exclude_none=True, exclude={"globs"})
        if not self.per_file:
            out.pop("perFile", None)
        if not self.auto_update:
            out.pop("autoUpdate", None)
        for glob, entry in self.globs.items():
            out[glob] = entry.to_config()
        return out


Watermark = tuple[Percentage, Percentage]


class Watermarks(_OptionsModel):
    """Advisory report-coloring bands (low, high) per metric."""

    statements: Watermark = DEFAULT_WATERMARK
    functions: Watermark = DEFAULT_WATERMARK
    branches: Watermark = DEFAULT_WATERMARK
    lines: Watermark = DEFAULT_WATERMARK

    @field_validator("statements", "functions", "branches", "lines")
    @classmethod
    def _ordered(cls, v: Watermark) -> Watermark:
        low, high = v
        if low > high:
            raise ValueError(f"low watermark {low} exceeds high watermark {high}")
        return v


RawReporter = str | tuple[str] | tuple[str, dict[str, Any]]


class BaseCoverageOptions(_OptionsModel):
    """Fields shared by every provider variant. Unset fields stay None."""

    enabled: bool | None = None
    include: list[str] | None = None
    extension: str | list[str] | None = None
    exclude: list[str] | None = None
    all: bool | None = None
    clean: bool | None = None
    clean_on_rerun: bool | None = None
    reports_directory: str | None = None
    reporter: RawReporter | list[RawReporter] | None = None
    skip_full: bool | None = None
    thresholds: Thresholds | None = None
    watermarks: Watermarks | None = None
    report_on_failure: bool | None = None
    allow_external: bool | None = None
    exclude_after_remap: bool | None = None
    # Validated by the resolver: non-positive or non-integer values fall back to the default
    processing_concurrency: Any = None


class V8CoverageOptions(BaseCoverageOptions):
    """Block-range provider options."""

    provider: Literal["v8"] = "v8"
    ignore_empty_lines: bool | None = None


class IstanbulCoverageOptions(BaseCoverageOptions):
    """Counter-map provider options."""

    provider: Literal["istanbul"] = "istanbul"
    ignore_class_methods: list[str] | None = None


class CustomCoverageOptions(BaseCoverageOptions):
    """Options for a provider loaded from the plugin registry."""

    provider: Literal["custom"] = "custom"
    custom_provider_module: str = Field(min_length=1)


CoverageOptions = Annotated[
    V8CoverageOptions | IstanbulCoverageOptions | CustomCoverageOptions,
    Field(discriminator="provider"),
]


# =============================================================================
# Resolved options
# =============================================================================


class ResolvedCoverageOptions(BaseModel):
    """Coverage options after defaulting and validation.

    Every field is non-null; internal code never needs further null checks
    except for ``include`` (None means everything) and ``thresholds``.
    """

    model_config = ConfigDict(frozen=True)

    provider: ProviderName
    enabled: bool
    clean: bool
    clean_on_rerun: bool
    reports_directory: str
    exclude: tuple[str, ...]
    extension: tuple[str, ...]
    report_on_failure: bool
    allow_external: bool
    processing_concurrency: int = Field(ge=1)
    reporter: tuple[ReporterEntry, ...]
    include: tuple[str, ...] | None = None
    all: bool = True
    skip_full: bool = False
    exclude_after_remap: bool = False
    thresholds: Thresholds | None = None
    watermarks: Watermarks = Field(default_factory=Watermarks)
    source: CoverageOptions

    @property
    def custom_provider_module(self) -> str | None:
        if isinstance(self.source, CustomCoverageOptions):
            return self.source.custom_provider_module
        return None

    @property
    def reporter_names(self) -> list[str]:
        return [name for name, _ in self.reporter]


# =============================================================================
# Root config
# =============================================================================


class CovPlaneConfig(BaseModel):
    """Root configuration for covplane.

    ``coverage`` is kept sparse here; the options resolver turns it into
    ResolvedCoverageOptions.
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    coverage: dict[str, Any] = Field(default_factory=dict)
