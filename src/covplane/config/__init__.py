"""Config module exports."""

from covplane.config.loader import (
    CovPlaneSettings,
    load_config,
    load_coverage_options,
    save_thresholds,
)
from covplane.config.models import (
    METRICS,
    CoverageOptions,
    CovPlaneConfig,
    CustomCoverageOptions,
    GlobThresholds,
    IstanbulCoverageOptions,
    LoggingConfig,
    ResolvedCoverageOptions,
    Thresholds,
    V8CoverageOptions,
    Watermarks,
)
from covplane.config.resolver import OptionsResolver, resolve

__all__ = [
    "load_config",
    "load_coverage_options",
    "save_thresholds",
    "resolve",
    "OptionsResolver",
    "METRICS",
    "CoverageOptions",
    "CovPlaneConfig",
    "CovPlaneSettings",
    "CustomCoverageOptions",
    "GlobThresholds",
    "IstanbulCoverageOptions",
    "LoggingConfig",
    "ResolvedCoverageOptions",
    "Thresholds",
    "V8CoverageOptions",
    "Watermarks",
]
