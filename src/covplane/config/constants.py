"""Coverage option defaults.

This module holds the default value table applied by the options resolver.
Values here are the documented defaults; users override them in
``covplane.yaml`` or through ``COVPLANE__COVERAGE__*`` environment variables.
"""

from __future__ import annotations

import os

# =============================================================================
# Providers
# =============================================================================

BUILTIN_PROVIDERS: tuple[str, ...] = ("v8", "istanbul")
"""Built-in providers. The first entry is used when ``provider`` is unset."""

CUSTOM_PROVIDER = "custom"

KNOWN_PROVIDERS: tuple[str, ...] = (*BUILTIN_PROVIDERS, CUSTOM_PROVIDER)

DEFAULT_PROVIDER = BUILTIN_PROVIDERS[0]

# =============================================================================
# Reporting
# =============================================================================

DEFAULT_REPORTS_DIRECTORY = "./coverage"

DEFAULT_REPORTERS: tuple[str, ...] = ("text", "html", "clover", "json")

RESULTS_TEMP_DIRNAME = ".tmp"
"""Subdirectory of the reports directory holding per-invocation result blobs."""

DEFAULT_WATERMARK: tuple[float, float] = (50.0, 80.0)

# =============================================================================
# File selection
# =============================================================================

DEFAULT_EXTENSIONS: tuple[str, ...] = (
    ".js",
    ".cjs",
    ".mjs",
    ".ts",
    ".mts",
    ".cts",
    ".tsx",
    ".jsx",
    ".vue",
    ".svelte",
    ".marko",
    ".py",
)

DEFAULT_EXCLUDE: tuple[str, ...] = (
    # Build artifacts and reports
    "coverage/**",
    "dist/**",
    "build/**",
    "**/node_modules/**",
    "**/__pycache__/**",
    # Dotfiles and dot-directories
    "**/[.]**",
    # Tests
    "packages/*/test?(s)/**",
    "**/*.d.ts",
    "cypress/**",
    "test?(s)/**",
    "test?(-*).?(c|m)[jt]s?(x)",
    "**/*{.,-}{test,spec}?(-d).?(c|m)[jt]s?(x)",
    "**/__tests__/**",
    "**/test_*.py",
    "**/*_test.py",
    "**/conftest.py",
    # Tool configuration
    "**/{karma,rollup,webpack,vite,vitest,jest,ava,babel,nyc,cypress,tsup,build}.config.*",
    "**/vitest.{workspace,projects}.[jt]s?(on)",
    "**/.{eslint,mocha,prettier}rc.{?(c|m)js,yml}",
    # Virtual modules
    "**/virtual:*",
    "**/__x00__*",
    "**/\x00*",
)

# =============================================================================
# Processing
# =============================================================================

MAX_PROCESSING_CONCURRENCY = 20
"""Upper bound for the default remapping pool size."""


def default_processing_concurrency(cpu_count: int | None = None) -> int:
    """Pool size derived from available parallelism, capped at 20."""
    if cpu_count is None:
        cpu_count = os.cpu_count() or 1
    return max(1, min(MAX_PROCESSING_CONCURRENCY, cpu_count))
