"""User-facing console output for coverage runs.

Design principles:
- Single line status updates, no spam
- Graceful degradation in non-TTY (CI, pipes)
- Suppress structlog console output while Rich owns the terminal

Usage::

    from covplane.core.progress import status, print_violations

    status("Coverage report written", style="success")  # ✓ Coverage report written
    print_violations(result.violations)
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

    from covplane.config.models import Watermarks
    from covplane.coverage.models import MetricPercentages
    from covplane.coverage.thresholds import ThresholdViolation

_console = Console(stderr=True)

_STYLES = {
    "success": "[green]✓[/green] ",
    "error": "[red]✗[/red] ",
    "warning": "[yellow]![/yellow] ",
    "info": "  ",
    "none": "",
}

_suppress_console_logs = threading.local()


def is_console_suppressed() -> bool:
    """Check if console logging is currently suppressed."""
    return getattr(_suppress_console_logs, "active", False)


@contextmanager
def suppress_console_logs() -> Iterator[None]:
    """Suppress structlog console output. File handlers still receive logs."""
    _suppress_console_logs.active = True
    try:
        yield
    finally:
        _suppress_console_logs.active = False


def _get_logger() -> BoundLogger:
    """Get logger lazily to respect runtime config."""
    from covplane.core.logging import get_logger

    return get_logger("progress")


def get_console() -> Console:
    """Get the shared Rich console instance."""
    return _console


def status(message: str, *, style: str = "info", indent: int = 0) -> None:
    """Print a styled status message to stderr."""
    prefix = _STYLES.get(style, "")
    padding = " " * indent
    _console.print(f"{padding}{prefix}{message}", highlight=False)

    _get_logger().debug("status", message=message, style=style)


def pluralize(count: int, singular: str, plural: str | None = None) -> str:
    """Return "1 file" or "3 files"."""
    if plural is None:
        plural = singular + "s"
    word = singular if count == 1 else plural
    return f"{count} {word}"


def make_violation_table(violations: Iterable[ThresholdViolation]) -> Table:
    """Per-metric table of threshold failures."""
    table = Table(title="Coverage thresholds not met", title_justify="left", box=None)
    table.add_column("scope", style="cyan")
    table.add_column("metric")
    table.add_column("actual", justify="right", style="red")
    table.add_column("required", justify="right")
    table.add_column("glob", style="dim")
    for v in violations:
        table.add_row(v.scope, v.metric, f"{v.actual:.2f}%", f"{v.required:.2f}%", v.glob or "")
    return table


def print_violations(
    violations: list[ThresholdViolation], *, console: Console | None = None
) -> None:
    """Print the violation table, or nothing when thresholds passed."""
    if not violations:
        return
    (console or _console).print(make_violation_table(violations))


def _band_style(value: float, band: tuple[float, float]) -> str:
    low, high = band
    if value < low:
        return "red"
    if value < high:
        return "yellow"
    return "green"


def make_coverage_table(
    per_file: Mapping[str, MetricPercentages],
    total: MetricPercentages,
    watermarks: Watermarks,
    *,
    skip_full: bool = False,
) -> Table:
    """Per-file metric table colored by watermark bands."""
    table = Table(box=None, pad_edge=False)
    table.add_column("File", style="cyan")
    metrics = ("statements", "branches", "functions", "lines")
    for metric in metrics:
        table.add_column(metric.capitalize(), justify="right")

    def _row(label: str, pct: MetricPercentages) -> list[Text | str]:
        row: list[Text | str] = [label]
        for metric in metrics:
            value = getattr(pct, metric)
            row.append(Text(f"{value:.2f}", style=_band_style(value, getattr(watermarks, metric))))
        return row

    table.add_row(*_row("All files", total))
    for path in sorted(per_file):
        pct = per_file[path]
        if skip_full and pct.is_full:
            continue
        table.add_row(*_row(path, pct))
    return table
