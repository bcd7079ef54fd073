"""Coverage report generation and result persistence.

This module turns a CoverageReport into reporter outputs and into the
round-trippable JSON blob used by merge mode.

Output schema for build_summary:
{
    "total": {"statements": {...}, "branches": {...}, "functions": {...}, "lines": {...}},
    "files": {
        "<path>": {"statements": {"total": int, "covered": int, "pct": float}, ...},
        ...
    },
    "provider": str
}
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog
from rich.console import Console

from covplane.config.models import ReporterEntry, Watermarks
from covplane.core.errors import GenerationError
from covplane.core.progress import get_console, make_coverage_table
from covplane.coverage.models import (
    BranchCoverage,
    CoverageReport,
    FileCoverage,
    FunctionCoverage,
)

log = structlog.get_logger(__name__)

RESULTS_FORMAT_VERSION = 1


# =============================================================================
# Summaries
# =============================================================================


def _metric(found: int, hit: int) -> dict[str, Any]:
    pct = hit / found * 100.0 if found else 100.0
    return {"total": found, "covered": hit, "pct": round(pct, 2)}


def compute_file_stats(fc: FileCoverage) -> dict[str, Any]:
    """Per-metric totals for one file."""
    return {
        "statements": _metric(fc.statements_found, fc.statements_hit),
        "branches": _metric(fc.branches_found, fc.branches_hit),
        "functions": _metric(fc.functions_found, fc.functions_hit),
        "lines": _metric(fc.lines_found, fc.lines_hit),
    }


def build_summary(report: CoverageReport, *, skip_full: bool = False) -> dict[str, Any]:
    """Build a structured coverage summary suitable for JSON serialization."""
    s = report.summary
    files: dict[str, Any] = {}
    for path in sorted(report.files):
        fc = report.files[path]
        if skip_full and fc.percentages().is_full:
            continue
        files[path] = compute_file_stats(fc)

    return {
        "total": {
            "statements": _metric(s.statements_found, s.statements_hit),
            "branches": _metric(s.branches_found, s.branches_hit),
            "functions": _metric(s.functions_found, s.functions_hit),
            "lines": _metric(s.lines_found, s.lines_hit),
        },
        "files": files,
        "provider": report.provider,
    }


def build_text_summary(report: CoverageReport) -> str:
    """Concise one-line summary for display contexts."""
    s = report.summary
    if s.lines_found == 0 and s.statements_found == 0:
        return "No coverage data"

    pct = s.percentages
    return (
        f"Statements {pct.statements:.2f}% | Branches {pct.branches:.2f}% | "
        f"Functions {pct.functions:.2f}% | Lines {pct.lines:.2f}% "
        f"({s.lines_hit}/{s.lines_found} lines)"
    )


# =============================================================================
# Result blobs (merge mode)
# =============================================================================


def _statement_key(loc: tuple[int, int]) -> str:
    return f"{loc[0]}:{loc[1]}"


def _parse_statement_key(key: str) -> tuple[int, int]:
    line, _, column = key.partition(":")
    return int(line), int(column or 0)


def report_to_dict(report: CoverageReport) -> dict[str, Any]:
    return {
        "version": RESULTS_FORMAT_VERSION,
        "provider": report.provider,
        "files": {
            path: {
                "lines": {str(k): v for k, v in fc.lines.items()},
                "statements": {_statement_key(k): v for k, v in fc.statements.items()},
                "branches": [[b.line, b.block_id, b.branch_id, b.hits] for b in fc.branches],
                "functions": {
                    name: [f.start_line, f.hits] for name, f in fc.functions.items()
                },
            }
            for path, fc in report.files.items()
        },
    }


def _expect_mapping(value: Any, what: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise TypeError(f"{what} must be an object, got {type(value).__name__}")
    return value


def report_from_dict(data: Any) -> CoverageReport:
    """Inverse of report_to_dict. Raises KeyError/ValueError/TypeError on malformed data."""
    data = _expect_mapping(data, "results")
    if data.get("version") != RESULTS_FORMAT_VERSION:
        raise ValueError(f"unsupported results version {data.get('version')!r}")
    files: dict[str, FileCoverage] = {}
    for path, entry in _expect_mapping(data["files"], "files").items():
        entry = _expect_mapping(entry, f"entry {path!r}")
        lines = _expect_mapping(entry.get("lines", {}), f"lines of {path!r}")
        statements = _expect_mapping(entry.get("statements", {}), f"statements of {path!r}")
        functions = _expect_mapping(entry.get("functions", {}), f"functions of {path!r}")
        files[path] = FileCoverage(
            path=path,
            lines={int(k): int(v) for k, v in lines.items()},
            statements={_parse_statement_key(k): int(v) for k, v in statements.items()},
            branches=[
                BranchCoverage(line=line, block_id=block, branch_id=branch, hits=hits)
                for line, block, branch, hits in entry.get("branches", [])
            ],
            functions={
                name: FunctionCoverage(name=name, start_line=start, hits=hits)
                for name, (start, hits) in functions.items()
            },
        )
    return CoverageReport(provider=data["provider"], files=files)


def write_results(report: CoverageReport, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report_to_dict(report), indent=None, separators=(",", ":")))


def read_results(path: Path) -> CoverageReport:
    """Load a result blob written by write_results.

    Raises:
        GenerationError: Missing or malformed blob.
    """
    try:
        data = json.loads(path.read_text())
        return report_from_dict(data)
    except FileNotFoundError as e:
        raise GenerationError.unreadable_results(str(path), "file not found") from e
    except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise GenerationError.unreadable_results(str(path), str(e)) from e


# =============================================================================
# Reporters
# =============================================================================


def _write_lcov(report: CoverageReport, path: Path) -> None:
    out: list[str] = []
    for file_path in sorted(report.files):
        fc = report.files[file_path]
        out.append("TN:")
        out.append(f"SF:{file_path}")
        for name, fn in fc.functions.items():
            out.append(f"FN:{fn.start_line},{name}")
        for name, fn in fc.functions.items():
            out.append(f"FNDA:{fn.hits},{name}")
        out.append(f"FNF:{fc.functions_found}")
        out.append(f"FNH:{fc.functions_hit}")
        for b in fc.branches:
            out.append(f"BRDA:{b.line},{b.block_id},{b.branch_id},{b.hits}")
        out.append(f"BRF:{fc.branches_found}")
        out.append(f"BRH:{fc.branches_hit}")
        for line, hits in sorted(fc.lines.items()):
            out.append(f"DA:{line},{hits}")
        out.append(f"LF:{fc.lines_found}")
        out.append(f"LH:{fc.lines_hit}")
        out.append("end_of_record")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(out) + "\n")


def write_reports(
    report: CoverageReport,
    reporters: tuple[ReporterEntry, ...],
    reports_directory: Path,
    *,
    watermarks: Watermarks,
    skip_full: bool = False,
    console: Console | None = None,
) -> list[str]:
    """Render every reporter. Returns the names that produced output.

    Supported: ``json`` (result blob), ``json-summary``, ``lcov``/``lcovonly``,
    ``text`` (console table), ``text-summary``. ``none`` is a no-op. Other
    names are rendered by external reporting libraries and are skipped here.
    """
    console = console or get_console()
    written: list[str] = []

    for name, opts in reporters:
        if name == "none":
            continue
        if name == "json":
            write_results(report, reports_directory / opts.get("file", "coverage-final.json"))
        elif name == "json-summary":
            target = reports_directory / opts.get("file", "coverage-summary.json")
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(json.dumps(build_summary(report, skip_full=skip_full), indent=2))
        elif name in ("lcov", "lcovonly"):
            _write_lcov(report, reports_directory / opts.get("file", "lcov.info"))
        elif name == "text":
            s = report.summary
            console.print(
                make_coverage_table(
                    report.per_file_percentages(),
                    s.percentages,
                    watermarks,
                    skip_full=opts.get("skipFull", skip_full),
                )
            )
        elif name == "text-summary":
            console.print(build_text_summary(report), highlight=False)
        else:
            log.info("reporter_not_rendered", reporter=name)
            continue
        written.append(name)

    log.debug("reports_written", reporters=written, directory=str(reports_directory))
    return written
