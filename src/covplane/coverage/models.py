"""Unified coverage data model.

File-centric model for coverage data. Both built-in providers convert their
raw worker payloads to this representation; thresholds and reports read the
percentages computed from it.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from covplane.config.models import METRICS, MetricName


def _percent(hit: int, found: int) -> float:
    # Nothing instrumented counts as fully covered
    if found == 0:
        return 100.0
    return hit / found * 100.0


@dataclass(frozen=True, slots=True)
class MetricPercentages:
    """Coverage percentages (0-100) for the four metrics."""

    statements: float = 100.0
    branches: float = 100.0
    functions: float = 100.0
    lines: float = 100.0

    def get(self, metric: MetricName) -> float:
        return float(getattr(self, metric))

    @property
    def is_full(self) -> bool:
        return all(self.get(m) >= 100.0 for m in METRICS)

    def to_dict(self) -> dict[str, float]:
        return {m: round(self.get(m), 2) for m in METRICS}


@dataclass(frozen=True, slots=True)
class BranchCoverage:
    """Branch coverage at a specific line.

    Represents a single branch point (e.g., if/else, switch case).
    """

    line: int
    block_id: int
    branch_id: int
    hits: int


@dataclass(frozen=True, slots=True)
class FunctionCoverage:
    """Function/method coverage."""

    name: str
    start_line: int
    hits: int


@dataclass(slots=True)
class FileCoverage:
    """Coverage data for a single file.

    Lines map line number -> hit count; statements map (line, column) -> hit
    count. Line numbers are 1-based to match source file conventions.
    """

    path: str  # root-relative POSIX path
    lines: dict[int, int] = field(default_factory=dict)
    statements: dict[tuple[int, int], int] = field(default_factory=dict)
    branches: list[BranchCoverage] = field(default_factory=list)
    functions: dict[str, FunctionCoverage] = field(default_factory=dict)

    @property
    def lines_found(self) -> int:
        return len(self.lines)

    @property
    def lines_hit(self) -> int:
        return sum(1 for hits in self.lines.values() if hits > 0)

    @property
    def statements_found(self) -> int:
        return len(self.statements)

    @property
    def statements_hit(self) -> int:
        return sum(1 for hits in self.statements.values() if hits > 0)

    @property
    def branches_found(self) -> int:
        return len(self.branches)

    @property
    def branches_hit(self) -> int:
        return sum(1 for b in self.branches if b.hits > 0)

    @property
    def functions_found(self) -> int:
        return len(self.functions)

    @property
    def functions_hit(self) -> int:
        return sum(1 for f in self.functions.values() if f.hits > 0)

    def percentages(self) -> MetricPercentages:
        return MetricPercentages(
            statements=_percent(self.statements_hit, self.statements_found),
            branches=_percent(self.branches_hit, self.branches_found),
            functions=_percent(self.functions_hit, self.functions_found),
            lines=_percent(self.lines_hit, self.lines_found),
        )


@dataclass(frozen=True, slots=True)
class CoverageSummary:
    """Aggregate coverage statistics across all files."""

    statements_found: int
    statements_hit: int
    lines_found: int
    lines_hit: int
    branches_found: int
    branches_hit: int
    functions_found: int
    functions_hit: int

    @property
    def percentages(self) -> MetricPercentages:
        return MetricPercentages(
            statements=_percent(self.statements_hit, self.statements_found),
            branches=_percent(self.branches_hit, self.branches_found),
            functions=_percent(self.functions_hit, self.functions_found),
            lines=_percent(self.lines_hit, self.lines_found),
        )


@dataclass(slots=True)
class CoverageReport:
    """Complete coverage result set from one provider run or a merge.

    Files are keyed by root-relative path.
    """

    provider: str  # provider name, or "merged"
    files: dict[str, FileCoverage] = field(default_factory=dict)

    @property
    def summary(self) -> CoverageSummary:
        files = self.files.values()
        return CoverageSummary(
            statements_found=sum(f.statements_found for f in files),
            statements_hit=sum(f.statements_hit for f in files),
            lines_found=sum(f.lines_found for f in files),
            lines_hit=sum(f.lines_hit for f in files),
            branches_found=sum(f.branches_found for f in files),
            branches_hit=sum(f.branches_hit for f in files),
            functions_found=sum(f.functions_found for f in files),
            functions_hit=sum(f.functions_hit for f in files),
        )

    def per_file_percentages(self) -> dict[str, MetricPercentages]:
        return {path: fc.percentages() for path, fc in self.files.items()}
