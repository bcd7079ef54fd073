"""Coverage data model, merging, processing, thresholds and reporting.

Usage:
    from covplane.coverage import ThresholdEvaluator, merge_reports, process_all

    # Merge result sets with max-hit semantics
    merged = merge_reports([report1, report2])

    # Remap entries with bounded parallelism
    files = await process_all(entries, limit=8, work=remap)

    # Evaluate thresholds
    result = ThresholdEvaluator().evaluate(thresholds, per_file, total)
"""

from covplane.coverage.merge import (
    ReportMerger,
    merge_file_coverage,
    merge_reports,
)
from covplane.coverage.models import (
    BranchCoverage,
    CoverageReport,
    CoverageSummary,
    FileCoverage,
    FunctionCoverage,
    MetricPercentages,
)
from covplane.coverage.processing import ConcurrencyLimitedProcessor, process_all
from covplane.coverage.report import (
    build_summary,
    build_text_summary,
    read_results,
    write_reports,
    write_results,
)
from covplane.coverage.thresholds import (
    GLOBAL_SCOPE,
    EvaluationResult,
    ThresholdEvaluator,
    ThresholdViolation,
    apply_updates,
)

__all__ = [
    # Models
    "BranchCoverage",
    "CoverageReport",
    "CoverageSummary",
    "FileCoverage",
    "FunctionCoverage",
    "MetricPercentages",
    # Merge
    "ReportMerger",
    "merge_file_coverage",
    "merge_reports",
    # Processing
    "ConcurrencyLimitedProcessor",
    "process_all",
    # Report
    "build_summary",
    "build_text_summary",
    "read_results",
    "write_reports",
    "write_results",
    # Thresholds
    "GLOBAL_SCOPE",
    "EvaluationResult",
    "ThresholdEvaluator",
    "ThresholdViolation",
    "apply_updates",
]
