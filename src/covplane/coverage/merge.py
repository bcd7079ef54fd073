"""Coverage result merging with max-hit semantics.

When merging coverage from several test files, workers or separate
invocations (sharded CI runs), we use max-hit semantics:

- line[i] = max(line[i] across all inputs)
- statement[k] = max(statement[k] across all inputs)
- branch[j] = max(branch[j].hits across all inputs)
- function[k] = max(function[k].hits across all inputs)

Max is commutative and associative, so the merged result does not depend
on the order in which inputs arrive.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any

import structlog

from covplane.core.errors import CapabilityError, ConfigError
from covplane.coverage.models import (
    BranchCoverage,
    CoverageReport,
    FileCoverage,
    FunctionCoverage,
)

if TYPE_CHECKING:
    from covplane.providers.base import CoverageProvider

log = structlog.get_logger(__name__)


def merge_file_coverage(files: Iterable[FileCoverage]) -> FileCoverage:
    """Merge multiple FileCoverage objects for the same file.

    Args:
        files: FileCoverage objects to merge (must have same path).

    Returns:
        Merged FileCoverage with max hits across all inputs.
    """
    files_list = list(files)
    if not files_list:
        raise ValueError("Cannot merge empty file coverage list")

    path = files_list[0].path

    merged_lines: dict[int, int] = {}
    merged_statements: dict[tuple[int, int], int] = {}
    for fc in files_list:
        for line_num, hits in fc.lines.items():
            merged_lines[line_num] = max(merged_lines.get(line_num, 0), hits)
        for loc, hits in fc.statements.items():
            merged_statements[loc] = max(merged_statements.get(loc, 0), hits)

    # Branches keyed by (line, block_id, branch_id)
    branch_key_to_hits: dict[tuple[int, int, int], int] = {}
    for fc in files_list:
        for branch in fc.branches:
            key = (branch.line, branch.block_id, branch.branch_id)
            branch_key_to_hits[key] = max(branch_key_to_hits.get(key, 0), branch.hits)

    merged_branches = [
        BranchCoverage(line=line, block_id=block_id, branch_id=branch_id, hits=hits)
        for (line, block_id, branch_id), hits in sorted(branch_key_to_hits.items())
    ]

    # Functions keyed by name; keep earliest start line
    func_data: dict[str, tuple[int, int]] = {}
    for fc in files_list:
        for name, func in fc.functions.items():
            if name in func_data:
                existing_line, existing_hits = func_data[name]
                func_data[name] = (
                    min(existing_line, func.start_line),
                    max(existing_hits, func.hits),
                )
            else:
                func_data[name] = (func.start_line, func.hits)

    return FileCoverage(
        path=path,
        lines=dict(sorted(merged_lines.items())),
        statements=dict(sorted(merged_statements.items())),
        branches=merged_branches,
        functions={
            name: FunctionCoverage(name=name, start_line=start_line, hits=hits)
            for name, (start_line, hits) in sorted(func_data.items())
        },
    )


def merge_reports(reports: Iterable[CoverageReport]) -> CoverageReport:
    """Merge multiple CoverageReport objects.

    Files present in several reports are merged; files present in only one
    are included as-is. A single input is returned unchanged.
    """
    reports_list = list(reports)

    if not reports_list:
        return CoverageReport(provider="merged", files={})

    if len(reports_list) == 1:
        return reports_list[0]

    files_by_path: dict[str, list[FileCoverage]] = {}
    providers: set[str] = set()

    for report in reports_list:
        providers.add(report.provider)
        for path, fc in report.files.items():
            files_by_path.setdefault(path, []).append(fc)

    merged_files: dict[str, FileCoverage] = {}
    for path in sorted(files_by_path):
        file_list = files_by_path[path]
        merged_files[path] = file_list[0] if len(file_list) == 1 else merge_file_coverage(file_list)

    provider = providers.pop() if len(providers) == 1 else "merged"

    return CoverageReport(provider=provider, files=merged_files)


class ReportMerger:
    """Combines result sets from separate invocations before reporting.

    Only validates input and dispatches; the union algorithm belongs to the
    provider's ``merge_reports`` capability.
    """

    def __init__(self, provider: CoverageProvider) -> None:
        self._provider = provider

    def merge(self, results: Sequence[Any]) -> Any:
        """Merge result sets.

        Raises:
            ConfigError: No result sets were given.
            CapabilityError: The provider cannot merge.
        """
        if not results:
            raise ConfigError.invalid_value(
                "merge_reports", "[]", "at least one coverage result set is required"
            )
        if len(results) == 1:
            return results[0]
        if not self._provider.supports_merge():
            raise CapabilityError.unsupported(self._provider.name, "merge_reports")
        log.info("merging_coverage_results", provider=self._provider.name, count=len(results))
        return self._provider.merge_reports(list(results))
