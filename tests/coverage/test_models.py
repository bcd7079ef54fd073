"""Tests for coverage data models."""

from covplane.coverage.models import (
    BranchCoverage,
    CoverageReport,
    FileCoverage,
    FunctionCoverage,
    MetricPercentages,
)


def make_file(path: str = "src/a.ts") -> FileCoverage:
    return FileCoverage(
        path=path,
        lines={1: 1, 2: 0, 3: 4, 4: 0},
        statements={(1, 0): 1, (2, 2): 0, (3, 2): 4},
        branches=[
            BranchCoverage(line=3, block_id=0, branch_id=0, hits=4),
            BranchCoverage(line=3, block_id=0, branch_id=1, hits=0),
        ],
        functions={"add": FunctionCoverage(name="add", start_line=1, hits=1)},
    )


class TestFileCoverage:
    def test_counts(self) -> None:
        fc = make_file()
        assert (fc.lines_found, fc.lines_hit) == (4, 2)
        assert (fc.statements_found, fc.statements_hit) == (3, 2)
        assert (fc.branches_found, fc.branches_hit) == (2, 1)
        assert (fc.functions_found, fc.functions_hit) == (1, 1)

    def test_percentages(self) -> None:
        pct = make_file().percentages()
        assert pct.lines == 50.0
        assert pct.branches == 50.0
        assert pct.functions == 100.0
        assert round(pct.statements, 2) == 66.67

    def test_no_instrumented_items_counts_as_full(self) -> None:
        assert FileCoverage(path="empty.ts").percentages().is_full


class TestMetricPercentages:
    def test_get_and_to_dict(self) -> None:
        pct = MetricPercentages(statements=1.0, branches=2.0, functions=3.0, lines=4.0)
        assert pct.get("functions") == 3.0
        assert pct.to_dict() == {
            "statements": 1.0,
            "branches": 2.0,
            "functions": 3.0,
            "lines": 4.0,
        }

    def test_is_full(self) -> None:
        assert MetricPercentages(100.0, 100.0, 100.0, 100.0).is_full
        assert not MetricPercentages(100.0, 99.9, 100.0, 100.0).is_full


class TestCoverageReport:
    def test_summary_aggregates_files(self) -> None:
        report = CoverageReport(
            provider="v8",
            files={
                "src/a.ts": make_file("src/a.ts"),
                "src/b.ts": FileCoverage(path="src/b.ts", lines={1: 0, 2: 0}),
            },
        )
        summary = report.summary
        assert summary.lines_found == 6
        assert summary.lines_hit == 2
        assert summary.branches_found == 2
        assert round(summary.percentages.lines, 2) == 33.33

    def test_per_file_percentages(self) -> None:
        report = CoverageReport(provider="v8", files={"src/a.ts": make_file()})
        assert report.per_file_percentages()["src/a.ts"].lines == 50.0

    def test_empty_report_is_full(self) -> None:
        assert CoverageReport(provider="v8").summary.percentages.is_full
