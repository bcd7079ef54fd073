"""Tests for the istanbul provider."""

from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import pytest

from covplane.core.errors import CollectionError
from covplane.coverage.models import BranchCoverage, CoverageReport
from covplane.providers import AfterSuiteRunMeta, IstanbulCoverageProvider, ReportContext

InitProvider = Callable[..., Awaitable[Any]]


def file_coverage(path: str, **overrides: Any) -> dict[str, Any]:
    """Istanbul counters for a small module with one if/else and two functions."""
    data: dict[str, Any] = {
        "path": path,
        "statementMap": {
            "0": {"start": {"line": 1, "column": 0}, "end": {"line": 3, "column": 1}},
            "1": {"start": {"line": 2, "column": 2}, "end": {"line": 2, "column": 14}},
            "2": {"start": {"line": 5, "column": 0}, "end": {"line": 5, "column": 20}},
            "3": {"start": {"line": 6, "column": 2}, "end": {"line": 6, "column": 10}},
        },
        "s": {"0": 1, "1": 3, "2": 0, "3": 0},
        "branchMap": {
            "0": {
                "line": 5,
                "type": "if",
                "locations": [
                    {"start": {"line": 5, "column": 0}, "end": {"line": 5, "column": 20}},
                    {"start": {"line": 5, "column": 0}, "end": {"line": 5, "column": 20}},
                ],
            },
        },
        "b": {"0": [0, 2]},
        "fnMap": {
            "0": {"name": "render", "decl": {"start": {"line": 1, "column": 9}}},
            "1": {"name": "helper", "decl": {"start": {"line": 5, "column": 9}}},
        },
        "f": {"0": 1, "1": 0},
    }
    data.update(overrides)
    return data


def suite(file_path: str, coverage: dict[str, Any]) -> AfterSuiteRunMeta:
    return AfterSuiteRunMeta(file_path=file_path, coverage=coverage)


async def run(provider: IstanbulCoverageProvider, *metas: AfterSuiteRunMeta) -> CoverageReport:
    for meta in metas:
        await provider.on_after_suite_run(meta)
    return await provider.generate_coverage(ReportContext())


class TestConversion:
    @pytest.mark.asyncio
    async def test_counters_become_file_coverage(
        self, tmp_path: Path, init_provider: InitProvider
    ) -> None:
        path = f"{tmp_path.as_posix()}/src/widget.js"
        provider = await init_provider(IstanbulCoverageProvider(), provider="istanbul", all=False)

        report = await run(provider, suite("tests/widget.test.js", {path: file_coverage(path)}))

        fc = report.files["src/widget.js"]
        assert fc.lines == {1: 1, 2: 3, 3: 1, 5: 0, 6: 0}
        assert fc.statements == {(1, 0): 1, (2, 2): 3, (5, 0): 0, (6, 2): 0}
        assert fc.branches == [
            BranchCoverage(line=5, block_id=0, branch_id=0, hits=0),
            BranchCoverage(line=5, block_id=0, branch_id=1, hits=2),
        ]
        assert {name: f.hits for name, f in fc.functions.items()} == {"render": 1, "helper": 0}
        assert report.provider == "istanbul"

    @pytest.mark.asyncio
    async def test_ignore_class_methods(
        self, tmp_path: Path, init_provider: InitProvider
    ) -> None:
        path = f"{tmp_path.as_posix()}/src/widget.js"
        provider = await init_provider(
            IstanbulCoverageProvider(),
            provider="istanbul",
            all=False,
            ignoreClassMethods=["render"],
        )

        report = await run(provider, suite("tests/widget.test.js", {path: file_coverage(path)}))

        assert list(report.files["src/widget.js"].functions) == ["helper"]

    @pytest.mark.asyncio
    async def test_duplicate_function_names_keep_both(
        self, tmp_path: Path, init_provider: InitProvider
    ) -> None:
        path = f"{tmp_path.as_posix()}/src/widget.js"
        fn_map = {
            "0": {"name": "render", "decl": {"start": {"line": 1}}},
            "1": {"name": "render", "decl": {"start": {"line": 5}}},
        }
        provider = await init_provider(IstanbulCoverageProvider(), provider="istanbul", all=False)

        report = await run(
            provider, suite("tests/a.test.js", {path: file_coverage(path, fnMap=fn_map)})
        )

        assert set(report.files["src/widget.js"].functions) == {"render", "render:5"}

    @pytest.mark.asyncio
    async def test_branch_line_from_first_location(
        self, tmp_path: Path, init_provider: InitProvider
    ) -> None:
        path = f"{tmp_path.as_posix()}/src/widget.js"
        branch_map = {"3": {"locations": [{"start": {"line": 6, "column": 2}}]}}
        provider = await init_provider(IstanbulCoverageProvider(), provider="istanbul", all=False)

        report = await run(
            provider,
            suite(
                "tests/a.test.js",
                {path: file_coverage(path, branchMap=branch_map, b={"3": [4]})},
            ),
        )

        assert report.files["src/widget.js"].branches == [
            BranchCoverage(line=6, block_id=3, branch_id=0, hits=4)
        ]


class TestCollection:
    @pytest.mark.parametrize(
        "coverage",
        [
            None,
            ["not", "a", "map"],
            {"/p/a.js": "counters"},
            {"/p/a.js": {"s": {}}},
            {"/p/a.js": {"statementMap": {}, "s": []}},
        ],
    )
    @pytest.mark.asyncio
    async def test_malformed_payload(self, init_provider: InitProvider, coverage: Any) -> None:
        provider = await init_provider(IstanbulCoverageProvider(), provider="istanbul")
        with pytest.raises(CollectionError):
            await provider.on_after_suite_run(suite("tests/a.test.js", coverage))

    @pytest.mark.asyncio
    async def test_suites_merge_by_max_hits(
        self, tmp_path: Path, init_provider: InitProvider
    ) -> None:
        path = f"{tmp_path.as_posix()}/src/widget.js"
        other = file_coverage(path, s={"0": 1, "1": 1, "2": 5, "3": 5}, f={"0": 0, "1": 5})
        provider = await init_provider(IstanbulCoverageProvider(), provider="istanbul", all=False)

        report = await run(
            provider,
            suite("tests/a.test.js", {path: file_coverage(path)}),
            suite("tests/b.test.js", {path: other}),
        )

        fc = report.files["src/widget.js"]
        assert fc.lines == {1: 1, 2: 3, 3: 1, 5: 5, 6: 5}
        assert fc.functions["render"].hits == 1
        assert fc.functions["helper"].hits == 5


class TestRemapping:
    @pytest.mark.asyncio
    async def test_data_path_is_reported(
        self, tmp_path: Path, init_provider: InitProvider
    ) -> None:
        built = f"{tmp_path.as_posix()}/build-out/widget.js"
        source = f"{tmp_path.as_posix()}/src/widget.ts"
        provider = await init_provider(
            IstanbulCoverageProvider(), provider="istanbul", all=False, exclude=[], extension=[]
        )

        report = await run(provider, suite("tests/a.test.js", {built: file_coverage(source)}))

        assert list(report.files) == ["src/widget.ts"]

    @pytest.mark.asyncio
    async def test_remap_outside_root_dropped(
        self, tmp_path: Path, init_provider: InitProvider
    ) -> None:
        built = f"{tmp_path.as_posix()}/build-out/widget.js"
        provider = await init_provider(
            IstanbulCoverageProvider(), provider="istanbul", all=False, exclude=[], extension=[]
        )

        report = await run(
            provider, suite("tests/a.test.js", {built: file_coverage("/elsewhere/widget.ts")})
        )

        assert report.files == {}

    @pytest.mark.parametrize(
        ("after_remap", "expected"), [(False, ["src/legacy/old.ts"]), (True, [])]
    )
    @pytest.mark.asyncio
    async def test_exclude_after_remap(
        self,
        tmp_path: Path,
        init_provider: InitProvider,
        after_remap: bool,
        expected: list[str],
    ) -> None:
        built = f"{tmp_path.as_posix()}/build-out/old.js"
        source = f"{tmp_path.as_posix()}/src/legacy/old.ts"
        provider = await init_provider(
            IstanbulCoverageProvider(),
            provider="istanbul",
            all=False,
            exclude=["src/legacy/**"],
            extension=[],
            excludeAfterRemap=after_remap,
        )

        report = await run(provider, suite("tests/a.test.js", {built: file_coverage(source)}))

        assert list(report.files) == expected
