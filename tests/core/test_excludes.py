"""Tests for glob matching and the exclusion filter."""

from pathlib import Path

import pytest

from covplane.config.constants import DEFAULT_EXCLUDE
from covplane.core.errors import ConfigError, ErrorCode
from covplane.core.excludes import (
    ExclusionFilter,
    compile_glob,
    matches_glob,
    normalize_path,
    validate_globs,
)


class TestNormalizePath:
    def test_backslashes_become_slashes(self) -> None:
        assert normalize_path("src\\utils\\a.ts") == "src/utils/a.ts"

    def test_leading_dot_slash_removed(self) -> None:
        assert normalize_path("././src/a.ts") == "src/a.ts"


class TestMatchesGlob:
    @pytest.mark.parametrize(
        ("path", "pattern", "expected"),
        [
            ("src/utils/x.ts", "src/utils/**", True),
            ("src/utils/deep/x.ts", "src/utils/**", True),
            ("src/other/x.ts", "src/utils/**", False),
            ("a.ts", "**/*.ts", True),
            ("types/a.d.ts", "**/*.d.ts", True),
            ("src/a.ts", "src/*.ts", True),
            ("src/nested/a.ts", "src/*.ts", False),
            ("src/a1.ts", "src/a?.ts", True),
            ("src/b.ts", "src/[ab].ts", True),
            ("src/c.ts", "src/[!ab].ts", True),
            ("src/a.ts", "src/[!ab].ts", False),
            ("src/a.js", "src/a.{js,ts}", True),
            ("src/a.py", "src/a.{js,ts}", False),
            (".eslintrc", "*", True),
            ("./src/a.ts", "src/**", True),
        ],
    )
    def test_basic_patterns(self, path: str, pattern: str, expected: bool) -> None:
        assert matches_glob(path, pattern) is expected

    @pytest.mark.parametrize(
        ("path", "pattern", "expected"),
        [
            ("test/a.ts", "test?(s)/**", True),
            ("tests/a.ts", "test?(s)/**", True),
            ("testx/a.ts", "test?(s)/**", False),
            ("src/aaa.ts", "src/+(a).ts", True),
            ("src/.ts", "src/+(a).ts", False),
            ("src/x.ts", "src/@(x|y).ts", True),
            ("vendor/a.js", "!(vendor)/**", False),
            ("src/a.js", "!(vendor)/**", True),
            ("foo.js", "!(foo).js", False),
            ("bar.js", "!(foo).js", True),
            ("foo.bar.js", "!(foo).js", True),
            ("lib/foo.js", "lib/!(foo|bar).js", False),
            ("lib/baz.js", "lib/!(foo|bar).js", True),
            ("src/a.spec.ts", "src/*.!(test).ts", True),
        ],
    )
    def test_extglobs(self, path: str, pattern: str, expected: bool) -> None:
        assert matches_glob(path, pattern) is expected

    @pytest.mark.parametrize(
        ("path", "excluded"),
        [
            ("src/a.test.ts", True),
            ("src/a.spec.tsx", True),
            ("src/__tests__/a.ts", True),
            ("tests/helpers.ts", True),
            ("coverage/lcov.info", True),
            ("node_modules/pkg/index.js", True),
            ("packages/web/node_modules/pkg/index.js", True),
            (".github/workflow.js", True),
            ("src/types.d.ts", True),
            ("vite.config.ts", True),
            ("pkg/test_utils.py", True),
            ("src/index.ts", False),
            ("src/testing/helpers.ts", False),
            ("pkg/utils.py", False),
        ],
    )
    def test_default_exclude_list(self, path: str, excluded: bool) -> None:
        assert any(matches_glob(path, p) for p in DEFAULT_EXCLUDE) is excluded


class TestCompileGlob:
    @pytest.mark.parametrize(
        "pattern", ["src/{a", "src/a}", "src/a)", "[abc", "", "  ", "a\\", "!(a)b)"]
    )
    def test_malformed_patterns_raise(self, pattern: str) -> None:
        with pytest.raises(ConfigError) as exc_info:
            compile_glob(pattern)
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID_GLOB

    def test_compiled_pattern_is_cached(self) -> None:
        assert compile_glob("src/**") is compile_glob("src/**")

    def test_validate_globs_stops_at_first_bad(self) -> None:
        with pytest.raises(ConfigError, match="src/\\{bad"):
            validate_globs(["src/**", "src/{bad", "lib/**"])

    def test_default_exclude_compiles(self) -> None:
        validate_globs(DEFAULT_EXCLUDE)


class TestExclusionFilter:
    def test_relativize_absolute_under_root(self, tmp_path: Path) -> None:
        flt = ExclusionFilter(root=tmp_path)
        assert flt.relativize(str(tmp_path / "src" / "a.ts")) == "src/a.ts"

    def test_relativize_file_url(self, tmp_path: Path) -> None:
        flt = ExclusionFilter(root=tmp_path)
        assert flt.relativize(f"file://{tmp_path.as_posix()}/src/a.ts") == "src/a.ts"

    def test_relativize_keeps_relative_paths(self, tmp_path: Path) -> None:
        flt = ExclusionFilter(root=tmp_path)
        assert flt.relativize("./src/a.ts") == "src/a.ts"

    def test_external_file_dropped_by_default(self, tmp_path: Path) -> None:
        flt = ExclusionFilter(root=tmp_path / "project")
        external = str(tmp_path / "elsewhere" / "a.ts")
        assert flt.relativize(external) is None
        assert flt.is_included(external) is False

    def test_external_file_kept_when_allowed(self, tmp_path: Path) -> None:
        flt = ExclusionFilter(root=tmp_path / "project", allow_external=True)
        external = (tmp_path / "elsewhere" / "a.ts").as_posix()
        assert flt.relativize(external) == external
        assert flt.is_included(external) is True

    def test_include_limits_files(self) -> None:
        flt = ExclusionFilter(include=["src/**"])
        assert flt.is_included("src/a.ts") is True
        assert flt.is_included("lib/a.ts") is False

    def test_exclude_wins_over_include(self) -> None:
        flt = ExclusionFilter(include=["src/**"], exclude=["src/generated/**"])
        assert flt.is_included("src/generated/a.ts") is False

    def test_extension_restriction(self) -> None:
        flt = ExclusionFilter(extension=[".ts"])
        assert flt.is_included("src/a.ts") is True
        assert flt.is_included("src/a.js") is False

    def test_empty_extension_list_disables_check(self) -> None:
        flt = ExclusionFilter(extension=[])
        assert flt.is_included("README.md") is True

    def test_filter_preserves_input_order(self) -> None:
        flt = ExclusionFilter(exclude=["**/*.test.ts"])
        paths = ["z.ts", "a.test.ts", "m.ts", "b.ts"]
        assert list(flt.filter(paths)) == ["z.ts", "m.ts", "b.ts"]

    def test_iter_source_files(self, tmp_path: Path) -> None:
        for rel in ["src/a.ts", "src/b.test.ts", "src/c.css", "lib/d.ts"]:
            target = tmp_path / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text("")
        flt = ExclusionFilter(
            exclude=["**/*.test.ts"], extension=[".ts"], root=tmp_path
        )
        assert list(flt.iter_source_files()) == ["lib/d.ts", "src/a.ts"]

    def test_iter_source_files_without_root_is_empty(self) -> None:
        assert list(ExclusionFilter().iter_source_files()) == []

    def test_iter_source_files_skips_excluded_directories(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        for rel in ["src/a.js", "node_modules/pkg/index.js", "dist/out.js", ".git/hooks/x.js"]:
            target = tmp_path / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text("")
        flt = ExclusionFilter(
            exclude=["**/node_modules/**", "dist/**"], extension=[".js"], root=tmp_path
        )
        checked: list[str] = []
        original = ExclusionFilter.is_included

        def tracking(self: ExclusionFilter, path: str) -> bool:
            checked.append(path)
            return original(self, path)

        monkeypatch.setattr(ExclusionFilter, "is_included", tracking)
        assert list(flt.iter_source_files()) == ["src/a.js"]
        assert checked == ["src/a.js"]

    def test_is_pruned(self) -> None:
        flt = ExclusionFilter(exclude=["**/node_modules/**", "dist/*", "build/**"])
        assert flt.is_pruned("node_modules")
        assert flt.is_pruned("packages/app/node_modules")
        assert flt.is_pruned("build/")
        assert flt.is_pruned(".git")
        assert flt.is_pruned("vendor/lib/.hg")
        # dist/* only covers direct children, nested files stay reachable
        assert not flt.is_pruned("dist")
        assert not flt.is_pruned("src")
