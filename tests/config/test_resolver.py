"""Tests for coverage options resolution."""

from typing import Any

import pytest

from covplane.config.constants import DEFAULT_EXCLUDE, DEFAULT_EXTENSIONS
from covplane.config.models import IstanbulCoverageOptions, Watermarks
from covplane.config.resolver import OptionsResolver, parse_options, resolve
from covplane.core.errors import ConfigError, ErrorCode


class TestDefaults:
    def test_given_empty_options_when_resolved_then_every_default_applied(self) -> None:
        """Every mandatory field is filled from the default table."""
        # Given
        raw: dict[str, Any] = {}

        # When
        options = resolve(raw, cpu_count=4)

        # Then
        assert options.provider == "v8"
        assert options.enabled is False
        assert options.clean is True
        assert options.clean_on_rerun is True
        assert options.reports_directory == "./coverage"
        assert options.exclude == DEFAULT_EXCLUDE
        assert options.extension == DEFAULT_EXTENSIONS
        assert options.report_on_failure is False
        assert options.allow_external is False
        assert options.processing_concurrency == 4
        assert options.reporter == (
            ("text", {}),
            ("html", {}),
            ("clover", {}),
            ("json", {}),
        )
        assert options.include is None
        assert options.all is True
        assert options.thresholds is None
        assert options.watermarks == Watermarks()

    def test_none_behaves_like_empty(self) -> None:
        assert resolve(None, cpu_count=2) == resolve({}, cpu_count=2)

    def test_resolution_is_deterministic(self) -> None:
        raw = {"provider": "istanbul", "exclude": ["dist/**"], "thresholds": {"lines": 80}}
        assert resolve(raw, cpu_count=8) == resolve(raw, cpu_count=8)


class TestExplicitValues:
    def test_explicit_empty_exclude_is_kept(self) -> None:
        assert resolve({"exclude": []}).exclude == ()

    def test_explicit_empty_extension_is_kept(self) -> None:
        assert resolve({"extension": []}).extension == ()

    def test_explicit_false_is_not_overridden(self) -> None:
        options = resolve({"clean": False, "all": False, "cleanOnRerun": False})
        assert options.clean is False
        assert options.all is False
        assert options.clean_on_rerun is False

    def test_single_extension_string(self) -> None:
        assert resolve({"extension": ".ts"}).extension == (".ts",)

    def test_globs_are_deduped_in_order(self) -> None:
        options = resolve({"exclude": ["b/**", "a/**", "b/**"], "include": ["src/**", "src/**"]})
        assert options.exclude == ("b/**", "a/**")
        assert options.include == ("src/**",)

    def test_reports_directory_camel_case(self) -> None:
        assert resolve({"reportsDirectory": "out/cov"}).reports_directory == "out/cov"


class TestProviderSelection:
    def test_istanbul_variant_keeps_specific_options(self) -> None:
        options = resolve({"provider": "istanbul", "ignoreClassMethods": ["render"]})
        assert options.provider == "istanbul"
        assert isinstance(options.source, IstanbulCoverageOptions)
        assert options.source.ignore_class_methods == ["render"]

    def test_unknown_provider_strict(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            resolve({"provider": "c8"})
        assert exc_info.value.code == ErrorCode.CONFIG_UNKNOWN_PROVIDER

    def test_unknown_provider_lenient_falls_back(self) -> None:
        options = OptionsResolver(strict=False).resolve({"provider": "c8"})
        assert options.provider == "v8"

    def test_custom_requires_module(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            resolve({"provider": "custom"})
        assert exc_info.value.code == ErrorCode.CONFIG_MISSING_REQUIRED

    def test_custom_with_module(self) -> None:
        options = resolve({"provider": "custom", "customProviderModule": "acme"})
        assert options.provider == "custom"
        assert options.custom_provider_module == "acme"

    def test_builtin_has_no_custom_module(self) -> None:
        assert resolve({}).custom_provider_module is None

    def test_option_of_other_variant_rejected(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            resolve({"provider": "istanbul", "ignoreEmptyLines": True})
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID_VALUE
        assert exc_info.value.details["field"] == "coverage.ignoreEmptyLines"

    def test_parse_options_keeps_unset_fields(self) -> None:
        parsed = parse_options({"clean": False})
        assert parsed.clean is False
        assert parsed.exclude is None


class TestProcessingConcurrency:
    @pytest.mark.parametrize("value", [0, -3, 2.5, "8", True])
    def test_invalid_values_fall_back(self, value: Any) -> None:
        assert resolve({"processingConcurrency": value}, cpu_count=6).processing_concurrency == 6

    def test_positive_integer_kept(self) -> None:
        assert resolve({"processingConcurrency": 64}, cpu_count=2).processing_concurrency == 64

    def test_default_capped_at_20(self) -> None:
        assert resolve({}, cpu_count=128).processing_concurrency == 20


class TestReporterNormalization:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("text", (("text", {}),)),
            (["text", "json"], (("text", {}), ("json", {}))),
            (["json", {"file": "out.json"}], (("json", {"file": "out.json"}),)),
            (
                ["text", ["lcov", {"projectRoot": "."}]],
                (("text", {}), ("lcov", {"projectRoot": "."})),
            ),
            ([["html"]], (("html", {}),)),
        ],
    )
    def test_entries_become_pairs(self, raw: Any, expected: tuple[Any, ...]) -> None:
        assert resolve({"reporter": raw}).reporter == expected

    def test_reporter_names(self) -> None:
        assert resolve({"reporter": ["text", ["json", {}]]}).reporter_names == ["text", "json"]


class TestValidation:
    def test_malformed_exclude_glob(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            resolve({"exclude": ["src/{a"]})
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID_GLOB

    def test_malformed_include_glob(self) -> None:
        with pytest.raises(ConfigError):
            resolve({"include": ["[abc"]})

    def test_unknown_key(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            resolve({"bogus": 1})
        assert exc_info.value.details["field"] == "coverage.bogus"

    def test_wrong_type(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            resolve({"clean": "sometimes"})
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID_VALUE

    def test_glob_threshold_with_global_only_key(self) -> None:
        with pytest.raises(ConfigError):
            resolve({"thresholds": {"src/**": {"perFile": True}}})

    def test_inverted_watermarks(self) -> None:
        with pytest.raises(ConfigError):
            resolve({"watermarks": {"lines": [90, 10]}})
