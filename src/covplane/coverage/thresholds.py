"""Coverage threshold evaluation.

Compares computed percentages against configured thresholds:

- ``100`` expands to 100 on every metric, globally and per glob
- glob-keyed thresholds are checked against every matching file; a file
  matched by several globs is checked against each of them
- global thresholds are checked against the aggregate, or against every file
  when ``perFile`` is set
- a metric fails when ``actual < required``; equality passes
- with ``autoUpdate``, a threshold below the observed coverage is raised to
  the observed value floored to two decimals, and that metric does not fail

Violations are results, never exceptions. A failing threshold does not stop
report generation.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field

import structlog

from covplane.config.models import GlobThresholds, MetricName, Thresholds
from covplane.core.excludes import matches_glob
from covplane.coverage.models import MetricPercentages

log = structlog.get_logger(__name__)

GLOBAL_SCOPE = "global"

# (glob or None for global thresholds, metric) -> new threshold
ThresholdUpdates = dict[tuple[str | None, MetricName], float]


@dataclass(frozen=True, slots=True)
class ThresholdViolation:
    """One metric below its required percentage."""

    scope: str  # "global" or a file path
    metric: MetricName
    actual: float
    required: float
    glob: str | None = None

    def describe(self) -> str:
        where = f"{self.scope} ({self.glob})" if self.glob else self.scope
        return (
            f"Coverage for {self.metric} ({self.actual:.2f}%) does not meet "
            f"threshold ({self.required:.2f}%) for {where}"
        )


@dataclass(slots=True)
class EvaluationResult:
    violations: list[ThresholdViolation] = field(default_factory=list)
    updated_thresholds: ThresholdUpdates = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return not self.violations


def floor_percentage(value: float) -> float:
    """Floor to two decimals so repeated runs do not flap on float noise."""
    return math.floor(round(value * 100, 6)) / 100


class ThresholdEvaluator:
    """Evaluates Thresholds against per-file and aggregate coverage."""

    def evaluate(
        self,
        thresholds: Thresholds | None,
        per_file_coverage: Mapping[str, MetricPercentages],
        global_coverage: MetricPercentages,
    ) -> EvaluationResult:
        result = EvaluationResult()
        if thresholds is None:
            return result

        files = sorted(per_file_coverage.items())

        if thresholds.per_file:
            global_scopes = files
        else:
            global_scopes = [(GLOBAL_SCOPE, global_coverage)]
        self._check(result, thresholds, None, global_scopes, thresholds.auto_update)

        for glob, entry in thresholds.globs.items():
            matched = [(path, pct) for path, pct in files if matches_glob(path, glob)]
            if not matched:
                log.debug("threshold_glob_unmatched", glob=glob)
                continue
            self._check(result, entry, glob, matched, thresholds.auto_update)

        if result.violations:
            log.info("coverage_thresholds_failed", violations=len(result.violations))
        return result

    def _check(
        self,
        result: EvaluationResult,
        targets: GlobThresholds,
        glob: str | None,
        scopes: list[tuple[str, MetricPercentages]],
        auto_update: bool,
    ) -> None:
        if not scopes:
            return
        for metric, required in targets.metric_thresholds().items():
            observed = [(scope, pct.get(metric)) for scope, pct in scopes]

            if auto_update:
                floored = floor_percentage(min(actual for _, actual in observed))
                if floored > required:
                    result.updated_thresholds[(glob, metric)] = floored
                    continue

            for scope, actual in observed:
                if actual < required:
                    result.violations.append(
                        ThresholdViolation(
                            scope=scope,
                            metric=metric,
                            actual=actual,
                            required=required,
                            glob=glob,
                        )
                    )


def apply_updates(thresholds: Thresholds, updates: ThresholdUpdates) -> Thresholds:
    """Return thresholds with auto-updated values applied, for persisting to config."""
    if not updates:
        return thresholds

    global_changes: dict[str, float] = {}
    glob_changes: dict[str, dict[str, float]] = {}
    for (glob, metric), value in updates.items():
        if glob is None:
            global_changes[metric] = value
        else:
            glob_changes.setdefault(glob, {})[metric] = value

    globs = dict(thresholds.globs)
    for glob, changes in glob_changes.items():
        globs[glob] = globs[glob].model_copy(update=changes)

    return thresholds.model_copy(update={**global_changes, "globs": globs})
