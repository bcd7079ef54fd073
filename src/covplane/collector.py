"""Coverage collection controller.

Drives one provider through a test run:

    collector = CoverageCollector(options, root=repo_root)
    await collector.start()                     # before any worker runs
    ...
    await collector.on_after_suite_run(message) # once per test file, any order
    ...
    result = await collector.finish(ReportContext(), tests_failed=False)
    sys.exit(result.exit_code)

Merge mode skips collection and reports previously persisted result blobs:

    result = await collector.merge_reports([blob1, blob2], ReportContext())
"""

from __future__ import annotations

import re
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
from rich.console import Console

from covplane.config.models import ResolvedCoverageOptions, Thresholds
from covplane.core.errors import CollectionError, InternalError, ProviderInitError
from covplane.core.formatting import format_path_list
from covplane.core.logging import set_run_id
from covplane.core.progress import (
    get_console,
    pluralize,
    print_violations,
    suppress_console_logs,
)
from covplane.coverage.merge import ReportMerger
from covplane.coverage.thresholds import (
    ThresholdEvaluator,
    ThresholdUpdates,
    ThresholdViolation,
    apply_updates,
)
from covplane.providers import (
    AfterSuiteRunMeta,
    CoverageProvider,
    ProviderContext,
    ProviderRegistry,
    ReportContext,
    provider_registry,
)

log = structlog.get_logger(__name__)

ThresholdsCallback = Callable[[Thresholds], None]

_RESULTS_FILE = re.compile(r"^coverage-(\d+)\.json$")


@dataclass(slots=True)
class CoverageRunResult:
    """Outcome of a coverage run or merge."""

    results: Any = None
    violations: list[ThresholdViolation] = field(default_factory=list)
    updated_thresholds: ThresholdUpdates = field(default_factory=dict)
    missing_files: list[str] = field(default_factory=list)
    results_path: Path | None = None
    skipped: bool = False

    @property
    def passed(self) -> bool:
        return not self.violations

    @property
    def exit_code(self) -> int:
        return 0 if self.passed else 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "skipped": self.skipped,
            "violations": [v.describe() for v in self.violations],
            "updated_thresholds": {
                f"{glob or 'global'}:{metric}": value
                for (glob, metric), value in self.updated_thresholds.items()
            },
            "missing_files": self.missing_files,
            "results_path": str(self.results_path) if self.results_path else None,
        }


class CoverageCollector:
    """Owns the provider for one run and sequences its lifecycle."""

    def __init__(
        self,
        options: ResolvedCoverageOptions,
        *,
        root: Path,
        registry: ProviderRegistry | None = None,
        on_thresholds_updated: ThresholdsCallback | None = None,
        console: Console | None = None,
    ) -> None:
        self.options = options
        self.root = root
        self._registry = registry or provider_registry
        self._on_thresholds_updated = on_thresholds_updated
        self._console = console or get_console()
        self._evaluator = ThresholdEvaluator()
        self._provider: CoverageProvider | None = None
        self._missing: list[str] = []
        self._lock = threading.Lock()

    @property
    def provider(self) -> CoverageProvider:
        if self._provider is None:
            raise InternalError.invalid_state("use provider", "not started")
        return self._provider

    @property
    def missing_files(self) -> list[str]:
        """Test files whose payload was rejected plus files the provider dropped."""
        with self._lock:
            missing = set(self._missing)
        if self._provider is not None:
            missing.update(self._provider.dropped_files())
        return sorted(missing)

    # -- Lifecycle ------------------------------------------------------------

    async def start(self) -> CoverageProvider:
        """Create and initialize the provider, cleaning old outputs if configured.

        Raises:
            ProviderInitError: The provider is unknown or failed to initialize.
        """
        set_run_id()
        provider = await self._initialize()
        if self.options.clean:
            await provider.clean(force=True)
        return provider

    async def _initialize(self) -> CoverageProvider:
        if self._provider is not None:
            return self._provider
        module = self._registry.create(self.options)
        try:
            provider = module.get_provider()
            await provider.initialize(ProviderContext(options=self.options, root=self.root))
        except ProviderInitError:
            raise
        except Exception as e:
            raise ProviderInitError.failed(module.name, str(e)) from e
        self._provider = provider
        log.info("coverage_started", provider=provider.name, root=str(self.root))
        return provider

    async def on_rerun(self) -> None:
        """Prepare for another watch-mode run after any previous outcome.

        Payloads from the previous run are dropped. Report outputs are only
        deleted when ``clean_on_rerun`` is set.
        """
        set_run_id()
        with self._lock:
            self._missing.clear()
        if self.options.clean_on_rerun:
            await self.provider.clean(force=True)
        else:
            self.provider.restart()
        log.debug("coverage_rerun", clean=self.options.clean_on_rerun)

    async def on_after_suite_run(self, message: AfterSuiteRunMeta | str | bytes) -> None:
        """Accept one worker message. Malformed payloads are recorded, not raised."""
        try:
            meta = (
                message
                if isinstance(message, AfterSuiteRunMeta)
                else AfterSuiteRunMeta.from_json(message)
            )
            await self.provider.on_after_suite_run(meta)
        except CollectionError as e:
            file_path = str(e.details.get("file", "<unknown>"))
            log.warning("coverage_payload_rejected", file=file_path, error=e.message)
            with self._lock:
                self._missing.append(file_path)

    async def finish(
        self, context: ReportContext | None = None, *, tests_failed: bool = False
    ) -> CoverageRunResult:
        """Generate, persist, evaluate and report.

        Raises:
            GenerationError: The provider could not produce results.
        """
        context = context or ReportContext()
        provider = self.provider

        if tests_failed and not self.options.report_on_failure:
            provider.discard()
            log.info("coverage_report_skipped", reason="tests_failed")
            return CoverageRunResult(skipped=True, missing_files=self.missing_files)

        results = await provider.generate_coverage(context)
        results_path = self._next_results_path(provider.context.results_directory)
        provider.dump_results(results, results_path)

        run = await self._evaluate_and_report(provider, results, context)
        run.results_path = results_path
        return run

    async def merge_reports(
        self, paths: Sequence[Path | str], context: ReportContext | None = None
    ) -> CoverageRunResult:
        """Report the union of persisted result blobs.

        Raises:
            ConfigError: No blobs were given.
            GenerationError: A blob could not be read.
            CapabilityError: The provider cannot merge.
        """
        context = context or ReportContext()
        set_run_id()
        provider = await self._initialize()
        loaded = [provider.load_results(Path(p)) for p in paths]
        merged = ReportMerger(provider).merge(loaded)
        return await self._evaluate_and_report(provider, merged, context)

    # -- Internals ------------------------------------------------------------

    async def _evaluate_and_report(
        self, provider: CoverageProvider, results: Any, context: ReportContext
    ) -> CoverageRunResult:
        per_file, total = provider.summarize(results)
        evaluation = self._evaluator.evaluate(self.options.thresholds, per_file, total)

        await provider.report_coverage(results, context)

        with suppress_console_logs():
            print_violations(evaluation.violations, console=self._console)
        if evaluation.updated_thresholds and self.options.thresholds is not None:
            updated = apply_updates(self.options.thresholds, evaluation.updated_thresholds)
            if self._on_thresholds_updated is not None:
                self._on_thresholds_updated(updated)
            log.info("thresholds_auto_updated", count=len(evaluation.updated_thresholds))

        missing = self.missing_files
        if missing:
            with suppress_console_logs():
                self._console.print(
                    f"[yellow]![/yellow] Coverage is partial, payloads missing for "
                    f"{pluralize(len(missing), 'file')}: {format_path_list(missing)}",
                    highlight=False,
                )

        return CoverageRunResult(
            results=results,
            violations=evaluation.violations,
            updated_thresholds=evaluation.updated_thresholds,
            missing_files=missing,
        )

    @staticmethod
    def _next_results_path(directory: Path) -> Path:
        taken = [
            int(m.group(1))
            for p in (directory.iterdir() if directory.is_dir() else ())
            if (m := _RESULTS_FILE.match(p.name))
        ]
        return directory / f"coverage-{max(taken, default=0) + 1}.json"
