"""Shared machinery for the built-in providers.

BaseCoverageProvider implements everything except payload decoding:
accumulation, include/exclude filtering, untested-file synthesis, result
persistence, max-hit merging and reporting. Subclasses supply
``validate_payload``, ``iter_entries`` and ``to_file_coverage``.

RuntimeCoverageStore is the in-worker buffer that instrumented code writes
counters into; the built-in modules' worker hooks read it.
"""

from __future__ import annotations

import abc
import asyncio
import copy
import shutil
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import structlog

from covplane.core.errors import CollectionError
from covplane.core.excludes import ExclusionFilter
from covplane.coverage.merge import merge_file_coverage, merge_reports
from covplane.coverage.models import CoverageReport, FileCoverage, MetricPercentages
from covplane.coverage.processing import ConcurrencyLimitedProcessor
from covplane.coverage.report import read_results, write_reports, write_results
from covplane.providers.base import (
    AfterSuiteRunMeta,
    CoverageProvider,
    CoverageProviderModule,
    ProviderContext,
    ReportContext,
)

log = structlog.get_logger(__name__)

SuiteKey = tuple[str, str, str]

_COMMENT_PREFIXES = ("//", "/*", "*", "#")


def is_blank_or_comment(text: str) -> bool:
    stripped = text.strip()
    return not stripped or stripped.startswith(_COMMENT_PREFIXES)


def split_source_lines(source: str) -> list[str]:
    """Source lines without terminators; a trailing newline adds no line."""
    lines = source.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line.rstrip("\r") for line in lines]


class BaseCoverageProvider(CoverageProvider):
    """Provider whose result set is a CoverageReport."""

    def __init__(self) -> None:
        super().__init__()
        self._filter: ExclusionFilter | None = None
        self._payloads: dict[SuiteKey, list[Any]] = {}
        self._dropped: set[str] = set()
        self._lock = threading.Lock()

    @property
    def exclusion_filter(self) -> ExclusionFilter:
        if self._filter is None:
            self._filter = ExclusionFilter.from_options(self.context.options, self.context.root)
        return self._filter

    # -- Payload decoding -----------------------------------------------------

    @abc.abstractmethod
    def validate_payload(self, payload: Any) -> None:
        """Cheap shape check. Raises ValueError describing the problem."""

    @abc.abstractmethod
    def iter_entries(self, payload: Any) -> Iterable[tuple[str, Any]]:
        """Yield ``(raw_path, data)`` for each file in a payload."""

    @abc.abstractmethod
    def to_file_coverage(self, path: str, data: Any) -> FileCoverage | None:
        """Convert one entry. ``path`` is already root-relative.

        Returning None drops the entry (e.g. it remaps outside the root).
        """

    def is_countable_line(self, text: str) -> bool:
        return bool(text.strip())

    # -- Hooks ----------------------------------------------------------------

    async def setup(self, ctx: ProviderContext) -> None:
        self._filter = ExclusionFilter.from_options(ctx.options, ctx.root)

    async def collect(self, meta: AfterSuiteRunMeta) -> None:
        try:
            self.validate_payload(meta.coverage)
        except ValueError as e:
            raise CollectionError.malformed_payload(meta.file_path, str(e)) from e
        with self._lock:
            self._payloads.setdefault(meta.key, []).append(meta.coverage)

    def reset(self) -> None:
        with self._lock:
            self._payloads.clear()
            self._dropped.clear()

    def dropped_files(self) -> list[str]:
        with self._lock:
            return sorted(self._dropped)

    def _drop(self, path: str, error: Exception) -> None:
        log.warning("coverage_entry_dropped", path=path, error=str(error))
        with self._lock:
            self._dropped.add(path)

    async def remove_outputs(self, force: bool) -> None:
        await asyncio.to_thread(self._remove_outputs, force)

    def _remove_outputs(self, force: bool) -> None:
        ctx = self.context
        if force and ctx.reports_directory.exists():
            shutil.rmtree(ctx.reports_directory)
        elif ctx.results_directory.exists():
            shutil.rmtree(ctx.results_directory)
        ctx.results_directory.mkdir(parents=True, exist_ok=True)
        log.debug("coverage_outputs_cleaned", directory=str(ctx.reports_directory), force=force)

    async def generate(self, context: ReportContext) -> CoverageReport:
        options = self.context.options
        with self._lock:
            entries = [
                payload
                for _, payloads in sorted(self._payloads.items())
                for payload in payloads
            ]

        processor = ConcurrencyLimitedProcessor(options.processing_concurrency)
        converted = await processor.process_all(
            entries, lambda payload: asyncio.to_thread(self._convert_payload, payload)
        )

        by_path: dict[str, list[FileCoverage]] = {}
        for batch in converted:
            for fc in batch:
                by_path.setdefault(fc.path, []).append(fc)

        files = {
            path: group[0] if len(group) == 1 else merge_file_coverage(group)
            for path, group in sorted(by_path.items())
        }

        if options.all and context.all_tests_run:
            flt = self.exclusion_filter
            sources = await asyncio.to_thread(lambda: list(flt.iter_source_files()))
            untested = [path for path in sources if path not in files]
            for fc in await processor.process_all(
                untested, lambda path: asyncio.to_thread(self._empty_or_drop, path)
            ):
                if fc is not None:
                    files[fc.path] = fc
            if untested:
                log.debug("untested_files_added", count=len(untested))

        log.info(
            "coverage_generated",
            provider=self.name,
            payloads=len(entries),
            files=len(files),
            max_in_flight=processor.max_in_flight,
        )
        return CoverageReport(provider=self.name, files=dict(sorted(files.items())))

    def _convert_payload(self, payload: Any) -> list[FileCoverage]:
        flt = self.exclusion_filter
        remap_check = self.context.options.exclude_after_remap
        out: list[FileCoverage] = []
        for raw_path, data in self.iter_entries(payload):
            rel = flt.relativize(raw_path)
            if rel is None or not flt.is_included(rel):
                continue
            try:
                fc = self.to_file_coverage(rel, data)
            except (OSError, KeyError, TypeError, ValueError) as e:
                self._drop(rel, e)
                continue
            if fc is None:
                continue
            if remap_check and not flt.is_included(fc.path):
                continue
            out.append(fc)
        return out

    def _empty_or_drop(self, path: str) -> FileCoverage | None:
        try:
            return self.empty_coverage(path)
        except OSError as e:
            self._drop(path, e)
            return None

    def read_source(self, path: str) -> str:
        source_path = Path(path)
        if not source_path.is_absolute():
            source_path = self.context.root / source_path
        return source_path.read_text(encoding="utf-8", errors="replace")

    def empty_coverage(self, path: str) -> FileCoverage:
        """Zero-hit coverage for a file no test loaded."""
        fc = FileCoverage(path=path)
        for number, text in enumerate(split_source_lines(self.read_source(path)), start=1):
            if not self.is_countable_line(text):
                continue
            fc.lines[number] = 0
            fc.statements[(number, len(text) - len(text.lstrip()))] = 0
        return fc

    async def report(self, results: CoverageReport, context: ReportContext) -> None:
        options = self.context.options
        written = write_reports(
            results,
            options.reporter,
            self.context.reports_directory,
            watermarks=options.watermarks,
            skip_full=options.skip_full,
        )
        log.info("coverage_reported", provider=self.name, reporters=written)

    # -- Results --------------------------------------------------------------

    def summarize(
        self, results: CoverageReport
    ) -> tuple[dict[str, MetricPercentages], MetricPercentages]:
        return results.per_file_percentages(), results.summary.percentages

    def dump_results(self, results: CoverageReport, path: Path) -> None:
        write_results(results, path)

    def load_results(self, path: Path) -> CoverageReport:
        return read_results(path)

    def supports_merge(self) -> bool:
        return True

    def merge_reports(self, results: list[CoverageReport]) -> CoverageReport:
        return merge_reports(results)


# =============================================================================
# Worker runtime
# =============================================================================


class RuntimeCoverageStore:
    """Per-worker counter buffer keyed by file.

    Instrumented code calls ``record``; ``take`` hands out a snapshot and
    starts the next test file from empty.
    """

    def __init__(self) -> None:
        self._entries: dict[str, Any] = {}
        self._lock = threading.Lock()
        self.active = False

    def record(self, key: str, data: Any) -> None:
        with self._lock:
            if self.active:
                self._entries[key] = data

    def take(self) -> dict[str, Any]:
        with self._lock:
            snapshot = copy.deepcopy(self._entries)
            self._entries.clear()
        return snapshot

    def start(self) -> None:
        with self._lock:
            self._entries.clear()
            self.active = True

    def stop(self) -> None:
        with self._lock:
            self._entries.clear()
            self.active = False


class StoreBackedModule(CoverageProviderModule):
    """Provider module whose worker hooks read a RuntimeCoverageStore."""

    def __init__(self, store: RuntimeCoverageStore | None = None) -> None:
        self.store = store or RuntimeCoverageStore()

    def has_worker_hooks(self) -> bool:
        return True

    def start_coverage(self) -> None:
        self.store.start()

    def take_coverage(self) -> Any:
        return self.format_payload(self.store.take())

    def stop_coverage(self) -> None:
        self.store.stop()

    def format_payload(self, entries: dict[str, Any]) -> Any:
        return entries
