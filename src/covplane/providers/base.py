"""Coverage provider protocol.

A provider is a pluggable backend that collects raw coverage from test
workers, turns it into a result set, and renders reports. The controller
talks to providers only through this interface.

Lifecycle:

    UNINITIALIZED -> INITIALIZED -> COLLECTING -> GENERATING -> REPORTED
                          |              |
                          +--------------+--> CLEANED (data discarded)

``clean`` may run before collection starts and on rerun; it removes outputs
and resets accumulated data. ``restart`` only resets the data. Both return
any initialized provider to INITIALIZED, including after a discarded or
failed run. ``discard`` drops accumulated data until the next restart. Calls
out of order raise InternalError.

Implementations fill in the hooks (``setup``, ``collect``, ``generate``,
``report``, ``remove_outputs``, ``reset``); the public methods enforce the
lifecycle around them.
"""

from __future__ import annotations

import abc
import json
import threading
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import structlog

from covplane.config.constants import RESULTS_TEMP_DIRNAME
from covplane.config.models import ResolvedCoverageOptions
from covplane.core.errors import (
    CapabilityError,
    CollectionError,
    CovPlaneError,
    GenerationError,
    InternalError,
)
from covplane.coverage.models import MetricPercentages

log = structlog.get_logger(__name__)


class ProviderState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    COLLECTING = "collecting"
    GENERATING = "generating"
    REPORTED = "reported"
    CLEANED = "cleaned"


# =============================================================================
# Contexts and payloads
# =============================================================================


@dataclass(frozen=True, slots=True)
class ProviderContext:
    """What a provider receives at initialization."""

    options: ResolvedCoverageOptions
    root: Path

    @property
    def reports_directory(self) -> Path:
        path = Path(self.options.reports_directory)
        return path if path.is_absolute() else (self.root / path).resolve()

    @property
    def results_directory(self) -> Path:
        """Temporary directory for persisted result blobs."""
        return self.reports_directory / RESULTS_TEMP_DIRNAME


@dataclass(frozen=True, slots=True)
class ReportContext:
    """Run information passed to generation and reporting.

    ``all_tests_run`` is False for filtered or partial runs; untested files
    are only synthesized when every test ran.
    """

    all_tests_run: bool = True


@dataclass(frozen=True, slots=True)
class AfterSuiteRunMeta:
    """Coverage payload for one test file, as sent by a worker."""

    file_path: str
    coverage: Any
    project_name: str = ""
    worker_id: int | str | None = None
    transform_mode: str = "ssr"

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.project_name, self.transform_mode, self.file_path)

    def to_json(self) -> str:
        return json.dumps(asdict(self), separators=(",", ":"))

    @classmethod
    def from_json(cls, data: str | bytes) -> AfterSuiteRunMeta:
        """Decode a worker message.

        Raises:
            CollectionError: The message is not a valid payload.
        """
        try:
            raw = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CollectionError.malformed_payload("<unknown>", f"invalid JSON: {e}") from e
        if not isinstance(raw, dict) or not isinstance(raw.get("file_path"), str):
            raise CollectionError.malformed_payload("<unknown>", "missing file_path")
        file_path = raw["file_path"]
        if "coverage" not in raw:
            raise CollectionError.malformed_payload(file_path, "missing coverage")
        return cls(
            file_path=file_path,
            coverage=raw["coverage"],
            project_name=str(raw.get("project_name") or ""),
            worker_id=raw.get("worker_id"),
            transform_mode=str(raw.get("transform_mode") or "ssr"),
        )


# =============================================================================
# Provider
# =============================================================================


_RESTARTABLE = (
    ProviderState.INITIALIZED,
    ProviderState.COLLECTING,
    ProviderState.GENERATING,
    ProviderState.REPORTED,
    ProviderState.CLEANED,
)


class CoverageProvider(abc.ABC):
    """Base class for coverage providers."""

    name: str

    def __init__(self) -> None:
        self._state = ProviderState.UNINITIALIZED
        self._state_lock = threading.Lock()
        self._context: ProviderContext | None = None

    @property
    def state(self) -> ProviderState:
        return self._state

    @property
    def context(self) -> ProviderContext:
        if self._context is None:
            raise InternalError.invalid_state("read context", self._state.value)
        return self._context

    def _advance(
        self,
        operation: str,
        allowed: tuple[ProviderState, ...],
        target: ProviderState | None,
    ) -> None:
        with self._state_lock:
            if self._state not in allowed:
                raise InternalError.invalid_state(operation, self._state.value)
            if target is not None:
                self._state = target

    # -- Lifecycle ------------------------------------------------------------

    async def initialize(self, ctx: ProviderContext) -> None:
        self._advance("initialize", (ProviderState.UNINITIALIZED,), None)
        self._context = ctx
        await self.setup(ctx)
        self._advance("initialize", (ProviderState.UNINITIALIZED,), ProviderState.INITIALIZED)
        log.debug("provider_initialized", provider=self.name, root=str(ctx.root))

    def resolve_options(self) -> ResolvedCoverageOptions:
        return self.context.options

    async def clean(self, force: bool = True) -> None:
        """Remove report outputs and reset accumulated data. Idempotent."""
        self._advance("clean", _RESTARTABLE, ProviderState.INITIALIZED)
        self.reset()
        await self.remove_outputs(force)

    def restart(self) -> None:
        """Reset accumulated data for a new run, keeping outputs on disk."""
        self._advance("restart", _RESTARTABLE, ProviderState.INITIALIZED)
        self.reset()
        log.debug("provider_restarted", provider=self.name)

    def discard(self) -> None:
        """Drop accumulated data without reporting."""
        self._advance(
            "discard",
            (
                ProviderState.INITIALIZED,
                ProviderState.COLLECTING,
                ProviderState.GENERATING,
                ProviderState.CLEANED,
            ),
            ProviderState.CLEANED,
        )
        self.reset()
        log.info("coverage_discarded", provider=self.name)

    async def on_after_suite_run(self, meta: AfterSuiteRunMeta) -> None:
        self._advance(
            "collect coverage",
            (ProviderState.INITIALIZED, ProviderState.COLLECTING),
            ProviderState.COLLECTING,
        )
        await self.collect(meta)

    async def generate_coverage(self, context: ReportContext) -> Any:
        """Build the result set. Called once per run.

        Raises:
            GenerationError: The provider failed to produce results.
        """
        self._advance(
            "generate coverage",
            (ProviderState.INITIALIZED, ProviderState.COLLECTING),
            ProviderState.GENERATING,
        )
        try:
            return await self.generate(context)
        except CovPlaneError:
            raise
        except Exception as e:
            raise GenerationError.failed(self.name, str(e)) from e

    async def report_coverage(self, results: Any, context: ReportContext) -> None:
        self._advance(
            "report coverage",
            (ProviderState.INITIALIZED, ProviderState.GENERATING, ProviderState.REPORTED),
            ProviderState.REPORTED,
        )
        await self.report(results, context)

    # -- Hooks ----------------------------------------------------------------

    @abc.abstractmethod
    async def setup(self, ctx: ProviderContext) -> None:
        """Prepare for collection. Raising aborts the run."""

    @abc.abstractmethod
    async def collect(self, meta: AfterSuiteRunMeta) -> None:
        """Accumulate one payload. May be called concurrently.

        Raises:
            CollectionError: The payload is malformed.
        """

    @abc.abstractmethod
    async def generate(self, context: ReportContext) -> Any:
        """Turn accumulated payloads into a result set."""

    @abc.abstractmethod
    async def report(self, results: Any, context: ReportContext) -> None:
        """Render every configured reporter."""

    @abc.abstractmethod
    async def remove_outputs(self, force: bool) -> None:
        """Delete report outputs (``force``) or only temporary results."""

    @abc.abstractmethod
    def reset(self) -> None:
        """Forget accumulated payloads."""

    # -- Results --------------------------------------------------------------

    @abc.abstractmethod
    def dropped_files(self) -> list[str]:
        """Files whose coverage was dropped during generation, sorted."""
        return []

    def summarize(
        self, results: Any
    ) -> tuple[dict[str, MetricPercentages], MetricPercentages]:
        """Per-file and aggregate percentages for threshold evaluation."""

    @abc.abstractmethod
    def dump_results(self, results: Any, path: Path) -> None:
        """Persist results so load_results can restore them."""

    @abc.abstractmethod
    def load_results(self, path: Path) -> Any:
        """Inverse of dump_results.

        Raises:
            GenerationError: The blob is missing or malformed.
        """

    # -- Capabilities ---------------------------------------------------------

    def supports_merge(self) -> bool:
        return False

    def merge_reports(self, results: list[Any]) -> Any:
        raise CapabilityError.unsupported(self.name, "merge_reports")

    def supports_file_transform(self) -> bool:
        return False

    def on_file_transform(self, source: str, file_id: str) -> str | None:
        """Instrument one source file. Returns None to leave it unchanged."""
        raise CapabilityError.unsupported(self.name, "on_file_transform")


# =============================================================================
# Provider module
# =============================================================================


class CoverageProviderModule(abc.ABC):
    """Entry point of a provider: a factory plus optional worker hooks.

    Worker hooks run inside test workers. ``take_coverage`` returns the
    payload that becomes ``AfterSuiteRunMeta.coverage`` and must be JSON
    serializable.
    """

    name: str

    @abc.abstractmethod
    def get_provider(self) -> CoverageProvider:
        """Create a fresh provider instance."""

    def has_worker_hooks(self) -> bool:
        return False

    def start_coverage(self) -> None:
        raise CapabilityError.unsupported(self.name, "start_coverage")

    def take_coverage(self) -> Any:
        raise CapabilityError.unsupported(self.name, "take_coverage")

    def stop_coverage(self) -> None:
        raise CapabilityError.unsupported(self.name, "stop_coverage")
