"""Worker-side coverage session.

Runs inside a test worker and drives a provider module's worker hooks:

    session = WorkerCoverageSession(module, project_name="web", worker_id=3)
    session.start()
    for test_file in assigned:
        run(test_file)
        send(session.take(test_file).to_json())
    session.stop()

Modules without worker hooks still produce one message per file, with a
null payload, so the controller sees every file that ran.
"""

from __future__ import annotations

from enum import Enum

import structlog

from covplane.core.errors import InternalError
from covplane.providers.base import AfterSuiteRunMeta, CoverageProviderModule

log = structlog.get_logger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    STARTED = "started"
    STOPPED = "stopped"


class WorkerCoverageSession:
    def __init__(
        self,
        module: CoverageProviderModule,
        *,
        project_name: str = "",
        worker_id: int | str | None = None,
        transform_mode: str = "ssr",
    ) -> None:
        self._module = module
        self._hooks = module.has_worker_hooks()
        self.project_name = project_name
        self.worker_id = worker_id
        self.transform_mode = transform_mode
        self.state = WorkerState.IDLE

    def start(self) -> None:
        if self.state is not WorkerState.IDLE:
            raise InternalError.invalid_state("start worker coverage", self.state.value)
        if self._hooks:
            self._module.start_coverage()
        self.state = WorkerState.STARTED
        log.debug("worker_coverage_started", worker_id=self.worker_id, provider=self._module.name)

    def take(self, file_path: str) -> AfterSuiteRunMeta:
        """Snapshot coverage for the test file that just finished."""
        if self.state is not WorkerState.STARTED:
            raise InternalError.invalid_state("take worker coverage", self.state.value)
        payload = self._module.take_coverage() if self._hooks else None
        return AfterSuiteRunMeta(
            file_path=file_path,
            coverage=payload,
            project_name=self.project_name,
            worker_id=self.worker_id,
            transform_mode=self.transform_mode,
        )

    def stop(self) -> None:
        if self.state is not WorkerState.STARTED:
            raise InternalError.invalid_state("stop worker coverage", self.state.value)
        if self._hooks:
            self._module.stop_coverage()
        self.state = WorkerState.STOPPED
        log.debug("worker_coverage_stopped", worker_id=self.worker_id)
