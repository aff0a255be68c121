# src/auditor/managers/audit_run_manager.py
import asyncio
import logging
import uuid
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict

from auditor.controllers.audit_controller import AuditPipeline
from auditor.engine.qngine import RuleEngine
from auditor.errors import InvalidInputError
from auditor.managers.config_manager import config_manager
from auditor.model import AuditResult, Failed, NotReady, PipelineRun, RunStage
from auditor.rules.registry import RulePackRegistry
from auditor.services.acquisition_service import DocumentAcquirer, DocumentAcquisitionService
from auditor.services.event_bus import EventBus, Subscription
from auditor.utils.loop_runner import ensure_background_loop, run_on_main_loop

logger = logging.getLogger(__name__)

RunOutcome = Union[AuditResult, NotReady, Failed]


class RunHandle(BaseModel):
    """Opaque reference to a started audit run."""
    model_config = ConfigDict(frozen=True)

    run_id: str
    url: str = ""


class AuditRunManager:
    """
    Entry point for callers: starts audits, exposes their event streams and results.

    Runs are independent; they share only the read-only rule registry, the rule engine
    and the acquisition collaborator. All methods except `audit_blocking` must be
    called from the event loop that runs the audits.
    """

    def __init__(
            self,
            registry: Optional[RulePackRegistry] = None,
            acquirer: Optional[DocumentAcquirer] = None,
            workers: Optional[int] = None
    ):
        self.registry = registry if registry is not None else RulePackRegistry.discover()
        self.registry.freeze()
        self.acquirer = acquirer if acquirer is not None else DocumentAcquisitionService()
        if workers is None:
            workers = int(config_manager.get_nested("engine.workers", 1))
        self.engine = RuleEngine(workers=workers)
        self._runs: Dict[str, AuditPipeline] = {}

    def start_audit(self, url: str = "", file: Optional[bytes] = None) -> RunHandle:
        """
        Starts a run on the current event loop.

        Raises:
            InvalidInputError: Neither a URL nor a file was given.
            RuntimeError: No event loop is running.
        """
        url = (url or "").strip()
        if not url and not file:
            raise InvalidInputError("An audit needs a URL or an uploaded file")
        asyncio.get_running_loop()

        run_id = uuid.uuid4().hex
        run = PipelineRun(run_id=run_id, url=url)
        pipeline = AuditPipeline(run, EventBus(run_id), self.registry, self.acquirer, self.engine)
        self._runs[run_id] = pipeline
        pipeline.start(file)

        logger.info("Started audit run %s for %s", run_id, url or "uploaded document")
        return RunHandle(run_id=run_id, url=url)

    def _pipeline(self, handle: RunHandle) -> AuditPipeline:
        try:
            return self._runs[handle.run_id]
        except KeyError:
            raise InvalidInputError(f"Unknown audit run '{handle.run_id}'") from None

    def subscribe(self, handle: RunHandle, replay: bool = False) -> Subscription:
        """Event stream of a run. Without `replay` only events published from now on are delivered."""
        return self._pipeline(handle).bus.subscribe(replay=replay)

    def cancel(self, handle: RunHandle) -> bool:
        return self._pipeline(handle).cancel()

    def get_run(self, handle: RunHandle) -> PipelineRun:
        return self._pipeline(handle).run

    def get_result(self, handle: RunHandle) -> RunOutcome:
        run = self._pipeline(handle).run
        if run.stage == RunStage.COMPLETED and run.result is not None:
            return run.result
        if run.stage in (RunStage.CANCELLED, RunStage.FAILED):
            return Failed(
                run_id=run.run_id,
                code=run.error_code or "",
                reason=run.error_message or run.stage.value,
                stage=run.stage,
            )
        return NotReady(run_id=run.run_id, stage=run.stage, progress=run.progress)

    async def wait(self, handle: RunHandle) -> RunOutcome:
        """Waits until the run is terminal and returns its outcome."""
        await self._pipeline(handle).wait()
        return self.get_result(handle)

    def active_runs(self) -> List[RunHandle]:
        return [
            RunHandle(run_id=p.run.run_id, url=p.run.url)
            for p in self._runs.values() if not p.run.is_terminal
        ]

    def forget(self, handle: RunHandle) -> None:
        """Drops a finished run from the manager."""
        pipeline = self._pipeline(handle)
        if not pipeline.run.is_terminal:
            raise InvalidInputError(f"Run '{handle.run_id}' is still active")
        del self._runs[handle.run_id]

    async def shutdown(self) -> None:
        """Cancels every active run and waits for them to finish."""
        for pipeline in list(self._runs.values()):
            pipeline.cancel()
        await asyncio.gather(*(p.wait() for p in self._runs.values()))

    # --- Synchronous bridge ---

    async def _run_to_end(self, url: str, file: Optional[bytes]) -> RunOutcome:
        handle = self.start_audit(url, file)
        return await self.wait(handle)

    def audit_blocking(self, url: str = "", file: Optional[bytes] = None, timeout: Optional[float] = None) -> RunOutcome:
        """
        Runs a full audit from synchronous code on the shared background loop.
        Input errors are raised here, before any run is created.
        """
        if not (url or "").strip() and not file:
            raise InvalidInputError("An audit needs a URL or an uploaded file")
        ensure_background_loop()
        return run_on_main_loop(self._run_to_end(url, file), timeout=timeout)
