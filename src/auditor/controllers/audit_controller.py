# src/auditor/controllers/audit_controller.py
import asyncio
import logging
from functools import partial
from typing import Any, Dict, Optional

from auditor.controllers.async_controller import AsyncController
from auditor.dom.models import DocumentModel
from auditor.engine.qngine import RuleEngine
from auditor.engine.scoring import compliance_status, score
from auditor.errors import AuditCancelledError, AuditorError, ErrorCode, RuleEvaluationError
from auditor.model import AuditResult, EventKind, PipelineRun, RunStage, Severity
from auditor.rules.registry import RulePackRegistry
from auditor.services.acquisition_service import DocumentAcquirer
from auditor.services.event_bus import EventBus
from auditor.utils.run_timers import RunTimers

logger = logging.getLogger(__name__)

# Progress shown when a stage is entered
STAGE_PROGRESS = {
    RunStage.PENDING: 0,
    RunStage.SCANNING: 10,
    RunStage.ROUTING: 40,
    RunStage.REPORTING: 90,
    RunStage.COMPLETED: 100,
}
ROUTING_SPAN = 40


class AuditPipeline(AsyncController):
    """
    Drives one audit run through Scanning -> Routing -> Reporting -> Completed.

    The run record is written only from the worker task and from callbacks that the
    rule engine schedules back onto the loop. Every run ends with exactly one terminal
    StageChange event (Completed, Cancelled or Failed).
    """

    def __init__(
            self,
            run: PipelineRun,
            bus: EventBus,
            registry: RulePackRegistry,
            acquirer: DocumentAcquirer,
            engine: Optional[RuleEngine] = None
    ):
        super().__init__()
        self.run = run
        self.bus = bus
        self.registry = registry
        self.acquirer = acquirer
        self.engine = engine or RuleEngine()
        self.timers = RunTimers()

        self._pack = []
        self._acquire_task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # --- Lifecycle ---

    def start(self, file: Optional[bytes] = None) -> asyncio.Task:
        """Schedules the run on the running event loop and returns its task."""
        if self._worker_task is not None:
            return self._worker_task
        self._loop = asyncio.get_running_loop()
        self._worker_task = self._loop.create_task(self._drive(file), name=f"audit-{self.run.run_id}")
        return self._worker_task

    async def setup(self):
        if self._setup_done:
            return
        # Snapshot the pack: the registry is read-only while runs are active
        self._pack = self.registry.all()
        await super().setup()

    def cancel(self) -> bool:
        """
        Requests cooperative cancellation. Returns False when the run already finished.
        Must be called from the loop thread.
        """
        if self.run.is_terminal:
            return False
        if not self.run.token.cancelled:
            logger.info("Run %s: cancellation requested during %s", self.run.run_id, self.run.stage.value)
            self.run.token.cancel()
        if self._acquire_task is not None and not self._acquire_task.done():
            self._acquire_task.cancel()
        return True

    # --- Stages ---

    async def _drive(self, file: Optional[bytes]) -> None:
        run = self.run
        try:
            await self.setup()
            run.token.raise_if_cancelled("startup")

            self._enter(RunStage.SCANNING)
            self._log("info", f"Scanning {run.url or 'uploaded document'}")
            self._acquire_task = asyncio.ensure_future(self.acquirer.acquire(run.url, file, run.token))
            doc = await self._acquire_task
            run.token.raise_if_cancelled("scanning")
            self._log("info", f"Document parsed: {doc.element_count} elements")

            self._enter(RunStage.ROUTING)
            self._log("info", f"Routing through {len(self._pack)} rules")
            violations = await self._loop.run_in_executor(None, partial(
                self.engine.evaluate,
                doc,
                self._pack,
                on_diagnostic=self._from_thread(self._on_diagnostic),
                on_rule_done=self._from_thread(self._on_rule_done),
                should_cancel=lambda: run.token.cancelled,
            ))
            run.token.raise_if_cancelled("routing")
            for v in violations:
                level = "error" if v.severity == Severity.HIGH else "warning"
                self._log(level, f"{v.criterion}: {v.issue}", selector=v.element_selector, rule=v.rule_id,
                          bfsi=v.is_domain_specific)

            self._enter(RunStage.REPORTING)
            self._log("info", f"Scoring {len(violations)} violations against {doc.element_count} elements")
            result = self._assemble(doc, violations)
            run.token.raise_if_cancelled("reporting")

            run.result = result
            self._log("info", f"Report ready: score {result.compliance_score}, {len(result.violations)} violations")
            self._finish(RunStage.COMPLETED)

        except asyncio.CancelledError:
            external = not run.token.cancelled
            run.token.cancel()
            self._finish(RunStage.CANCELLED)
            if external:
                raise
        except AuditCancelledError:
            self._finish(RunStage.CANCELLED)
        except AuditorError as e:
            if run.token.cancelled:
                self._finish(RunStage.CANCELLED)
            else:
                logger.error("Run %s failed during %s: %s", run.run_id, run.stage.value, e.message)
                self._finish(RunStage.FAILED, code=e.code.value, message=e.message)
        except Exception as e:
            logger.exception("Run %s failed unexpectedly during %s", run.run_id, run.stage.value)
            self._finish(RunStage.FAILED, code=ErrorCode.INTERNAL.value, message=str(e) or type(e).__name__)

    def _assemble(self, doc: DocumentModel, violations) -> AuditResult:
        card = score(doc.element_count, violations)
        return AuditResult(
            url=doc.url,
            total_elements=doc.element_count,
            generic_violation_count=card.generic_count,
            domain_flag_count=card.domain_flag_count,
            compliance_score=card.compliance_score,
            violations=tuple(violations),
            compliance_status=compliance_status(card.compliance_score),
        )

    # --- Events ---

    def _emit(self, kind: EventKind, payload: Dict[str, Any], terminal: bool = False) -> None:
        # After cancellation only the terminal StageChange goes out
        if self.run.is_terminal or (self.run.token.cancelled and not terminal):
            return
        self.bus.emit(kind, payload)

    def _enter(self, stage: RunStage) -> None:
        previous = self.run.stage
        self.run.stage = stage
        self.timers.start(stage.value)
        self._emit(EventKind.STAGE_CHANGE, {"stage": stage.value, "previous": previous.value})
        self._set_progress(STAGE_PROGRESS[stage])
        logger.debug("Run %s: %s -> %s", self.run.run_id, previous.value, stage.value)

    def _set_progress(self, progress: int) -> None:
        if progress <= self.run.progress and self.run.progress:
            return
        self.run.progress = progress
        self._emit(EventKind.PROGRESS, {"stage": self.run.stage.value, "progress": progress})

    def _log(self, level: str, message: str, **extra: Any) -> None:
        if self.run.token.cancelled or self.run.is_terminal:
            return
        entry = {"level": level, "message": message, **extra}
        self.run.logs.append(entry)
        self._emit(EventKind.LOG, entry)

    def _finish(self, stage: RunStage, code: Optional[str] = None, message: Optional[str] = None) -> None:
        run = self.run
        if run.is_terminal:
            return
        self.timers.stop()
        run.durations = self.timers.durations

        if stage == RunStage.COMPLETED:
            self._set_progress(STAGE_PROGRESS[RunStage.COMPLETED])

        payload: Dict[str, Any] = {"stage": stage.value, "previous": run.stage.value, "durations": run.durations}
        if stage == RunStage.COMPLETED and run.result is not None:
            payload["result"] = run.result.to_report()
        if stage == RunStage.CANCELLED:
            run.result = None
            code, message = ErrorCode.CANCELLED.value, "Audit cancelled"
        if code is not None:
            run.error_code, run.error_message = code, message
            payload["error"] = {"code": code, "message": message}

        self._emit(EventKind.STAGE_CHANGE, payload, terminal=True)
        run.stage = stage
        logger.info("Run %s %s in %.3fs", run.run_id, stage.value.lower(), self.timers.total)

    # --- Engine callbacks (worker threads) ---

    def _from_thread(self, callback):
        loop = self._loop

        def schedule(*args):
            loop.call_soon_threadsafe(callback, *args)

        return schedule

    def _on_rule_done(self, done: int, total: int) -> None:
        if self.run.stage != RunStage.ROUTING:
            return
        progress = STAGE_PROGRESS[RunStage.ROUTING] + (ROUTING_SPAN * done) // max(total, 1)
        self._set_progress(progress)

    def _on_diagnostic(self, error: RuleEvaluationError) -> None:
        self._log("warning", error.message, rule=error.rule_id, code=error.code.value)
