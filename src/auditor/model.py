# src/auditor/model.py
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from auditor.errors import AuditCancelledError


class Category(str, Enum):
    """The four WCAG principles used to classify violations."""
    PERCEIVABLE = "Perceivable"
    OPERABLE = "Operable"
    UNDERSTANDABLE = "Understandable"
    ROBUST = "Robust"


class Severity(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class ComplianceStatus(str, Enum):
    COMPLIANT = "Compliant"
    PARTIALLY_COMPLIANT = "Partially Compliant"
    NON_COMPLIANT = "Non-Compliant"


class Violation(BaseModel):
    """
    A single accessibility defect found by a rule.

    Serialization aliases are the field names the report renderer depends on;
    `rule_id` is a back-reference used for deduplication and is not part of the report.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    element_selector: str = Field(serialization_alias="element")
    issue: str
    rule_id: str
    criterion: str = Field(serialization_alias="wcagRule")
    severity: Severity
    category: Category
    fix: str
    is_domain_specific: bool = Field(default=False, serialization_alias="isBFSI")

    @property
    def dedup_key(self) -> Tuple[str, str]:
        return self.element_selector, self.rule_id

    def to_report(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude={"rule_id"})


class AuditResult(BaseModel):
    """
    Final, immutable outcome of a completed audit run.
    Produced exactly once per run by the orchestrator.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str
    total_elements: int = Field(serialization_alias="totalElements")
    generic_violation_count: int = Field(serialization_alias="wcagViolations")
    domain_flag_count: int = Field(serialization_alias="bfsiFlags")
    compliance_score: int = Field(serialization_alias="complianceScore", ge=0, le=100)
    violations: Tuple[Violation, ...] = ()
    compliance_status: ComplianceStatus = ComplianceStatus.NON_COMPLIANT

    def to_report(self) -> Dict[str, Any]:
        """Serializes to the literal structure consumed by the report renderer."""
        data = self.model_dump(mode="json", by_alias=True, exclude={"violations", "compliance_status"})
        data["violations"] = [v.to_report() for v in self.violations]
        return data

    def category_breakdown(self) -> Dict[str, int]:
        """Violation counts per WCAG principle, zero-count principles omitted."""
        counts = {c.value: 0 for c in Category}
        for v in self.violations:
            counts[v.category.value] += 1
        return {k: n for k, n in counts.items() if n}

    def severity_breakdown(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in Severity}
        for v in self.violations:
            counts[v.severity.value] += 1
        return {k: n for k, n in counts.items() if n}

    def filter_violations(self, mode: str = "all") -> List[Violation]:
        """Dashboard filter: 'all', 'high' (High severity only) or 'bfsi' (domain flags only)."""
        if mode == "all":
            return list(self.violations)
        if mode == "high":
            return [v for v in self.violations if v.severity == Severity.HIGH]
        if mode == "bfsi":
            return [v for v in self.violations if v.is_domain_specific]
        raise ValueError(f"Unknown violation filter: {mode!r}")


# --- Pipeline state ---

class RunStage(str, Enum):
    PENDING = "Pending"
    SCANNING = "Scanning"
    ROUTING = "Routing"
    REPORTING = "Reporting"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStage.COMPLETED, RunStage.CANCELLED, RunStage.FAILED)


class EventKind(str, Enum):
    PROGRESS = "Progress"
    LOG = "Log"
    STAGE_CHANGE = "StageChange"


class Event(BaseModel):
    """An immutable, timestamped progress/log/stage notification for one run."""
    model_config = ConfigDict(frozen=True)

    kind: EventKind
    run_id: str
    sequence: int
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        if self.kind != EventKind.STAGE_CHANGE:
            return False
        try:
            return RunStage(self.payload.get("stage")).is_terminal
        except ValueError:
            return False


class NotReady(BaseModel):
    """Returned by the run manager while a run has not reached a terminal state."""
    model_config = ConfigDict(frozen=True)

    run_id: str
    stage: RunStage
    progress: int = 0


class Failed(BaseModel):
    """Returned by the run manager for runs that ended without a result (failed or cancelled)."""
    model_config = ConfigDict(frozen=True)

    run_id: str
    code: str
    reason: str
    stage: Optional[RunStage] = None


class CancellationToken:
    """
    Thread-safe cancellation flag shared by a run's orchestrator, acquirer and rule engine.
    Cancellation is cooperative: holders poll `cancelled` at their own checkpoints.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, where: str = "") -> None:
        if self._event.is_set():
            raise AuditCancelledError(f"Audit cancelled{' during ' + where if where else ''}")


class PipelineRun(BaseModel):
    """
    Mutable state record of one audit run. Only the orchestrator task writes to it.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    run_id: str
    url: str
    stage: RunStage = RunStage.PENDING
    progress: int = 0
    logs: List[Dict[str, Any]] = Field(default_factory=list)
    token: CancellationToken = Field(default_factory=CancellationToken, exclude=True)
    result: Optional[AuditResult] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    durations: Dict[str, float] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.stage.is_terminal
