# tests/core/test_audit_model.py
import pytest
from pydantic import ValidationError

from auditor.errors import AuditCancelledError
from auditor.model import (
    AuditResult, CancellationToken, Category, ComplianceStatus, Event, EventKind, RunStage, Severity, Violation
)


def _violation(selector, rule_id, severity=Severity.HIGH, category=Category.PERCEIVABLE, bfsi=False):
    return Violation(
        element_selector=selector,
        issue="Missing alt attribute on image",
        rule_id=rule_id,
        criterion="1.1.1 Non-text Content",
        severity=severity,
        category=category,
        fix="Add alt text",
        is_domain_specific=bfsi,
    )


@pytest.fixture
def result():
    violations = (
        _violation("img#logo", "image-alt"),
        _violation("input#pan", "bfsi-identifier-label", Severity.MEDIUM, Category.UNDERSTANDABLE, bfsi=True),
        _violation("html > body", "landmark-main", Severity.MEDIUM, Category.ROBUST),
    )
    return AuditResult(
        url="https://bank.example",
        total_elements=40,
        generic_violation_count=2,
        domain_flag_count=1,
        compliance_score=93,
        violations=violations,
        compliance_status=ComplianceStatus.COMPLIANT,
    )


def test_violation_report_uses_renderer_field_names():
    report = _violation("img#logo", "image-alt").to_report()
    assert report == {
        "element": "img#logo",
        "issue": "Missing alt attribute on image",
        "wcagRule": "1.1.1 Non-text Content",
        "severity": "High",
        "category": "Perceivable",
        "fix": "Add alt text",
        "isBFSI": False,
    }


def test_violation_is_immutable():
    v = _violation("img#logo", "image-alt")
    with pytest.raises(ValidationError):
        v.issue = "changed"
    assert v.dedup_key == ("img#logo", "image-alt")


def test_audit_result_report_structure(result):
    report = result.to_report()
    assert list(report) == ["url", "totalElements", "wcagViolations", "bfsiFlags", "complianceScore", "violations"]
    assert report["totalElements"] == 40
    assert report["bfsiFlags"] == 1
    assert [v["element"] for v in report["violations"]] == ["img#logo", "input#pan", "html > body"]


def test_audit_result_score_bounds():
    with pytest.raises(ValidationError):
        AuditResult(url="u", total_elements=1, generic_violation_count=0, domain_flag_count=0, compliance_score=101)


def test_breakdowns(result):
    assert result.category_breakdown() == {"Perceivable": 1, "Understandable": 1, "Robust": 1}
    assert result.severity_breakdown() == {"High": 1, "Medium": 2}


@pytest.mark.parametrize("mode, expected", [
    ("all", ["image-alt", "bfsi-identifier-label", "landmark-main"]),
    ("high", ["image-alt"]),
    ("bfsi", ["bfsi-identifier-label"]),
])
def test_filter_violations(result, mode, expected):
    assert [v.rule_id for v in result.filter_violations(mode)] == expected


def test_filter_violations_rejects_unknown_mode(result):
    with pytest.raises(ValueError):
        result.filter_violations("medium")


def test_terminal_stages():
    assert {s for s in RunStage if s.is_terminal} == {RunStage.COMPLETED, RunStage.CANCELLED, RunStage.FAILED}


def test_event_terminal_detection():
    done = Event(kind=EventKind.STAGE_CHANGE, run_id="r", sequence=3, payload={"stage": "Completed"})
    routing = Event(kind=EventKind.STAGE_CHANGE, run_id="r", sequence=2, payload={"stage": "Routing"})
    log = Event(kind=EventKind.LOG, run_id="r", sequence=1, payload={"stage": "Completed"})
    assert done.is_terminal
    assert not routing.is_terminal
    assert not log.is_terminal
    assert done.timestamp.tzinfo is not None


def test_cancellation_token():
    token = CancellationToken()
    token.raise_if_cancelled("scanning")
    token.cancel()
    assert token.cancelled
    with pytest.raises(AuditCancelledError, match="during scanning"):
        token.raise_if_cancelled("scanning")
