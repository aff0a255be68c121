# tests/engine/test_qngine.py
import threading
from typing import List
from unittest.mock import MagicMock

import pytest

from auditor.engine.qngine import RuleEngine
from auditor.errors import AuditCancelledError, InvalidInputError, RuleEvaluationError
from auditor.model import Category, Severity, Violation
from auditor.rules.base import Rule


class StubRule(Rule):
    """Flags a fixed list of selectors."""
    category = Category.PERCEIVABLE
    criterion = "1.1.1 Non-text Content"

    def __init__(self, rule_id: str, selectors=(), domain: bool = False):
        self.id = rule_id
        self.selectors = list(selectors)
        self.is_domain_specific = domain

    def evaluate(self, doc) -> List[Violation]:
        return [
            Violation(
                element_selector=s, issue=f"{self.id} on {s}", rule_id=self.id, criterion=self.criterion,
                severity=Severity.HIGH, category=self.category, fix="fix", is_domain_specific=self.is_domain_specific
            )
            for s in self.selectors
        ]


class BrokenRule(StubRule):
    def evaluate(self, doc):
        raise ZeroDivisionError("boom")


@pytest.fixture
def doc(make_doc):
    return make_doc("<div><img src='a.png'><img src='b.png'></div>")


def _keys(violations):
    return [(v.element_selector, v.rule_id) for v in violations]


def test_output_follows_pack_then_emission_order(doc):
    pack = [StubRule("a", ["x", "y"]), StubRule("b", ["y"]), StubRule("c", ["z", "x"])]
    violations = RuleEngine().evaluate(doc, pack)
    assert _keys(violations) == [("x", "a"), ("y", "a"), ("y", "b"), ("z", "c"), ("x", "c")]


def test_duplicate_selector_and_rule_pairs_keep_first(doc):
    pack = [StubRule("a", ["x", "x", "y"])]
    violations = RuleEngine().evaluate(doc, pack)
    assert _keys(violations) == [("x", "a"), ("y", "a")]


def test_evaluation_is_deterministic(doc, registry):
    engine = RuleEngine()
    assert engine.evaluate(doc, registry.all()) == engine.evaluate(doc, registry.all())


def test_parallel_matches_sequential(make_doc, bank_page, registry):
    doc = make_doc(bank_page)
    sequential = RuleEngine(workers=1).evaluate(doc, registry.all())
    parallel = RuleEngine(workers=4).evaluate(doc, registry.all())
    assert sequential
    assert parallel == sequential


def test_failing_rule_is_isolated(doc):
    on_diagnostic = MagicMock()
    pack = [StubRule("a", ["x"]), BrokenRule("broken", ["y"]), StubRule("c", ["z"])]

    violations = RuleEngine().evaluate(doc, pack, on_diagnostic=on_diagnostic)

    assert _keys(violations) == [("x", "a"), ("z", "c")]
    on_diagnostic.assert_called_once()
    err = on_diagnostic.call_args.args[0]
    assert isinstance(err, RuleEvaluationError)
    assert err.rule_id == "broken"
    assert isinstance(err.cause, ZeroDivisionError)


def test_failing_rule_is_isolated_in_parallel(doc):
    pack = [BrokenRule("broken"), StubRule("a", ["x"])]
    assert _keys(RuleEngine(workers=2).evaluate(doc, pack)) == [("x", "a")]


def test_duplicate_rule_ids_are_rejected(doc):
    with pytest.raises(InvalidInputError):
        RuleEngine().evaluate(doc, [StubRule("a"), StubRule("a")])


def test_empty_pack_yields_nothing(doc):
    assert RuleEngine().evaluate(doc, []) == []


def test_progress_callback_counts_rules(doc):
    calls = []
    RuleEngine().evaluate(doc, [StubRule("a"), StubRule("b"), StubRule("c")], on_rule_done=lambda d, t: calls.append((d, t)))
    assert calls == [(1, 3), (2, 3), (3, 3)]


def test_cancellation_stops_before_next_rule(doc):
    flag = threading.Event()

    class CancellingRule(StubRule):
        def evaluate(self, doc):
            flag.set()
            return super().evaluate(doc)

    late = MagicMock(spec=StubRule("late"))
    late.id = "late"
    pack = [CancellingRule("first", ["x"]), late]

    with pytest.raises(AuditCancelledError):
        RuleEngine().evaluate(doc, pack, should_cancel=flag.is_set)
    late.evaluate.assert_not_called()


def test_workers_are_clamped():
    assert RuleEngine(workers=0).workers == 1
    assert RuleEngine(workers="3").workers == 3
