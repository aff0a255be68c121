# src/auditor/engine/qngine.py
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence

from auditor.dom.models import DocumentModel
from auditor.errors import AuditCancelledError, InvalidInputError, RuleEvaluationError
from auditor.model import Violation
from auditor.rules.base import Rule

logger = logging.getLogger(__name__)

DiagnosticCallback = Callable[[RuleEvaluationError], None]
ProgressCallback = Callable[[int, int], None]
CancelCheck = Callable[[], bool]


class RuleEngine:
    """
    Quality Engine for accessibility audits.

    Applies every rule of a pack to a Document Model and merges the findings into a
    single, deterministic Violation sequence: pack order first, then the order in
    which each rule emitted its findings. Duplicate (selector, rule id) pairs keep
    their first occurrence.
    """

    def __init__(self, workers: int = 1):
        self.workers = max(1, int(workers))

    def evaluate(
            self,
            doc: DocumentModel,
            pack: Sequence[Rule],
            on_diagnostic: Optional[DiagnosticCallback] = None,
            on_rule_done: Optional[ProgressCallback] = None,
            should_cancel: Optional[CancelCheck] = None
    ) -> List[Violation]:
        """
        Runs the pack against the document.

        A rule that raises contributes nothing; the error is wrapped in a
        RuleEvaluationError, logged, and handed to `on_diagnostic`.
        Raises AuditCancelledError as soon as `should_cancel()` turns true before a rule starts.
        """
        rules = list(pack)
        seen_ids = set()
        for rule in rules:
            if rule.id in seen_ids:
                raise InvalidInputError(f"Rule pack contains duplicate rule id '{rule.id}'")
            seen_ids.add(rule.id)

        total = len(rules)
        per_rule: List[List[Violation]] = [[] for _ in rules]

        def run_one(index: int) -> None:
            if should_cancel and should_cancel():
                raise AuditCancelledError("Audit cancelled during rule evaluation")
            per_rule[index] = self._run_rule(rules[index], doc, on_diagnostic)

        if self.workers == 1 or total < 2:
            for i in range(total):
                run_one(i)
                if on_rule_done:
                    on_rule_done(i + 1, total)
        else:
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                futures = [executor.submit(run_one, i) for i in range(total)]
                try:
                    # Results are slotted by pack index, so completion order does not matter
                    for done, future in enumerate(futures, start=1):
                        future.result()
                        if on_rule_done:
                            on_rule_done(done, total)
                except AuditCancelledError:
                    for f in futures:
                        f.cancel()
                    raise

        return self._merge(per_rule)

    @staticmethod
    def _run_rule(rule: Rule, doc: DocumentModel, on_diagnostic: Optional[DiagnosticCallback]) -> List[Violation]:
        try:
            return list(rule.evaluate(doc))
        except Exception as e:
            err = RuleEvaluationError(rule.id, e)
            logger.warning(err.message, exc_info=logger.isEnabledFor(logging.DEBUG))
            if on_diagnostic:
                on_diagnostic(err)
            return []

    @staticmethod
    def _merge(per_rule: List[List[Violation]]) -> List[Violation]:
        merged: List[Violation] = []
        seen = set()
        for violations in per_rule:
            for v in violations:
                if v.dedup_key in seen:
                    continue
                seen.add(v.dedup_key)
                merged.append(v)
        return merged
