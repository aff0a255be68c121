# src/auditor/engine/scoring.py
import math
from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict

from auditor.errors import InvalidInputError
from auditor.managers.config_manager import config_manager
from auditor.model import ComplianceStatus, Violation


class ScoreCard(BaseModel):
    model_config = ConfigDict(frozen=True)

    compliance_score: int
    generic_count: int
    domain_flag_count: int


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def score(total_elements: int, violations: Sequence[Violation]) -> ScoreCard:
    """
    Compliance score = share of elements without a violation, as a 0-100 integer.

    Every violation weighs the same regardless of severity.
    Raises InvalidInputError when the document has no elements.
    """
    if total_elements <= 0:
        raise InvalidInputError(f"Cannot score a document with {total_elements} elements")

    domain = sum(1 for v in violations if v.is_domain_specific)
    generic = len(violations) - domain
    raw = (total_elements - len(violations)) / total_elements * 100
    return ScoreCard(
        compliance_score=max(0, min(100, round_half_up(raw))),
        generic_count=generic,
        domain_flag_count=domain,
    )


def compliance_status(
        compliance_score: int,
        compliant_threshold: Optional[int] = None,
        partial_threshold: Optional[int] = None
) -> ComplianceStatus:
    if compliant_threshold is None:
        compliant_threshold = int(config_manager.get_nested("scoring.compliant_threshold", 90))
    if partial_threshold is None:
        partial_threshold = int(config_manager.get_nested("scoring.partial_threshold", 70))

    if compliance_score >= compliant_threshold:
        return ComplianceStatus.COMPLIANT
    if compliance_score >= partial_threshold:
        return ComplianceStatus.PARTIALLY_COMPLIANT
    return ComplianceStatus.NON_COMPLIANT
