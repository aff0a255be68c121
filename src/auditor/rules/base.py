# src/auditor/rules/base.py
import re
from abc import ABC, abstractmethod
from typing import ClassVar, Dict, Iterable, List, Optional

from auditor.dom.core import Element
from auditor.dom.models import DocumentModel
from auditor.model import Category, Severity, Violation

# Tags that can receive keyboard focus without a tabindex
NATIVELY_FOCUSABLE = {"button", "input", "select", "textarea", "summary", "iframe"}

# Form controls that need an accessible name
LABELABLE_INPUT_EXCLUDED_TYPES = {"hidden", "submit", "button", "reset", "image"}

LIVE_REGION_ROLES = {"alert", "status", "log", "marquee", "timer"}


class Rule(ABC):
    """
    Base class for all accessibility rules.

    Subclasses declare their metadata as class attributes and implement `evaluate`.
    Rules must be stateless: the same instance may be evaluated concurrently
    against several documents.
    """

    id: ClassVar[str]
    category: ClassVar[Category]
    criterion: ClassVar[str]
    default_severity: ClassVar[Severity] = Severity.MEDIUM
    is_domain_specific: ClassVar[bool] = False

    @abstractmethod
    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        """Evaluate a document and return zero or more Violations, in element order."""

    def violation(
            self,
            element: Element,
            issue: str,
            fix: str,
            severity: Optional[Severity] = None
    ) -> Violation:
        """Builds a Violation stamped with this rule's metadata."""
        return Violation(
            element_selector=element.selector,
            issue=issue,
            rule_id=self.id,
            criterion=self.criterion,
            severity=severity or self.default_severity,
            category=self.category,
            fix=fix,
            is_domain_specific=self.is_domain_specific,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r}>"


class DomainRule(Rule, ABC):
    """Base class for rules belonging to the BFSI (financial-services) overlay."""
    is_domain_specific: ClassVar[bool] = True


# --- Shared helpers ---

def is_true(value: Optional[str]) -> bool:
    return value is not None and value.strip().lower() in ("", "true", "1", "yes")


def parse_float(value: Optional[str]) -> Optional[float]:
    """Parses numeric attributes such as '2.8' or '2.8:1'."""
    if value is None:
        return None
    match = re.match(r"\s*(\d+(?:\.\d+)?)", value)
    return float(match.group(1)) if match else None


def identity_text(element: Element) -> str:
    """id, name and class of an element joined for keyword matching."""
    parts = [element.get("id", ""), element.get("name", ""), element.get("class", "")]
    return " ".join(p for p in parts if p).lower()


def is_labelable_control(element: Element) -> bool:
    if element.tag in ("select", "textarea"):
        return True
    if element.tag == "input":
        return element.get("type", "text").lower() not in LABELABLE_INPUT_EXCLUDED_TYPES
    return False


def is_focusable(element: Element) -> bool:
    if element.has("tabindex"):
        try:
            return int(element.get("tabindex")) >= 0
        except (TypeError, ValueError):
            return True
    if element.tag == "a":
        return element.has("href")
    return element.tag in NATIVELY_FOCUSABLE and not element.has("disabled")


def is_live_region(element: Element) -> bool:
    live = element.get("aria-live", "").lower()
    return bool(live and live != "off") or element.get("role", "").lower() in LIVE_REGION_ROLES


class LabelIndex:
    """
    Resolves accessible names for form controls within one document.
    Built once per evaluation; never shared between documents.
    """

    def __init__(self, doc: DocumentModel):
        self.label_text_by_id: Dict[str, str] = {}
        self.element_text_by_id: Dict[str, str] = {}
        for el in doc.iter_elements():
            if el.id:
                self.element_text_by_id.setdefault(el.id, el.text)
            if el.tag == "label" and el.get("for"):
                target = el.get("for")
                self.label_text_by_id[target] = (self.label_text_by_id.get(target, "") + " " + el.text).strip()

    def label_text(self, element: Element, ancestors: Iterable[Element] = ()) -> Optional[str]:
        """
        Text of the <label> associated with a control, via `for=id` or by wrapping it.
        Returns None when no label is associated.
        """
        if element.id and element.id in self.label_text_by_id:
            return self.label_text_by_id[element.id]
        for ancestor in ancestors:
            if ancestor.tag == "label":
                return ancestor.text
        return None

    def accessible_name(self, element: Element, ancestors: Iterable[Element] = ()) -> str:
        """Approximate accessible name: aria-labelledby, aria-label, label, title."""
        labelledby = element.get("aria-labelledby", "")
        if labelledby:
            names = [self.element_text_by_id.get(ref, "") for ref in labelledby.split()]
            joined = " ".join(n for n in names if n).strip()
            if joined:
                return joined
        aria_label = element.get("aria-label", "").strip()
        if aria_label:
            return aria_label
        label = self.label_text(element, ancestors)
        if label:
            return label.strip()
        return element.get("title", "").strip()

    def has_description(self, element: Element) -> bool:
        """True when the control carries format guidance (describedby, placeholder, pattern, title)."""
        describedby = element.get("aria-describedby", "")
        if any(self.element_text_by_id.get(ref) for ref in describedby.split()):
            return True
        return any(element.get(attr, "").strip() for attr in ("placeholder", "pattern", "title"))
