# src/auditor/rules/packs/robust.py
import re
from typing import List

from auditor.dom.models import DocumentModel
from auditor.model import Category, Severity, Violation
from auditor.rules.base import Rule, parse_float

PRIORITY = 40

# Elements that are interactive by nature and need no role
NATIVE_CONTROLS = {"a", "button", "input", "select", "textarea", "summary", "label", "option", "details", "area", "form"}
POINTER_HANDLERS = ("onclick", "onmousedown", "onmouseup", "ondblclick")


class LandmarkMainRule(Rule):
    id = "landmark-main"
    category = Category.ROBUST
    criterion = "4.1.2 Name, Role, Value"
    default_severity = Severity.MEDIUM

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        body = doc.find("body")
        if body is None:
            return []
        has_main = any(
            el.tag == "main" or el.get("role", "").lower() == "main"
            for el in body.iter()
        )
        if has_main:
            return []
        return [self.violation(
            body,
            "Missing ARIA landmark roles (no main landmark)",
            'Wrap the primary content in <main> or add role="main"'
        )]


class FakeInteractiveRule(Rule):
    id = "fake-interactive"
    category = Category.ROBUST
    criterion = "4.1.2 Name, Role, Value"
    default_severity = Severity.HIGH

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        res = []
        for el in doc.iter_elements():
            if el.tag in NATIVE_CONTROLS or el.tag in ("html", "body"):
                continue
            if not any(el.has(handler) for handler in POINTER_HANDLERS):
                continue
            if el.has("role"):
                continue
            res.append(self.violation(
                el,
                f"Clickable <{el.tag}> without button role",
                'Use a <button> element or add role="button" with tabindex="0"'
            ))
        return res


class ViewportZoomRule(Rule):
    id = "viewport-zoom"
    category = Category.ROBUST
    criterion = "1.4.4 Resize Text"
    default_severity = Severity.HIGH

    USER_SCALABLE_OFF = re.compile(r"user-scalable\s*=\s*(no|0)\b", re.IGNORECASE)
    MAXIMUM_SCALE = re.compile(r"maximum-scale\s*=\s*([\d.]+)", re.IGNORECASE)

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        res = []
        for meta in doc.find_all("meta"):
            if meta.get("name", "").lower() != "viewport":
                continue
            content = meta.get("content", "")
            if self.USER_SCALABLE_OFF.search(content):
                res.append(self.violation(
                    meta,
                    "Viewport zoom disabled (user-scalable=no)",
                    "Remove user-scalable=no from the viewport meta tag"
                ))
                continue
            match = self.MAXIMUM_SCALE.search(content)
            scale = parse_float(match.group(1)) if match else None
            if scale is not None and scale < 2:
                res.append(self.violation(
                    meta,
                    f"Viewport zoom limited (maximum-scale={scale:g})",
                    "Remove maximum-scale or set it to at least 2"
                ))
        return res


RULES = [
    LandmarkMainRule(),
    FakeInteractiveRule(),
    ViewportZoomRule(),
]
