# src/auditor/rules/packs/understandable.py
import re
from typing import List

from auditor.dom.models import DocumentModel
from auditor.model import Category, Severity, Violation
from auditor.rules.base import LabelIndex, Rule, identity_text, is_labelable_control, is_live_region

PRIORITY = 30

LANG_CODE = re.compile(r"^[a-zA-Z]{2,3}(-[a-zA-Z0-9]{2,8})*$")
FORMAT_SENSITIVE = re.compile(r"date|dob|birth|expiry|exp[-_]?date|phone|mobile|\btel\b|zip|postal|postcode")
FORMAT_HINT_IN_LABEL = re.compile(r"\b(mm|dd|yyyy|yy|format|e\.g\.?|eg)\b|\d{3}[-\s]\d{3}|[/(]", re.IGNORECASE)
VISUAL_REQUIRED = re.compile(r"\*|\(required\)|\brequired\b", re.IGNORECASE)


def _is_required(element) -> bool:
    return element.has("required") or element.get("aria-required", "").lower() == "true"


class FormLabelRule(Rule):
    id = "form-label"
    category = Category.UNDERSTANDABLE
    criterion = "3.3.2 Labels or Instructions"
    default_severity = Severity.HIGH

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        labels = LabelIndex(doc)
        res = []
        for el, ancestors in doc.walk():
            if not is_labelable_control(el) or el.get("aria-hidden", "").lower() == "true":
                continue
            if labels.accessible_name(el, ancestors):
                continue

            target = f'for="{el.id}"' if el.id else 'for="…"'
            if el.tag == "select":
                issue = "Dropdown missing accessible name"
            else:
                issue = "Form input missing associated label"
            res.append(self.violation(el, issue, f"Add a visible <label {target}> or an aria-label"))
        return res


class RequiredIndicatorRule(Rule):
    id = "required-indicator"
    category = Category.UNDERSTANDABLE
    criterion = "3.3.2 Labels or Instructions"
    default_severity = Severity.HIGH

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        labels = LabelIndex(doc)
        res = []
        for el, ancestors in doc.walk():
            if not is_labelable_control(el):
                continue
            label = labels.label_text(el, ancestors) or ""
            visually_required = bool(VISUAL_REQUIRED.search(label)) or "required" in [c.lower() for c in el.classes]

            if visually_required and not _is_required(el):
                res.append(self.violation(
                    el,
                    "Required field not indicated programmatically",
                    'Add the required attribute or aria-required="true"'
                ))
            elif _is_required(el) and label and not visually_required:
                res.append(self.violation(
                    el,
                    "Required field has no visible indication",
                    'Add a visual indicator such as "*" or "(required)" to the label',
                    severity=Severity.MEDIUM
                ))
        return res


class InputFormatRule(Rule):
    id = "input-format"
    category = Category.UNDERSTANDABLE
    criterion = "3.3.2 Labels or Instructions"
    default_severity = Severity.MEDIUM

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        labels = LabelIndex(doc)
        res = []
        for el, ancestors in doc.walk():
            if el.tag != "input":
                continue
            input_type = el.get("type", "text").lower()
            if input_type not in ("text", "tel"):
                continue
            if input_type != "tel" and not FORMAT_SENSITIVE.search(identity_text(el)):
                continue
            if labels.has_description(el):
                continue
            label = labels.label_text(el, ancestors) or el.get("aria-label", "")
            if FORMAT_HINT_IN_LABEL.search(label):
                continue

            res.append(self.violation(
                el,
                "Expected input format not specified",
                'Add helper text referenced by aria-describedby, e.g. "Format: DD/MM/YYYY"'
            ))
        return res


class ErrorIdentificationRule(Rule):
    id = "error-identification"
    category = Category.UNDERSTANDABLE
    criterion = "3.3.1 Error Identification"
    default_severity = Severity.HIGH

    VALIDATED_TYPES = {"email", "number", "tel", "url", "date"}

    def _is_validated(self, el) -> bool:
        if not is_labelable_control(el):
            return False
        return (
            _is_required(el)
            or any(el.has(attr) for attr in ("pattern", "min", "max", "minlength", "maxlength"))
            or el.get("type", "").lower() in self.VALIDATED_TYPES
        )

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        res = []
        for form in doc.find_all("form"):
            inner = list(form.descendants())
            if not any(self._is_validated(el) for el in inner):
                continue
            announced = (
                is_live_region(form)
                or any(is_live_region(el) for el in inner)
                or any(el.has("aria-errormessage") for el in inner)
            )
            if not announced:
                res.append(self.violation(
                    form,
                    "Form errors not announced to screen readers",
                    'Add an aria-live="polite" (or role="alert") region for validation messages'
                ))
        return res


class HtmlLangRule(Rule):
    id = "html-lang"
    category = Category.UNDERSTANDABLE
    criterion = "3.1.1 Language of Page"
    default_severity = Severity.HIGH

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        html = doc.root if doc.root.tag == "html" else None
        if html is None:
            return []

        lang = html.get("lang", "").strip() or html.get("xml:lang", "").strip()
        if not lang:
            return [self.violation(html, "Page language not declared", 'Add lang="en" (or the page language) to <html>')]
        if not LANG_CODE.match(lang):
            return [self.violation(
                html,
                f'Page language declared with an invalid code ("{lang}")',
                "Use a valid BCP 47 language tag such as en, en-GB or hi"
            )]
        return []


RULES = [
    FormLabelRule(),
    RequiredIndicatorRule(),
    InputFormatRule(),
    ErrorIdentificationRule(),
    HtmlLangRule(),
]
