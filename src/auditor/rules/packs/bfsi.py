# src/auditor/rules/packs/bfsi.py
"""
BFSI overlay: checks specific to banking, financial services and insurance forms.

Financial fields are recognised by keyword matching on a control's id, name,
class and label text. Every rule here is domain-specific, so its violations
count towards the `bfsiFlags` total of the report.
"""
import re
from typing import List, Optional, Tuple

from auditor.dom.core import Element
from auditor.dom.models import DocumentModel
from auditor.model import Category, Severity, Violation
from auditor.rules.base import DomainRule, LabelIndex, identity_text, is_labelable_control, is_live_region

PRIORITY = 90

# Identifier kind -> pattern over the control's identity and label text
FINANCIAL_IDENTIFIERS: List[Tuple[str, re.Pattern]] = [
    ("PAN number", re.compile(r"\bpan\b|pan[-_ ]?(no|num|number|card)|permanent account")),
    ("Tax identifier", re.compile(r"tax[-_ ]?id|\bssn\b|\btin\b|aadhaa?r|gstin|national[-_ ]?id")),
    ("Bank account", re.compile(r"account[-_ ]?(no|num|number)|\bacc(t)?[-_]?no\b|\biban\b")),
    ("Bank routing code", re.compile(r"routing|ifsc|sort[-_ ]?code|swift|\bbic\b|micr")),
    ("Card number", re.compile(r"card[-_ ]?(no|num|number)|\bcc[-_]?num|credit[-_ ]?card|debit[-_ ]?card")),
]

TRANSACTION_TEXT = re.compile(
    r"\b(transfer|pay|pay now|payment|send money|transaction|withdraw|remit|purchase|invest|redeem)\b",
    re.IGNORECASE
)
CONFIRMATION_TEXT = re.compile(r"confirm|review|authori[sz]e", re.IGNORECASE)
CURRENCY_FIELD = re.compile(r"amount|currency|price|\bamt\b|deposit|withdrawal")
CONSENT_FIELD = re.compile(r"consent|terms|agree|\btnc\b|t&c|privacy|declaration")
STATUS_FIELD = re.compile(r"balance|(account|txn|transaction|payment)[-_ ]?status")

NON_CONTENT_TAGS = {"html", "head", "body", "script", "style", "meta", "link", "label", "form"}


def _haystack(element: Element, labels: LabelIndex, ancestors) -> str:
    label = labels.label_text(element, ancestors) or ""
    return f"{identity_text(element)} {label} {element.get('aria-label', '')}".lower()


def _identifier_kind(element: Element, labels: LabelIndex, ancestors) -> Optional[str]:
    if not is_labelable_control(element) or element.tag == "select":
        return None
    haystack = _haystack(element, labels, ancestors)
    return next((kind for kind, pattern in FINANCIAL_IDENTIFIERS if pattern.search(haystack)), None)


class FinancialIdentifierLabelRule(DomainRule):
    id = "bfsi-identifier-label"
    category = Category.UNDERSTANDABLE
    criterion = "3.3.2 Labels or Instructions"
    default_severity = Severity.HIGH

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        labels = LabelIndex(doc)
        res = []
        for el, ancestors in doc.walk():
            kind = _identifier_kind(el, labels, ancestors)
            if kind is None:
                continue

            if not labels.accessible_name(el, ancestors):
                res.append(self.violation(
                    el,
                    f"{kind} input missing label and validation",
                    f'Add a visible label naming the {kind.lower()} with a format example'
                ))
            elif not labels.has_description(el):
                res.append(self.violation(
                    el,
                    f"{kind} field lacks accessible description",
                    f"Add aria-describedby with helper text explaining the {kind.lower()} format",
                    severity=Severity.MEDIUM
                ))
        return res


class FinancialIdentifierPurposeRule(DomainRule):
    id = "bfsi-identifier-purpose"
    category = Category.UNDERSTANDABLE
    criterion = "1.3.5 Identify Input Purpose"
    default_severity = Severity.HIGH

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        labels = LabelIndex(doc)
        res = []
        for el, ancestors in doc.walk():
            kind = _identifier_kind(el, labels, ancestors)
            if kind is None or el.get("autocomplete", "").strip():
                continue
            res.append(self.violation(
                el,
                f"{kind} field missing input purpose",
                'Add an autocomplete attribute ("cc-number" for cards, "off" for sensitive identifiers) '
                'and aria-describedby for the format'
            ))
        return res


class TransactionConfirmationRule(DomainRule):
    id = "bfsi-transaction-confirmation"
    category = Category.UNDERSTANDABLE
    criterion = "3.3.4 Error Prevention (Legal, Financial, Data)"
    default_severity = Severity.HIGH

    @staticmethod
    def _is_submit_control(el: Element) -> bool:
        if el.tag == "button":
            return el.get("type", "submit").lower() in ("submit", "button")
        return el.tag == "input" and el.get("type", "").lower() in ("submit", "button")

    @staticmethod
    def _control_text(el: Element) -> str:
        return " ".join(p for p in (el.text, el.get("value", ""), el.get("aria-label", "")) if p)

    @staticmethod
    def _asks_confirmation(el: Element) -> bool:
        if el.has("data-confirm") or el.get("aria-haspopup", "false").lower() not in ("false", ""):
            return True
        return "confirm" in el.get("onclick", "").lower()

    def _form_confirms(self, form: Element, labels: LabelIndex) -> bool:
        if self._asks_confirmation(form) or "confirm" in form.get("onsubmit", "").lower():
            return True
        for el in form.descendants():
            if el.tag == "input" and el.get("type", "").lower() == "checkbox":
                text = f"{identity_text(el)} {labels.label_text(el) or ''} {el.get('aria-label', '')}"
                if CONFIRMATION_TEXT.search(text):
                    return True
        return False

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        labels = LabelIndex(doc)
        res = []
        for el, ancestors in doc.walk():
            if not self._is_submit_control(el):
                continue
            text = self._control_text(el)
            if not TRANSACTION_TEXT.search(text) or CONFIRMATION_TEXT.search(text):
                continue
            if self._asks_confirmation(el):
                continue
            form = next((a for a in reversed(ancestors) if a.tag == "form"), None)
            if form is not None and self._form_confirms(form, labels):
                continue

            res.append(self.violation(
                el,
                "Transaction submission lacks confirmation step",
                "Add a confirmation dialog or review step before processing the financial transaction"
            ))
        return res


class CurrencyInputRule(DomainRule):
    id = "bfsi-currency-input"
    category = Category.UNDERSTANDABLE
    criterion = "3.3.2 Labels or Instructions"
    default_severity = Severity.HIGH

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        labels = LabelIndex(doc)
        res = []
        for el, ancestors in doc.walk():
            if el.tag != "input" or not is_labelable_control(el):
                continue
            if el.get("type", "text").lower() in ("checkbox", "radio"):
                continue
            if not CURRENCY_FIELD.search(_haystack(el, labels, ancestors)):
                continue

            numeric = el.get("type", "").lower() == "number" or el.get("inputmode", "").lower() in ("decimal", "numeric")
            constrained = el.has("min") and el.has("max")
            if numeric and constrained:
                continue
            res.append(self.violation(
                el,
                "Currency input missing format and constraints",
                'Add type="number", min, max attributes and the currency symbol in the label'
            ))
        return res


class ConsentAssociationRule(DomainRule):
    id = "bfsi-consent-association"
    category = Category.UNDERSTANDABLE
    criterion = "1.3.1 Info and Relationships"
    default_severity = Severity.HIGH

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        labels = LabelIndex(doc)
        res = []
        for el, ancestors in doc.walk():
            if el.tag != "input" or el.get("type", "").lower() != "checkbox":
                continue
            if not CONSENT_FIELD.search(identity_text(el)):
                continue
            if labels.accessible_name(el, ancestors):
                continue
            res.append(self.violation(
                el,
                "Terms checkbox not properly associated",
                "Link the checkbox to its label with for/id attributes"
            ))
        return res


class StatusAnnouncementRule(DomainRule):
    id = "bfsi-status-announcement"
    category = Category.ROBUST
    criterion = "4.1.3 Status Messages"
    default_severity = Severity.MEDIUM

    @staticmethod
    def _is_status_container(el: Element) -> bool:
        if el.tag in NON_CONTENT_TAGS or is_labelable_control(el):
            return False
        return bool(STATUS_FIELD.search(identity_text(el)))

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        res = []
        for el, ancestors in doc.walk():
            if not self._is_status_container(el):
                continue
            # Report the innermost container only
            if any(self._is_status_container(d) for d in el.descendants()):
                continue
            if is_live_region(el) or any(is_live_region(a) for a in ancestors):
                continue
            res.append(self.violation(
                el,
                "Dynamic balance updates not announced",
                'Add role="status" and aria-live="polite" to the balance element'
            ))
        return res


RULES = [
    FinancialIdentifierLabelRule(),
    FinancialIdentifierPurposeRule(),
    TransactionConfirmationRule(),
    CurrencyInputRule(),
    ConsentAssociationRule(),
    StatusAnnouncementRule(),
]
