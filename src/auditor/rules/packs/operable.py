# src/auditor/rules/packs/operable.py
import re
from typing import List

from auditor.dom.models import DocumentModel
from auditor.managers.config_manager import config_manager
from auditor.model import Category, Severity, Violation
from auditor.rules.base import NATIVELY_FOCUSABLE, LabelIndex, Rule, is_focusable, parse_float

PRIORITY = 20

INTERACTIVE_ROLES = {
    "button", "link", "menuitem", "menuitemcheckbox", "menuitemradio", "tab", "checkbox",
    "radio", "switch", "option", "combobox", "listbox", "slider", "spinbutton", "textbox",
}

GENERIC_LINK_TEXT = {
    "click here", "click", "here", "read more", "more", "learn more", "link", "this link",
    "details", "more info", "more information", "continue", "go", "this", "view",
}

GENERIC_TITLES = {
    "home", "untitled", "untitled document", "page", "document", "index", "welcome",
    "new page", "default", "title",
}


class KeyboardAccessRule(Rule):
    id = "keyboard-access"
    category = Category.OPERABLE
    criterion = "2.1.1 Keyboard"
    default_severity = Severity.HIGH

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        res = []
        for el in doc.iter_elements():
            if el.get("aria-hidden", "").lower() == "true" or el.has("disabled"):
                continue

            natively_interactive = el.tag in NATIVELY_FOCUSABLE or (el.tag == "a" and el.has("href"))
            if el.tag == "input" and el.get("type", "").lower() == "hidden":
                natively_interactive = False

            if natively_interactive and el.has("tabindex") and not is_focusable(el):
                res.append(self.violation(
                    el,
                    f"Interactive <{el.tag}> removed from keyboard tab order (tabindex={el.get('tabindex')})",
                    'Remove the negative tabindex or use tabindex="0"'
                ))
                continue

            role = el.get("role", "").lower()
            if role in INTERACTIVE_ROLES and not natively_interactive and not is_focusable(el):
                res.append(self.violation(
                    el,
                    f"Custom {role} control not keyboard accessible",
                    'Add tabindex="0", keyboard event handlers (Enter/Space/Escape) and ARIA state attributes'
                ))
        return res


class FocusVisibleRule(Rule):
    id = "focus-visible"
    category = Category.OPERABLE
    criterion = "2.4.7 Focus Visible"
    default_severity = Severity.HIGH

    OUTLINE_REMOVED = re.compile(r"outline\s*:\s*(none|0)(?![\d.])", re.IGNORECASE)

    def __init__(self, focus_minimum: float = 3.0):
        self.focus_minimum = focus_minimum

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        res = []
        for el in doc.iter_elements():
            if not is_focusable(el):
                continue

            if self.OUTLINE_REMOVED.search(el.get("style", "")):
                res.append(self.violation(
                    el,
                    "Focus indicator not visible (outline: none)",
                    "Remove outline: none or add a custom visible :focus style"
                ))
                continue

            focus_ratio = parse_float(el.get("data-focus-contrast"))
            if focus_ratio is not None and focus_ratio < self.focus_minimum:
                res.append(self.violation(
                    el,
                    f"Focus indicator contrast insufficient ({focus_ratio:g}:1)",
                    f"Ensure the focus indicator has at least {self.focus_minimum:g}:1 contrast",
                    severity=Severity.MEDIUM
                ))
        return res


class SkipLinkRule(Rule):
    id = "skip-link"
    category = Category.OPERABLE
    criterion = "2.4.1 Bypass Blocks"
    default_severity = Severity.MEDIUM

    SKIP_TEXT = re.compile(r"\b(skip|jump)\b|main content", re.IGNORECASE)

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        navs = [el for el in doc.iter_elements() if el.tag == "nav" or el.get("role", "").lower() == "navigation"]
        if not navs:
            return []

        skip_links = [
            el for el in doc.find_all("a")
            if el.get("href", "").startswith("#") and len(el.get("href", "")) > 1
            and self.SKIP_TEXT.search(f"{el.text} {el.get('aria-label', '')}")
        ]
        if not skip_links:
            return [self.violation(
                navs[0],
                "Skip to main content link missing",
                "Add a skip link as the first focusable element, targeting the main content"
            )]

        res = []
        for link in skip_links:
            target = link.get("href")[1:]
            if doc.find_by_id(target) is None:
                res.append(self.violation(
                    link,
                    f"Skip link target #{target} does not exist",
                    "Point the skip link at the id of the main content container"
                ))
        return res


class LinkPurposeRule(Rule):
    id = "link-purpose"
    category = Category.OPERABLE
    criterion = "2.4.4 Link Purpose (In Context)"
    default_severity = Severity.MEDIUM

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        labels = LabelIndex(doc)
        res = []
        for link in doc.find_all("a"):
            if not link.has("href") or link.get("aria-hidden", "").lower() == "true":
                continue

            name = labels.accessible_name(link) or link.text
            if not name:
                name = " ".join(d.get("alt", "") for d in link.descendants() if d.tag == "img").strip()

            if not name:
                res.append(self.violation(
                    link,
                    "Link has no accessible name",
                    "Add link text, an aria-label, or alt text on the linked image",
                    severity=Severity.HIGH
                ))
                continue

            normalized = re.sub(r"[^\w\s]", "", name).strip().lower()
            if normalized in GENERIC_LINK_TEXT:
                res.append(self.violation(
                    link,
                    f'Link text not descriptive ("{name}")',
                    'Use descriptive text such as "Read more about account fees"'
                ))
        return res


class PageTitleRule(Rule):
    id = "page-title"
    category = Category.OPERABLE
    criterion = "2.4.2 Page Titled"
    default_severity = Severity.MEDIUM

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        # Fragments (uploaded snippets without <html>) are not pages
        if doc.root.tag != "html":
            return []

        title = doc.find("title")
        if title is None:
            anchor = doc.find("head") or doc.root
            return [self.violation(
                anchor,
                "Page has no <title> element",
                'Add a <title> describing the page, e.g. "Products - Company Name"',
                severity=Severity.HIGH
            )]

        text = title.text
        if not text:
            return [self.violation(
                title,
                "Page title is empty",
                'Add page context to the title, e.g. "Products - Company Name"',
                severity=Severity.HIGH
            )]

        if text.lower() in GENERIC_TITLES or len(text) < 4:
            return [self.violation(
                title,
                f'Page title not descriptive ("{text}")',
                'Update to include page context: "Products - Company Name"'
            )]
        return []


class TimingAdjustableRule(Rule):
    id = "timing-adjustable"
    category = Category.OPERABLE
    criterion = "2.2.1 Timing Adjustable"
    default_severity = Severity.MEDIUM

    AUTO_DISMISS_ATTRS = ("data-auto-dismiss", "data-autodismiss", "data-timeout")

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        res = []
        for el in doc.iter_elements():
            if el.tag == "meta" and el.get("http-equiv", "").lower() == "refresh":
                delay = parse_float(el.get("content", ""))
                if delay:
                    res.append(self.violation(
                        el,
                        f"Page refreshes or redirects automatically after {delay:g} seconds",
                        "Remove the timed refresh or let users turn off, adjust or extend it",
                        severity=Severity.HIGH
                    ))
            elif el.tag in ("marquee", "blink"):
                res.append(self.violation(
                    el,
                    f"Moving <{el.tag}> content cannot be paused or stopped",
                    "Replace with static content or provide a pause control"
                ))
            elif any(el.has(attr) for attr in self.AUTO_DISMISS_ATTRS) and not el.has("data-timeout-adjustable"):
                seconds = next(parse_float(el.get(a)) for a in self.AUTO_DISMISS_ATTRS if el.has(a))
                after = f" after {seconds:g} seconds" if seconds else ""
                res.append(self.violation(
                    el,
                    f"Content dismisses automatically{after}",
                    "Allow users to control the timing or extend the display duration"
                ))
        return res


RULES = [
    KeyboardAccessRule(),
    FocusVisibleRule(focus_minimum=float(config_manager.get_nested("rules.contrast.focus", 3.0))),
    SkipLinkRule(),
    LinkPurposeRule(),
    PageTitleRule(),
    TimingAdjustableRule(),
]
