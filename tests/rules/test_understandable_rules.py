# tests/rules/test_understandable_rules.py
import pytest

from auditor.model import Category, Severity
from auditor.rules.packs.understandable import (
    ErrorIdentificationRule, FormLabelRule, HtmlLangRule, InputFormatRule, RequiredIndicatorRule,
)


def test_form_label(make_doc):
    doc = make_doc("""
    <form>
      <input type="text" id="name">
      <label for="email">Email</label><input type="email" id="email">
      <label>Phone <input type="tel" name="phone"></label>
      <input type="text" id="aria" aria-label="Account holder">
      <select id="acct"><option>Savings</option></select>
      <input type="submit" value="Send">
      <input type="hidden" name="csrf">
    </form>
    """)
    violations = FormLabelRule().evaluate(doc)
    assert [(v.element_selector, v.issue) for v in violations] == [
        ("input#name", "Form input missing associated label"),
        ("select#acct", "Dropdown missing accessible name"),
    ]
    assert violations[0].fix == 'Add a visible <label for="name"> or an aria-label'
    assert all(v.category == Category.UNDERSTANDABLE and v.severity == Severity.HIGH for v in violations)


def test_form_label_accepts_labelledby(make_doc):
    doc = make_doc('<div><span id="lbl">Nominee</span><input type="text" aria-labelledby="lbl"></div>')
    assert FormLabelRule().evaluate(doc) == []


def test_required_indicator(make_doc):
    doc = make_doc("""
    <form>
      <label for="e">Email *</label><input type="email" id="e">
      <label for="n">Name</label><input type="text" id="n" required>
      <label for="m">Mobile (required)</label><input type="tel" id="m" aria-required="true">
      <input type="text" id="c" class="required">
    </form>
    """)
    violations = RequiredIndicatorRule().evaluate(doc)
    assert [(v.element_selector, v.severity) for v in violations] == [
        ("input#e", Severity.HIGH),
        ("input#n", Severity.MEDIUM),
        ("input#c", Severity.HIGH),
    ]
    assert violations[0].issue == "Required field not indicated programmatically"
    assert violations[1].issue == "Required field has no visible indication"


def test_input_format(make_doc):
    doc = make_doc("""
    <form>
      <label for="dob">Date of birth</label><input type="text" id="dob">
      <label for="dob2">Date of birth</label><input type="text" id="dob2" placeholder="DD/MM/YYYY">
      <label for="dob3">Date of birth (DD/MM/YYYY)</label><input type="text" id="dob3">
      <label for="city">City</label><input type="text" id="city">
      <label for="tel">Phone</label><input type="tel" id="tel">
      <span id="pin-help">6 digits</span><input type="text" id="zip" aria-describedby="pin-help">
    </form>
    """)
    violations = InputFormatRule().evaluate(doc)
    assert [v.element_selector for v in violations] == ["input#dob", "input#tel"]
    assert all(v.severity == Severity.MEDIUM for v in violations)


def test_error_identification(make_doc):
    doc = make_doc("""
    <div>
      <form id="kyc"><input type="email" id="email" required></form>
      <form id="announced"><input type="text" required><div role="alert"></div></form>
      <form id="linked"><input type="text" pattern="[0-9]+" aria-errormessage="err"><p id="err"></p></form>
      <form id="search"><input type="search" name="q"></form>
    </div>
    """)
    violations = ErrorIdentificationRule().evaluate(doc)
    assert [(v.element_selector, v.issue) for v in violations] == [
        ("form#kyc", "Form errors not announced to screen readers"),
    ]
    assert violations[0].criterion == "3.3.1 Error Identification"


@pytest.mark.parametrize("html, expected", [
    ("<html><body></body></html>", ["Page language not declared"]),
    ('<html lang="english"><body></body></html>', ['Page language declared with an invalid code ("english")']),
    ('<html lang="en-GB"><body></body></html>', []),
    ('<html lang="hi"><body></body></html>', []),
    ("<div><p>fragment</p></div>", []),
])
def test_html_lang(make_doc, html, expected):
    assert [v.issue for v in HtmlLangRule().evaluate(make_doc(html))] == expected
