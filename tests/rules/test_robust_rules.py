# tests/rules/test_robust_rules.py
from auditor.model import Category, Severity
from auditor.rules.packs.robust import FakeInteractiveRule, LandmarkMainRule, ViewportZoomRule


def test_landmark_main(make_doc):
    rule = LandmarkMainRule()

    missing = make_doc("<html><body><div>content</div></body></html>")
    violations = rule.evaluate(missing)
    assert [(v.element_selector, v.severity, v.category) for v in violations] == [
        ("html > body", Severity.MEDIUM, Category.ROBUST),
    ]

    assert rule.evaluate(make_doc("<html><body><main>content</main></body></html>")) == []
    assert rule.evaluate(make_doc('<html><body><div role="main">content</div></body></html>')) == []
    # No body, nothing to check
    assert rule.evaluate(make_doc("<form><input></form>")) == []


def test_fake_interactive(make_doc):
    doc = make_doc("""
    <div>
      <div id="pay" onclick="pay()">Pay now</div>
      <span id="menu" onmousedown="open()" role="button" tabindex="0">Menu</span>
      <button id="real" onclick="go()">Go</button>
      <img id="thumb" src="a.png" alt="Card" onclick="zoom()">
    </div>
    """)
    violations = FakeInteractiveRule().evaluate(doc)
    assert [(v.element_selector, v.issue) for v in violations] == [
        ("div#pay", "Clickable <div> without button role"),
        ("img#thumb", "Clickable <img> without button role"),
    ]


def test_viewport_zoom(make_doc):
    doc = make_doc("""
    <html><head>
      <meta id="locked" name="viewport" content="width=device-width, user-scalable=no">
      <meta id="capped" name="viewport" content="width=device-width, maximum-scale=1.0">
      <meta id="fine" name="viewport" content="width=device-width, initial-scale=1, maximum-scale=5">
      <meta id="charset" charset="utf-8">
    </head><body></body></html>
    """)
    violations = ViewportZoomRule().evaluate(doc)
    assert [(v.element_selector, v.issue) for v in violations] == [
        ("meta#locked", "Viewport zoom disabled (user-scalable=no)"),
        ("meta#capped", "Viewport zoom limited (maximum-scale=1)"),
    ]
    assert violations[0].criterion == "1.4.4 Resize Text"
