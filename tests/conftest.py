# tests/conftest.py
import asyncio
from typing import Optional

import pytest

from auditor.dom.builder import DOMBuilder
from auditor.managers.config_manager import config_manager
from auditor.rules.registry import RulePackRegistry

BANK_PAGE = """<!DOCTYPE html>
<html>
<head><title>Home</title></head>
<body>
  <div class="header"><img src="logo.png"></div>
  <nav><a href="/accounts">Accounts</a> <a href="/fees">Click here</a></nav>
  <h1>Transfer money</h1>
  <h3>Details</h3>
  <form id="transfer">
    <input type="text" name="pan_number">
    <label for="ifsc">IFSC</label><input type="text" id="ifsc">
    <input type="text" name="amount">
    <input type="checkbox" name="terms">
    <button type="submit">Transfer Funds</button>
  </form>
  <div class="account-balance">Rs 1,00,000</div>
  <p data-contrast-ratio="2.8">Fine print</p>
</body>
</html>
"""


@pytest.fixture
def make_doc():
    """Parses markup into a DocumentModel."""
    builder = DOMBuilder()

    def _make(html: str, url: str = "https://bank.example/transfer"):
        return builder.parse_doc(url, html)

    return _make


@pytest.fixture
def bank_page() -> str:
    return BANK_PAGE


@pytest.fixture(scope="session")
def registry() -> RulePackRegistry:
    return RulePackRegistry.discover(disabled=[])


@pytest.fixture(autouse=True)
def _fresh_config():
    """Every test starts from the shipped settings.json."""
    config_manager.reset()
    yield
    config_manager.reset()


class FakeAcquirer:
    """In-memory acquisition collaborator: parses fixed markup, optionally fails or blocks."""

    def __init__(self, html: str = BANK_PAGE, error: Optional[Exception] = None, gate=None):
        self.html = html
        self.error = error
        self.gate = gate
        self.calls = 0

    async def acquire(self, url, file, token):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        markup = file.decode("utf-8") if file else self.html
        return DOMBuilder().parse_doc(url or "upload", markup)


@pytest.fixture
def fake_acquirer_cls():
    return FakeAcquirer
