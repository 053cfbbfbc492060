"""Pytest configuration and fixtures."""

import asyncio
import time
from pathlib import Path
from typing import Dict, List, Optional, Union

import pytest
from dotenv import load_dotenv

from unitsync.core.errors import ErrorKind, FetchError

# Load .env file for local overrides
load_dotenv()


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests with no network access")


FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def temp_dir(tmp_path):
    """Provide temporary directory for tests."""
    return tmp_path


@pytest.fixture
def mock_env(monkeypatch, tmp_path):
    """Mock environment variables for testing."""
    test_env = {
        "UNITSYNC_DATA_DIR": str(tmp_path / "data"),
        "UNITSYNC_MAX_RETRIES": "3",
        "UNITSYNC_CONCURRENCY": "2",
        "UNITSYNC_LOG_LEVEL": "INFO",
        "UNITSYNC_SCRAPE_RATE_LIMIT": "0",
    }

    for key, value in test_env.items():
        monkeypatch.setenv(key, value)

    return test_env


@pytest.fixture
def unit_page_html() -> str:
    """Rendered unit page covering every field strategy."""
    return (FIXTURES_DIR / "unit_page.html").read_text(encoding="utf-8")


@pytest.fixture
def unit_page_factory():
    """Build a minimal unit page for a given code."""

    def make(code: str, title: str = "Sample unit", criterion: str = "Do the work") -> str:
        return f"""
        <html><body>
        <h1>Unit of Competency: {code}</h1>
        <h2>Title: {title}</h2>
        <table>
          <thead><tr><th>Elements</th><th>Performance Criteria</th></tr></thead>
          <tbody>
            <tr><td>1. Prepare</td><td><ul><li>1.1 {criterion}</li></ul></td></tr>
          </tbody>
        </table>
        </body></html>
        """

    return make


class FakeFetcher:
    """Fetcher stand-in serving canned pages.

    Values in ``pages`` are HTML strings or exceptions to raise. Unknown URLs
    fail with a network FetchError.
    """

    def __init__(self, pages: Optional[Dict[str, Union[str, BaseException]]] = None):
        self.pages = dict(pages or {})
        self.calls: List[str] = []
        self.closed = 0

    async def fetch(self, url: str) -> str:
        self.calls.append(url)
        await asyncio.sleep(0)
        value = self.pages.get(url)
        if isinstance(value, BaseException):
            raise value
        if value is None:
            raise FetchError(url, ErrorKind.NETWORK, "net::ERR_NAME_NOT_RESOLVED", attempts=3)
        return value

    async def close(self) -> None:
        self.closed += 1


class FakeResponse:
    def __init__(self, status: int = 200):
        self.status = status


class FakePage:
    def __init__(self, browser: "FakeBrowser"):
        self.browser = browser
        self.html = ""
        self.closed = False

    async def goto(self, url, wait_until=None, timeout=None):
        self.browser.gotos.append((url, time.monotonic()))
        outcome = self.browser.script.pop(0) if self.browser.script else self.browser.default
        await asyncio.sleep(0)
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, int):
            return FakeResponse(outcome)
        self.html = outcome
        return FakeResponse(200)

    async def wait_for_selector(self, selector, timeout=None):
        return None

    async def content(self) -> str:
        return self.html

    async def close(self) -> None:
        self.closed = True


class FakeBrowser:
    """Playwright browser stand-in driven by a script of goto outcomes.

    Each script entry is an HTML string, an HTTP status int or an exception.
    """

    def __init__(self, script=None, default: str = "<html><h1>Unit of competency</h1></html>"):
        self.script = list(script or [])
        self.default = default
        self.gotos = []
        self.pages_opened = 0
        self.closed = 0

    async def new_page(self, **kwargs):
        self.pages_opened += 1
        return FakePage(self)

    async def close(self) -> None:
        self.closed += 1


@pytest.fixture
def fake_fetcher():
    """Factory for FakeFetcher."""
    return FakeFetcher


@pytest.fixture
def fake_browser():
    """Factory for FakeBrowser."""
    return FakeBrowser
