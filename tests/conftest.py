"""Shared fixtures: a scripted chromedriver stand-in and a solver double."""

import itertools
from typing import Any, Dict, List, Optional

import pytest

from models.solver import ScrappeyResponse
from services.browser.driver import BrowserFactory, BrowserSession

_ids = itertools.count(1)


class FakeDriver:
    """Plays back a sequence of page titles; the last one sticks."""

    def __init__(self, titles: List[str], page_source: str = "<html></html>",
                 cookies: Optional[List[Dict[str, Any]]] = None,
                 storage: Optional[List[Dict[str, Any]]] = None):
        self.session_id = f"fake-{next(_ids)}"
        self.titles = list(titles)
        self.page_source = page_source
        self.cookies = cookies or []
        self.storage = storage or []
        self.current_url = ""
        self.visited: List[str] = []
        self.cdp_calls: List[tuple] = []
        self.quit_calls = 0

    @property
    def title(self) -> str:
        if len(self.titles) > 1:
            return self.titles.pop(0)
        return self.titles[0]

    def get(self, url: str):
        self.visited.append(url)
        self.current_url = url

    def get_cookies(self):
        return list(self.cookies)

    def execute(self, command: str, params: Dict[str, Any]):
        assert command == "executeCdpCommand"
        self.cdp_calls.append((params["cmd"], params["params"]))
        if params["cmd"] == "Storage.getCookies":
            return {"value": {"cookies": list(self.storage)}}
        return {"value": {}}

    def quit(self):
        self.quit_calls += 1


class FakeBrowserFactory(BrowserFactory):
    """Hands out BrowserSessions over pre-built FakeDrivers."""

    def __init__(self, *drivers: FakeDriver):
        super().__init__("http://webdriver.invalid", "127.0.0.1:8080")
        self.drivers = list(drivers)
        self.sessions: List[BrowserSession] = []
        self.user_agents: List[str] = []

    async def create(self, user_agent: str) -> BrowserSession:
        self.user_agents.append(user_agent)
        session = BrowserSession(self.drivers[len(self.sessions)])
        self.sessions.append(session)
        return session


class FakeSolver:
    """Records solve_get calls and answers with a canned solver payload."""

    def __init__(self, payload: Optional[Dict[str, Any]] = None, api_key: str = "key",
                 error: Optional[Exception] = None):
        self.api_key = api_key
        self.payload = payload or {"solution": {}}
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def solve_get(self, url: str, proxy: Optional[str] = None, timeout: float = 60, **options):
        self.calls.append({"url": url, "proxy": proxy, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return ScrappeyResponse.model_validate(self.payload)


@pytest.fixture
def data_path(tmp_path):
    return tmp_path / "persistent.json"
