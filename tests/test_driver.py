from unittest.mock import MagicMock, patch

import pytest
from selenium.common.exceptions import WebDriverException
from tenacity import wait_none

from core.exceptions import DriverUnavailableError, NavigationError
from services.browser.driver import BrowserFactory, BrowserSession


@pytest.fixture
def driver():
    mock = MagicMock()
    mock.session_id = "abc123"
    return mock


@pytest.fixture
def factory():
    return BrowserFactory("http://chromedriver:9515", "127.0.0.1:8080", (1024, 768))


@pytest.mark.asyncio
class TestBrowserSession:

    async def test_execute_cdp_unwraps_value(self, driver):
        driver.execute.return_value = {"value": {"cookies": []}}
        session = BrowserSession(driver)

        result = await session.execute_cdp("Storage.getCookies")

        assert result == {"cookies": []}
        driver.execute.assert_called_once_with("executeCdpCommand", {"cmd": "Storage.getCookies", "params": {}})

    async def test_driver_errors_become_navigation_errors(self, driver):
        driver.get.side_effect = WebDriverException("net::ERR_PROXY_CONNECTION_FAILED")
        session = BrowserSession(driver)

        with pytest.raises(NavigationError) as exc_info:
            await session.get("https://example.com/")

        assert exc_info.value.details["action"] == "get"

    async def test_storage_cookies_skips_garbage(self, driver):
        driver.execute.return_value = {"value": {"cookies": [
            {"name": "ok", "value": "1", "expires": -1},
            {"value": "missing name"},
        ]}}

        cookies = await BrowserSession(driver).storage_cookies()

        assert [c.name for c in cookies] == ["ok"]

    async def test_quit_is_idempotent(self, driver):
        session = BrowserSession(driver)

        await session.quit()
        await session.quit()

        driver.quit.assert_called_once()
        assert session.closed


class TestBrowserFactory:

    def test_options_point_at_bridge(self, factory):
        options = factory._create_browser_options("UA-1")

        assert "--user-agent=UA-1" in options.arguments
        assert "--window-size=1024,768" in options.arguments
        assert "--disable-blink-features=AutomationControlled" in options.arguments
        assert "--no-sandbox" in options.arguments
        assert options.proxy.http_proxy == "127.0.0.1:8080"
        assert options.proxy.ssl_proxy == "127.0.0.1:8080"

    def test_start_driver_retries(self, factory):
        remote = MagicMock(side_effect=[WebDriverException("starting"), WebDriverException("starting"), "driver"])
        with patch("services.browser.driver.webdriver.Remote", remote), \
                patch("services.browser.driver.ChromiumRemoteConnection"):
            start = BrowserFactory._start_driver.retry_with(wait=wait_none())
            assert start(factory, factory._create_browser_options("UA")) == "driver"

        assert remote.call_count == 3

    @pytest.mark.asyncio
    async def test_create_failure_is_driver_unavailable(self, factory):
        with patch.object(BrowserFactory, "_start_driver", side_effect=WebDriverException("refused")):
            with pytest.raises(DriverUnavailableError):
                await factory.create("UA")

    @pytest.mark.asyncio
    async def test_session_quits_on_success(self, factory, driver):
        with patch.object(BrowserFactory, "_start_driver", return_value=driver):
            async with factory.session("UA") as session:
                assert session.driver is driver

        driver.quit.assert_called_once()

    @pytest.mark.asyncio
    async def test_body_error_wins_over_quit_error(self, factory, driver):
        driver.quit.side_effect = WebDriverException("already gone")
        with patch.object(BrowserFactory, "_start_driver", return_value=driver):
            with pytest.raises(ValueError):
                async with factory.session("UA"):
                    raise ValueError("navigation broke")

        driver.quit.assert_called_once()

    @pytest.mark.asyncio
    async def test_quit_error_surfaces_after_success(self, factory, driver):
        driver.quit.side_effect = WebDriverException("already gone")
        with patch.object(BrowserFactory, "_start_driver", return_value=driver):
            with pytest.raises(NavigationError):
                async with factory.session("UA"):
                    pass
