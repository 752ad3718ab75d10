from contextlib import asynccontextmanager
from functools import partial
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple
import asyncio

from selenium import webdriver
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chromium.remote_connection import ChromiumRemoteConnection
from selenium.webdriver.common.proxy import Proxy
from selenium.common.exceptions import WebDriverException
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type
from loguru import logger

from core.exceptions import DriverUnavailableError, NavigationError
from models.cookie import Cookie

class BrowserSession:
    """One chromedriver session, owned by a single navigation"""

    def __init__(self, driver: webdriver.Remote):
        self.driver = driver
        self.session_id = getattr(driver, "session_id", None) or hex(id(driver))
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def _run(self, action: str, func: Callable, *args) -> Any:
        """Run a blocking driver call in the default executor"""
        try:
            return await asyncio.get_event_loop().run_in_executor(None, partial(func, *args))
        except WebDriverException as e:
            raise NavigationError(action, str(e).strip()) from e

    async def execute_cdp(self, cmd: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send a devtools command through chromedriver"""
        logger.debug(f"[{self.session_id}] CDP {cmd}")
        result = await self._run(
            cmd,
            self.driver.execute,
            "executeCdpCommand",
            {"cmd": cmd, "params": params or {}},
        )
        return (result or {}).get("value") or {}

    async def title(self) -> str:
        return await self._run("title", lambda: self.driver.title)

    async def get(self, url: str) -> None:
        logger.info(f"[{self.session_id}] Navigating to {url}")
        await self._run("get", self.driver.get, url)

    async def page_source(self) -> str:
        return await self._run("page_source", lambda: self.driver.page_source)

    async def current_url(self) -> str:
        return await self._run("current_url", lambda: self.driver.current_url)

    async def get_cookies(self) -> List[Cookie]:
        raw = await self._run("get_cookies", self.driver.get_cookies)
        return [Cookie.model_validate(c) for c in raw or []]

    async def storage_cookies(self) -> List[Cookie]:
        """All cookies in the browser's storage via `Storage.getCookies`"""
        result = await self.execute_cdp("Storage.getCookies")
        cookies = []
        for raw in result.get("cookies") or []:
            try:
                cookies.append(Cookie.model_validate(raw))
            except ValueError as e:
                logger.debug(f"[{self.session_id}] Skipping unparseable cookie: {e}")
        return cookies

    async def quit(self) -> None:
        """Tear the session down; later calls are no-ops"""
        if self._closed:
            return
        self._closed = True
        logger.debug(f"Quitting browser {self.session_id}")
        await self._run("quit", self.driver.quit)
        logger.info(f"Browser {self.session_id} quit successfully")

class BrowserFactory:
    """Creates chromedriver sessions routed through the local proxy bridge"""

    def __init__(self, webdriver_url: str, proxy_address: str,
                 window_size: Tuple[int, int] = (1280, 720)):
        self.webdriver_url = webdriver_url
        self.proxy_address = proxy_address
        self.window_size = window_size

    def _create_browser_options(self, user_agent: str) -> Options:
        options = Options()

        options.add_argument('--no-sandbox')
        options.add_argument('--disable-dev-shm-usage')
        options.add_argument('--disable-blink-features=AutomationControlled')
        options.add_argument('--disable-infobars')
        options.add_argument(f'--window-size={self.window_size[0]},{self.window_size[1]}')
        options.add_argument(f'--user-agent={user_agent}')
        options.add_experimental_option("excludeSwitches", ["enable-automation"])

        # Local bridge address
        proxy = Proxy()
        proxy.http_proxy = self.proxy_address
        proxy.ssl_proxy = self.proxy_address
        options.proxy = proxy

        return options

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
        retry=retry_if_exception_type(WebDriverException),
        reraise=True
    )
    def _start_driver(self, options: Options) -> webdriver.Remote:
        connection = ChromiumRemoteConnection(
            remote_server_addr=self.webdriver_url,
            vendor_prefix="goog",
            browser_name="chrome",
        )
        return webdriver.Remote(command_executor=connection, options=options)

    async def create(self, user_agent: str) -> BrowserSession:
        logger.info("Creating new browser session")
        options = self._create_browser_options(user_agent)
        try:
            driver = await asyncio.get_event_loop().run_in_executor(
                None,
                self._start_driver,
                options
            )
        except Exception as e:
            logger.error(f"Failed to create browser: {str(e)}")
            raise DriverUnavailableError(self.webdriver_url, str(e)) from e
        session = BrowserSession(driver)
        logger.info(f"Created new browser {session.session_id}")
        return session

    @asynccontextmanager
    async def session(self, user_agent: str) -> AsyncIterator[BrowserSession]:
        """Browser session released on every exit path.

        If the body fails, its error wins and a failing quit is only logged.
        """
        session = await self.create(user_agent)
        try:
            yield session
        except BaseException:
            try:
                await session.quit()
            except Exception as e:
                logger.warning(f"Error quitting browser {session.session_id}: {str(e)}")
            raise
        await session.quit()
