from pathlib import Path
from typing import Optional, Union
import asyncio
import time
from loguru import logger
from pydantic import ValidationError
from prometheus_client import Counter, Histogram

from core.exceptions import (
    BadRequestError, ChallengeTimeoutError, NavigationError, PersistenceError, SolverUnconfiguredError
)
from models.navigation import NavigationRequest, NavigationResult
from models.proxy import ProxyConfig
from models.session import SessionData
from services.browser.driver import BrowserFactory, BrowserSession
from services.browser.user_agents import spoof_user_agent
from services.challenge.detectors import ChallengeKind, detect_challenge, is_protected
from services.challenge.waiter import wait_until_clear
from services.session import session_store
from services.solver.scrappey_client import ScrappeyClient

NAVIGATION_REQUESTS = Counter('navigation_requests_total', 'Total number of navigation requests')
NAVIGATION_ERRORS = Counter('navigation_errors_total', 'Total number of failed navigations')
NAVIGATION_DURATION = Histogram('navigation_duration_seconds', 'Time spent per navigation')
SOLVER_FALLBACKS = Counter('solver_fallback_total', 'Navigations handed to the solver API', ['outcome'])

class Navigator:
    """
    Drives one browser session through a URL and its challenge pages.

    Flow: acquire session -> hydrate cookies -> navigate -> DDoS-Guard wait
    -> Cloudflare wait -> extract. A Cloudflare wait that times out tears
    the browser down and hands the URL to the solver API instead. Session
    data is flushed to `data_path` on every exit.
    """

    def __init__(
        self,
        browser_factory: BrowserFactory,
        solver: ScrappeyClient,
        proxy: ProxyConfig,
        data_path: Union[str, Path],
        poll_interval: float = 1.0,
    ):
        self.browser_factory = browser_factory
        self.solver = solver
        self.proxy = proxy
        self.data_path = data_path
        self.poll_interval = poll_interval
        self.data: Optional[SessionData] = None

    async def get(self, url: str, timeout_ms: int = 60000) -> NavigationResult:
        """Navigate to `url` within `timeout_ms`, fallback included"""
        try:
            request = NavigationRequest(url=url, max_timeout_ms=timeout_ms)
        except ValidationError as e:
            raise BadRequestError(f"Invalid navigation request: {e.errors()[0]['msg']}") from e
        return await self.navigate(request)

    async def navigate(self, request: NavigationRequest) -> NavigationResult:
        NAVIGATION_REQUESTS.inc()
        started = time.monotonic()
        budget = request.max_timeout_ms / 1000
        deadline = started + budget

        self.data = await asyncio.get_event_loop().run_in_executor(
            None, session_store.load_or_fresh, self.data_path
        )
        try:
            with NAVIGATION_DURATION.time():
                result = await self._run(request.url, budget, deadline)
            logger.info(f"Navigation to {request.url} finished in {time.monotonic() - started:.2f}s")
            return result
        except Exception as e:
            NAVIGATION_ERRORS.inc()
            logger.error(f"Navigation to {request.url} failed: {str(e)}")
            raise
        finally:
            await self._flush()

    async def _flush(self):
        try:
            await asyncio.get_event_loop().run_in_executor(
                None, session_store.save, self.data_path, self.data
            )
        except PersistenceError as e:
            logger.warning(f"Failed to save browser data: {e.details.get('reason')}")

    async def _run(self, url: str, budget: float, deadline: float) -> NavigationResult:
        if not self.data.user_agent:
            self.data.user_agent = spoof_user_agent()

        async with self.browser_factory.session(self.data.user_agent) as session:
            await self._hydrate(session)
            await session.get(url)

            kind = await detect_challenge(session)
            if kind is ChallengeKind.DDOS_GUARD:
                await wait_until_clear(
                    session, ChallengeKind.DDOS_GUARD, self._sub_deadline(budget, deadline), self.poll_interval
                )
                logger.info("DDoS-Guard challenge handled successfully")
                kind = ChallengeKind.CLOUDFLARE if await is_protected(session, ChallengeKind.CLOUDFLARE) else ChallengeKind.NONE

            if kind is ChallengeKind.CLOUDFLARE:
                try:
                    await wait_until_clear(
                        session, ChallengeKind.CLOUDFLARE, self._sub_deadline(budget, deadline), self.poll_interval
                    )
                    logger.info("Cloudflare challenge handled successfully")
                except ChallengeTimeoutError as e:
                    logger.warning(f"Failed to handle Cloudflare challenge: {e.message}")
                    try:
                        await session.quit()
                    except NavigationError as quit_error:
                        logger.warning(f"Error quitting browser {session.session_id}: {quit_error.details.get('reason')}")
                    return await self._fallback(url, deadline)

            return await self._extract(session)

    @staticmethod
    def _sub_deadline(budget: float, deadline: float) -> float:
        """A third of the overall budget, never past the overall deadline"""
        return min(time.monotonic() + budget / 3, deadline)

    async def _hydrate(self, session: BrowserSession):
        removed = session_store.sweep(self.data)
        if removed:
            logger.debug(f"Swept {removed} expired cookies")
        await session.execute_cdp("Network.enable")
        for cookie in self.data.cookies:
            await session.execute_cdp("Network.setCookie", cookie.to_cdp())
        logger.debug(f"Hydrated {len(self.data.cookies)} cookies")

    async def _extract(self, session: BrowserSession) -> NavigationResult:
        # Whatever the browser holds now supersedes the hydrated cookies
        self.data.cookies = await session.storage_cookies()

        body = await session.page_source()
        final_url = await session.current_url()
        cookies = await session.get_cookies()

        return NavigationResult(
            final_url=final_url,
            status=200,  # the driver exposes no HTTP status
            body=body,
            cookies=cookies,
            user_agent=self.data.user_agent,
        )

    async def _fallback(self, url: str, deadline: float) -> NavigationResult:
        if not self.solver.is_configured:
            SOLVER_FALLBACKS.labels(outcome="unconfigured").inc()
            raise SolverUnconfiguredError()

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            SOLVER_FALLBACKS.labels(outcome="no_budget").inc()
            raise ChallengeTimeoutError(ChallengeKind.CLOUDFLARE.value, 0)

        logger.info("Attempting to resolve challenge with Scrappey...")
        try:
            response = await self.solver.solve_get(url, proxy=self.proxy.to_url(), timeout=remaining)
        except Exception:
            SOLVER_FALLBACKS.labels(outcome="error").inc()
            raise
        SOLVER_FALLBACKS.labels(outcome="solved").inc()
        logger.info("Scrappey resolved the challenge successfully.")

        solution = response.solution
        self.data.merge_cookies(c.to_cookie() for c in solution.cookies or [])
        if solution.user_agent:
            self.data.user_agent = solution.user_agent

        return NavigationResult(
            final_url=solution.current_url or url,
            status=solution.status_code or 200,
            body=solution.response or "",
            cookies=list(self.data.cookies),
            user_agent=self.data.user_agent,
        )
