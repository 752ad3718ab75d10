from typing import Dict
import asyncio
import time
from loguru import logger

from core.exceptions import ChallengeTimeoutError
from services.browser.driver import BrowserSession
from services.challenge.detectors import DETECTORS, ChallengeDetector, ChallengeKind, is_protected

async def wait_until_clear(
    session: BrowserSession,
    kind: ChallengeKind,
    deadline: float,
    poll_interval: float = 1.0,
    detectors: Dict[ChallengeKind, ChallengeDetector] = DETECTORS,
) -> None:
    """
    Poll the detector for `kind` until the page is clean.

    Args:
        session: Browser session being watched
        kind: Challenge to wait out
        deadline: Absolute `time.monotonic()` value after which we give up
        poll_interval: Seconds between ticks

    Raises:
        ChallengeTimeoutError: The challenge was still present at the deadline
    """
    logger.info(f"Waiting for {kind.value} challenge to clear")
    started = time.monotonic()
    ticks = 0
    while await is_protected(session, kind, detectors):
        now = time.monotonic()
        if now >= deadline:
            logger.warning(f"{kind.value} challenge still present after {now - started:.1f}s")
            raise ChallengeTimeoutError(kind.value, round(deadline - started, 3))
        ticks += 1
        await asyncio.sleep(min(poll_interval, max(deadline - now, 0)))
    logger.info(f"{kind.value} challenge cleared after {ticks} ticks ({time.monotonic() - started:.1f}s)")
