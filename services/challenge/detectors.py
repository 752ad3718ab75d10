from enum import Enum
from typing import Dict, Protocol
from loguru import logger
from prometheus_client import Counter

from services.browser.driver import BrowserSession
from core.exceptions import NavigationError

CHALLENGES_DETECTED = Counter('challenges_detected_total', 'Number of interstitial challenges encountered', ['kind'])

class ChallengeKind(str, Enum):
    """Interstitial classification of the loaded page"""
    NONE = "none"
    CLOUDFLARE = "cloudflare"
    DDOS_GUARD = "ddos_guard"

class ChallengeDetector(Protocol):
    kind: ChallengeKind

    async def is_protected(self, session: BrowserSession) -> bool:
        ...

class TitleDetector:
    """Flags a page whose document.title contains a marker substring"""

    def __init__(self, kind: ChallengeKind, marker: str):
        self.kind = kind
        self.marker = marker

    async def is_protected(self, session: BrowserSession) -> bool:
        try:
            title = await session.title()
        except NavigationError as e:
            logger.debug(f"Could not read page title: {e.details.get('reason')}")
            return False
        return self.marker in (title or "")

    def __repr__(self) -> str:
        return f"TitleDetector({self.kind.value!r}, {self.marker!r})"

# Checked in insertion order; DDoS-Guard goes first
DETECTORS: Dict[ChallengeKind, ChallengeDetector] = {
    ChallengeKind.DDOS_GUARD: TitleDetector(ChallengeKind.DDOS_GUARD, "DDoS-Guard"),
    ChallengeKind.CLOUDFLARE: TitleDetector(ChallengeKind.CLOUDFLARE, "Just a moment..."),
}

async def is_protected(session: BrowserSession, kind: ChallengeKind,
                       detectors: Dict[ChallengeKind, ChallengeDetector] = DETECTORS) -> bool:
    detector = detectors.get(kind)
    if detector is None:
        return False
    return await detector.is_protected(session)

async def detect_challenge(session: BrowserSession,
                           detectors: Dict[ChallengeKind, ChallengeDetector] = DETECTORS) -> ChallengeKind:
    """Classify the current page, first matching detector wins"""
    for kind, detector in detectors.items():
        if await detector.is_protected(session):
            logger.info(f"{kind.value} challenge detected")
            CHALLENGES_DETECTED.labels(kind=kind.value).inc()
            return kind
    return ChallengeKind.NONE
