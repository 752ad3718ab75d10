from typing import Iterable, List
from pydantic import BaseModel, Field

from models.cookie import Cookie
from services.browser.user_agents import spoof_user_agent

class SessionData(BaseModel):
    """
    Browser identity persisted across navigations.

    Attributes:
        user_agent (str): User agent the browser is started with
        cookies (List[Cookie]): Cookies hydrated into the next session
    """
    user_agent: str = Field(default_factory=spoof_user_agent)
    cookies: List[Cookie] = Field(default_factory=list)

    def merge_cookies(self, cookies: Iterable[Cookie]) -> None:
        """Append cookies, replacing any with the same (name, domain, path)"""
        for cookie in cookies:
            self.cookies = [c for c in self.cookies if c.identity != cookie.identity]
            self.cookies.append(cookie)
