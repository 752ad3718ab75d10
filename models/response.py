from pydantic import BaseModel
from typing import List, Optional, Dict

from models.cookie import Cookie

class FlaresolverrCookie(BaseModel):
    name: str
    value: str
    domain: Optional[str] = None
    path: Optional[str] = None
    expires: float = -1
    httpOnly: bool = False
    secure: Optional[bool] = None
    sameSite: Optional[str] = None

    @classmethod
    def from_cookie(cls, cookie: Cookie) -> "FlaresolverrCookie":
        # Session cookies are reported with expires = -1
        return cls(
            name=cookie.name,
            value=cookie.value,
            domain=cookie.domain,
            path=cookie.path,
            expires=float(cookie.expiry) if cookie.expiry is not None else -1,
            httpOnly=bool(cookie.http_only),
            secure=cookie.secure,
            sameSite=cookie.same_site.value if cookie.same_site else None,
        )

class ChallengeResolutionResult(BaseModel):
    url: str
    status: int
    headers: Dict[str, str] = {}
    response: str
    cookies: List[FlaresolverrCookie]
    userAgent: str

class V1Response(BaseModel):
    status: str
    message: str
    startTimestamp: int = 0
    endTimestamp: int = 0
    version: str
    solution: Optional[ChallengeResolutionResult] = None
    session: Optional[str] = None
    sessions: Optional[List[str]] = None

class IndexResponse(BaseModel):
    msg: str
    version: str
    userAgent: str

class HealthResponse(BaseModel):
    status: str
