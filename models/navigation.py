from typing import List, Optional
from urllib.parse import urlparse
from pydantic import BaseModel, Field, field_validator

from models.cookie import Cookie

class NavigationRequest(BaseModel):
    """
    A single navigation handed to the navigator.

    Attributes:
        url (str): Absolute target URL
        max_timeout_ms (int): Budget for the whole navigation, fallback included
        return_only_cookies (bool): Drop the body from the API response
    """
    url: str
    max_timeout_ms: int = Field(default=60000, gt=0)
    return_only_cookies: Optional[bool] = False

    @field_validator("url")
    @classmethod
    def validate_absolute(cls, v: str) -> str:
        parsed = urlparse(v)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"URL must be absolute: {v!r}")
        return v

class NavigationResult(BaseModel):
    """Outcome of a successful navigation"""
    final_url: str
    status: int = 200
    body: str = ""
    cookies: List[Cookie] = Field(default_factory=list)
    user_agent: str
