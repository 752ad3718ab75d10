import math
from typing import Any, Dict, Optional, Tuple
from enum import Enum
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

class SameSite(str, Enum):
    """Cookie SameSite policy"""
    LAX = "Lax"
    STRICT = "Strict"
    NONE = "None"

class Cookie(BaseModel):
    """
    Browser cookie as persisted in the session file.

    Accepts both the WebDriver form (`expiry`) and the devtools form
    (`expires`, `-1` for session cookies). Expiry is seconds since epoch.
    """
    model_config = ConfigDict(populate_by_name=True)

    name: str
    value: str
    domain: Optional[str] = None
    path: Optional[str] = None
    expiry: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("expiry", "expires"),
        serialization_alias="expiry",
    )
    secure: Optional[bool] = None
    http_only: Optional[bool] = Field(
        default=None,
        validation_alias=AliasChoices("httpOnly", "http_only"),
        serialization_alias="httpOnly",
    )
    same_site: Optional[SameSite] = Field(
        default=None,
        validation_alias=AliasChoices("sameSite", "same_site"),
        serialization_alias="sameSite",
    )

    @field_validator("expiry", mode="before")
    @classmethod
    def normalize_expiry(cls, v):
        if v is None:
            return None
        v = float(v)
        if v < 0:
            return None
        return math.ceil(v)

    @field_validator("same_site", mode="before")
    @classmethod
    def normalize_same_site(cls, v):
        if v is None or isinstance(v, SameSite):
            return v
        for member in SameSite:
            if str(v).lower() == member.value.lower():
                return member
        return None

    @property
    def identity(self) -> Tuple[str, Optional[str], Optional[str]]:
        return (self.name, self.domain, self.path)

    def is_expired(self, now: float) -> bool:
        return self.expiry is not None and self.expiry <= now

    def to_cdp(self) -> Dict[str, Any]:
        """Parameters for the devtools `Network.setCookie` command"""
        params: Dict[str, Any] = {"name": self.name, "value": self.value}
        if self.domain is not None:
            params["domain"] = self.domain
        if self.path is not None:
            params["path"] = self.path
        if self.secure is not None:
            params["secure"] = self.secure
        if self.http_only is not None:
            params["httpOnly"] = self.http_only
        if self.same_site is not None:
            params["sameSite"] = self.same_site.value
        if self.expiry is not None:
            params["expires"] = self.expiry
        return params
