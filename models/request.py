from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any, Union

class ProxySettings(BaseModel):
    url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None

class V1Request(BaseModel):
    """
    Request body of the FlareSolverr-compatible `/v1` endpoint.

    Attributes:
        cmd (str): Command, e.g. `request.get`
        url (Optional[str]): Target URL for request commands
        maxTimeout (Optional[int]): Navigation budget in milliseconds
        returnOnlyCookies (Optional[bool]): Omit the page body from the solution
    """
    cmd: str = ""
    url: Optional[str] = None
    postData: Optional[Union[str, Dict[str, Any]]] = None
    maxTimeout: Optional[int] = Field(default=None, gt=0)
    proxy: Optional[ProxySettings] = None
    session: Optional[str] = None
    session_ttl_minutes: Optional[int] = None
    cookies: Optional[List[Dict[str, Any]]] = None
    returnOnlyCookies: Optional[bool] = None

    # Removed in FlareSolverr v2, accepted and warned about
    headers: Optional[Any] = None
    userAgent: Optional[str] = None
    download: Optional[bool] = None
    returnRawHtml: Optional[bool] = None

    class Config:
        json_schema_extra = {
            "example": {
                "cmd": "request.get",
                "url": "https://example.com",
                "maxTimeout": 60000
            }
        }
