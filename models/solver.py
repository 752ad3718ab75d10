from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Dict, Any, Union

from models.cookie import Cookie

class _SolverModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

class ScrappeyBalance(_SolverModel):
    """Number of requests left on the solver account"""
    balance: int

class ScrappeyCookie(_SolverModel):
    """Cookie shape used by the solver for cookiejars and solutions"""
    name: str
    value: str
    domain: Optional[str] = None
    path: Optional[str] = None
    expires: Optional[float] = None
    httpOnly: Optional[bool] = None
    secure: Optional[bool] = None
    sameSite: Optional[str] = None

    def to_cookie(self) -> Cookie:
        return Cookie.model_validate(self.model_dump(exclude_none=True))

class ScrappeyGetRequest(_SolverModel):
    """
    Parameters for a solver `request.get` command.

    Only `url` is required; everything else tunes the remote browser.
    """
    url: str
    session: Optional[str] = None
    cookiejar: Optional[List[ScrappeyCookie]] = None
    cookies: Optional[str] = None
    proxy: Optional[str] = None
    proxy_country: Optional[str] = Field(default=None, alias="proxyCountry")
    custom_headers: Optional[Dict[str, str]] = Field(default=None, alias="customHeaders")
    include_images: Optional[bool] = Field(default=None, alias="includeImages")
    include_links: Optional[bool] = Field(default=None, alias="includeLinks")
    request_type: Optional[str] = Field(default=None, alias="requestType")
    local_storage: Optional[Dict[str, str]] = Field(default=None, alias="localStorage")

class ScrappeyPostRequest(ScrappeyGetRequest):
    """Parameters for a solver `request.post` command"""
    post_data: Optional[Union[str, Dict[str, Any]]] = Field(default=None, alias="postData")

class ScrappeySolution(_SolverModel):
    verified: Optional[bool] = None
    current_url: Optional[str] = Field(default=None, alias="currentUrl")
    status_code: Optional[int] = Field(default=None, alias="statusCode")
    user_agent: Optional[str] = Field(default=None, alias="userAgent")
    inner_text: Optional[str] = Field(default=None, alias="innerText")
    local_storage_data: Optional[Dict[str, Any]] = Field(default=None, alias="localStorageData")
    cookies: Optional[List[ScrappeyCookie]] = None
    cookie_string: Optional[str] = Field(default=None, alias="cookieString")
    response: Optional[str] = None
    response_headers: Optional[Dict[str, Any]] = Field(default=None, alias="responseHeaders")
    request_headers: Optional[Dict[str, Any]] = Field(default=None, alias="requestHeaders")
    request_body: Optional[str] = Field(default=None, alias="requestBody")
    ip_info: Optional[Dict[str, Any]] = Field(default=None, alias="ipInfo")
    method: Optional[str] = None
    type: Optional[str] = None

class ScrappeyResponse(_SolverModel):
    """
    Solver API response for challenge-solving requests.

    Attributes:
        solution (ScrappeySolution): Cookies, user agent, body and metadata
        time_elapsed (Optional[float]): Solve time reported by the solver
        data (Optional[str]): Solver status string
        session (Optional[str]): Solver-side session id
    """
    solution: ScrappeySolution
    time_elapsed: Optional[float] = Field(default=None, alias="timeElapsed")
    data: Optional[str] = None
    session: Optional[str] = None
