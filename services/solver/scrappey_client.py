from typing import Any, Dict, Optional, Type, TypeVar, Union
import httpx
from loguru import logger
from pydantic import BaseModel, ValidationError

from core.exceptions import SolverHttpError, SolverParseError, SolverUnconfiguredError
from models.solver import (
    ScrappeyBalance, ScrappeyGetRequest, ScrappeyPostRequest, ScrappeyResponse
)

DEFAULT_ENDPOINT = "https://publisher.scrappey.com/api/v1"

T = TypeVar("T", bound=BaseModel)

class ScrappeyClient:
    """
    Client for the Scrappey challenge-solving API.

    The remote service drives its own browser through the proxy we hand it
    and returns the resulting cookies, user agent and body.
    """

    def __init__(self, api_key: str, endpoint: str = DEFAULT_ENDPOINT,
                 client: Optional[httpx.AsyncClient] = None):
        self.api_key = api_key
        self.endpoint = endpoint.rstrip("/")
        self._client = client
        self._owns_client = client is None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def close(self):
        """Close the HTTP client if we created it"""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _require_key(self):
        if not self.is_configured:
            raise SolverUnconfiguredError()

    async def _send(self, method: str, url: str, model: Type[T], timeout: float,
                    payload: Optional[Dict[str, Any]] = None) -> T:
        try:
            resp = await self._http().request(
                method,
                url,
                params={"key": self.api_key},
                json=payload,
                timeout=timeout,
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Scrappey {method} {url} failed: {str(e)}")
            raise SolverHttpError(str(e) or type(e).__name__) from e

        try:
            return model.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise SolverParseError(str(e)) from e

    async def get_balance(self, timeout: float = 30) -> ScrappeyBalance:
        """Check how many requests are left on the account"""
        self._require_key()
        return await self._send("GET", f"{self.endpoint}/balance", ScrappeyBalance, timeout)

    async def _solve(self, cmd: str, request: ScrappeyGetRequest, timeout: float) -> ScrappeyResponse:
        self._require_key()
        payload = request.model_dump(by_alias=True, exclude_none=True)
        payload["cmd"] = cmd
        logger.info(f"Sending {cmd} for {request.url} to Scrappey")
        response = await self._send("POST", self.endpoint, ScrappeyResponse, timeout, payload)
        logger.debug(f"Scrappey answered with data={response.data} time_elapsed={response.time_elapsed}")
        return response

    async def solve_get(self, url: str, proxy: Optional[str] = None,
                        timeout: float = 60, **options) -> ScrappeyResponse:
        """Resolve `url` with a remote GET"""
        request = ScrappeyGetRequest(url=url, proxy=proxy, **options)
        return await self._solve("request.get", request, timeout)

    async def solve_post(self, url: str, post_data: Union[str, Dict[str, Any]],
                         proxy: Optional[str] = None, timeout: float = 60,
                         **options) -> ScrappeyResponse:
        """Resolve `url` with a remote POST carrying `post_data`"""
        request = ScrappeyPostRequest(url=url, post_data=post_data, proxy=proxy, **options)
        return await self._solve("request.post", request, timeout)
