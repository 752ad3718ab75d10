from fastapi import APIRouter, Request
from typing import Callable
import time
from loguru import logger

from core.config import settings
from core.exceptions import BadRequestError
from models.request import V1Request
from models.response import V1Response, ChallengeResolutionResult, FlaresolverrCookie
from services.navigator.navigator import Navigator

router = APIRouter(tags=["flaresolverr"])

STATUS_OK = "ok"
STATUS_ERROR = "error"
FLARESOLVERR_VERSION = "3.3.21"

def _now_ms() -> int:
    return int(time.time() * 1000)

def _warn_removed(request: V1Request, *fields: str):
    for field in fields:
        if getattr(request, field) is not None:
            logger.warning(f"Warning: Request parameter '{field}' was removed in FlareSolverr v2.")

@router.post("/v1", response_model=V1Response, response_model_exclude_none=True)
async def v1_handler(request: V1Request, req: Request) -> V1Response:
    """
    FlareSolverr-compatible command endpoint.

    Failures are reported in the envelope (`status: error`) with HTTP 200.
    """
    start_timestamp = _now_ms()
    logger.info(f"Incoming request => POST /v1 cmd={request.cmd!r} url={request.url!r}")

    try:
        response = await handle_v1_request(request, req.app.state.navigator_factory)
    except Exception as e:
        end_timestamp = _now_ms()
        message = getattr(e, "message", None) or str(e)
        logger.error(f"Error: {message}")
        return V1Response(
            status=STATUS_ERROR,
            message=f"Error: {message}",
            startTimestamp=start_timestamp,
            endTimestamp=end_timestamp,
            version=FLARESOLVERR_VERSION,
        )

    response.startTimestamp = start_timestamp
    response.endTimestamp = _now_ms()
    logger.info(f"Response in {(response.endTimestamp - start_timestamp) / 1000} s")
    return response

async def handle_v1_request(request: V1Request, navigator_factory: Callable[[], Navigator]) -> V1Response:
    """Dispatch a v1 command to its handler"""
    if not request.cmd:
        raise BadRequestError("Request parameter 'cmd' is mandatory.")

    _warn_removed(request, "headers", "userAgent")

    max_timeout = request.maxTimeout or settings.DEFAULT_MAX_TIMEOUT

    if request.cmd == "request.get":
        return await _handle_request_get(request, max_timeout, navigator_factory)
    if request.cmd == "request.post":
        return await _handle_request_post(request)
    if request.cmd in ("sessions.create", "sessions.list", "sessions.destroy"):
        raise BadRequestError("Sessions are not implemented in this version.")
    raise BadRequestError(f"Request parameter 'cmd' = '{request.cmd}' is invalid.")

async def _handle_request_get(request: V1Request, max_timeout: int,
                              navigator_factory: Callable[[], Navigator]) -> V1Response:
    if not request.url:
        raise BadRequestError("Request parameter 'url' is mandatory in 'request.get' command.")
    if request.postData is not None:
        raise BadRequestError("Cannot use 'postData' when sending a GET request.")
    _warn_removed(request, "returnRawHtml", "download")

    navigator = navigator_factory()
    result = await navigator.get(request.url, max_timeout)

    solution = ChallengeResolutionResult(
        url=result.final_url,
        status=result.status,
        headers={},
        response="" if request.returnOnlyCookies else result.body,
        cookies=[FlaresolverrCookie.from_cookie(c) for c in result.cookies],
        userAgent=result.user_agent,
    )
    return V1Response(
        status=STATUS_OK,
        message="Challenge solved!",
        version=FLARESOLVERR_VERSION,
        solution=solution,
    )

async def _handle_request_post(request: V1Request) -> V1Response:
    if request.postData is None:
        raise BadRequestError("Request parameter 'postData' is mandatory in 'request.post' command.")
    _warn_removed(request, "returnRawHtml", "download")
    raise BadRequestError("POST requests are not yet implemented.")
