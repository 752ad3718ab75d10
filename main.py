from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
import uvicorn
import asyncio
import time
from functools import partial
from loguru import logger
from contextlib import asynccontextmanager
from prometheus_client import make_asgi_app

from core.config import settings
from core.exceptions import ResolverException
from core.logging import setup_logging
from models.response import IndexResponse, HealthResponse
from services.browser.driver import BrowserFactory
from services.navigator.navigator import Navigator
from services.proxy.bridge import HttpProxyBridge
from services.solver.scrappey_client import ScrappeyClient
from api.v1.endpoints import flaresolverr

# Prometheus metrics endpoint
metrics_app = make_asgi_app()

async def _log_solver_balance(solver: ScrappeyClient):
    try:
        balance = await solver.get_balance(timeout=10)
        logger.info(f"Scrappey balance: {balance.balance} requests left")
    except ResolverException as e:
        logger.warning(f"Could not fetch Scrappey balance: {e.message}")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle events for the application"""
    setup_logging()
    logger.info("Initializing application...")

    proxy_config = settings.proxy_config()

    logger.info("Starting proxy bridge...")
    bridge = HttpProxyBridge(proxy_config)
    await bridge.bind(settings.BRIDGE_HOST, settings.BRIDGE_PORT)
    bridge_task = asyncio.create_task(bridge.serve())

    solver = ScrappeyClient(settings.SCRAPPEY_API_KEY, settings.SCRAPPEY_ENDPOINT)
    if solver.is_configured:
        await _log_solver_balance(solver)
    else:
        logger.warning("SCRAPPEY_API_KEY not set, solver fallback is disabled")

    browser_factory = BrowserFactory(
        settings.WEBDRIVER_URL,
        settings.browser_proxy_address,
        settings.window_size,
    )
    app.state.navigator_factory = partial(
        Navigator,
        browser_factory,
        solver,
        proxy_config,
        settings.DATA_PATH,
        settings.CHALLENGE_POLL_INTERVAL,
    )

    try:
        yield
    finally:
        logger.info("Shutting down application...")
        bridge_task.cancel()
        await asyncio.gather(bridge_task, return_exceptions=True)
        await solver.close()

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="FlareSolverr-compatible challenge resolver",
    version=flaresolverr.FLARESOLVERR_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.include_router(flaresolverr.router)

# Custom middleware for request timing
@app.middleware("http")
async def add_timing_header(request: Request, call_next):
    start_time = time.perf_counter()
    response = await call_next(request)
    process_time = time.perf_counter() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response

@app.exception_handler(ResolverException)
async def resolver_exception_handler(request: Request, exc: ResolverException):
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {str(exc)}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_SERVER_ERROR",
                "message": "An unexpected error occurred",
                "status": 500
            }
        }
    )

# Mount Prometheus metrics endpoint
app.mount("/metrics", metrics_app)

@app.get("/", response_model=IndexResponse)
async def index():
    logger.info("Index endpoint called")
    return IndexResponse(
        msg="FlareSolverr is ready!",
        version=flaresolverr.FLARESOLVERR_VERSION,
        userAgent="That's a secret :)",
    )

@app.get("/health", response_model=HealthResponse)
async def health_check():
    logger.info("Health endpoint called")
    return HealthResponse(status=flaresolverr.STATUS_OK)

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
