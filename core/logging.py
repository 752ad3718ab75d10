import logging
import sys
from loguru import logger
from core.config import settings

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{line} | {message}"

# Chatty third-party loggers, kept at WARNING unless we are debugging
NOISY_LOGGERS = ("selenium", "urllib3", "httpx", "httpcore")

class InterceptHandler(logging.Handler):
    """Route stdlib logging (uvicorn, selenium, httpx) into loguru"""

    def emit(self, record: logging.LogRecord):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())

def _no_null_bytes(record) -> bool:
    return not any(ord(c) == 0 for c in str(record["message"]))

def setup_logging():
    logger.remove()

    logger.add(
        sys.stdout,
        format=LOG_FORMAT,
        level=settings.LOG_LEVEL,
        backtrace=True,
        diagnose=False,
        filter=_no_null_bytes,
    )

    logger.add(
        "logs/resolverr.log",
        rotation="500 MB",
        retention="10 days",
        format=LOG_FORMAT,
        level=settings.LOG_LEVEL,
        backtrace=True,
        diagnose=False,
        encoding="utf-8",
        filter=_no_null_bytes,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).handlers = [InterceptHandler()]
        logging.getLogger(name).propagate = False
    if not settings.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    return logger
