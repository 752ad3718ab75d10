from pathlib import Path
from typing import Optional, Union
import time
from loguru import logger
from pydantic import ValidationError

from core.exceptions import PersistenceError
from models.session import SessionData

PathLike = Union[str, Path]

def load(path: PathLike) -> SessionData:
    """
    Read session data from a JSON file.

    Raises:
        PersistenceError: The file is missing, unreadable or malformed
    """
    try:
        raw = Path(path).read_text(encoding="utf-8")
        data = SessionData.model_validate_json(raw)
    except (OSError, ValidationError, ValueError) as e:
        raise PersistenceError(str(path), str(e)) from e
    logger.debug(f"Loaded session data from {path} ({len(data.cookies)} cookies)")
    return data

def save(path: PathLike, data: SessionData) -> None:
    """Write session data as pretty-printed JSON, truncating any existing file"""
    try:
        Path(path).write_text(
            data.model_dump_json(by_alias=True, exclude_none=True, indent=2),
            encoding="utf-8",
        )
    except OSError as e:
        raise PersistenceError(str(path), str(e)) from e
    logger.debug(f"Saved session data to {path} ({len(data.cookies)} cookies)")

def sweep(data: SessionData, now: Optional[float] = None) -> int:
    """Drop every cookie whose expiry has passed. Returns how many were removed."""
    now = time.time() if now is None else now
    kept = []
    for cookie in data.cookies:
        if cookie.is_expired(now):
            logger.debug(f"Removing expired cookie: {cookie.name} ({cookie.domain})")
            continue
        kept.append(cookie)
    removed = len(data.cookies) - len(kept)
    data.cookies[:] = kept
    return removed

def load_or_fresh(path: PathLike) -> SessionData:
    """Load session data, starting a fresh identity when that fails"""
    try:
        return load(path)
    except PersistenceError as e:
        logger.warning(f"Failed to load browser data, starting fresh: {e.details.get('reason')}")
        return SessionData()
