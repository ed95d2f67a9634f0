import logging
from typing import Optional

import requests
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Ensure environment variables from .env are loaded when this module is imported.
load_dotenv()


def open_session(token: Optional[str] = None) -> requests.Session:
    """Create a requests session for the catalog service.

    Parameters
    ----------
    token : Optional[str]
        Bearer token attached to every request when given.

    Returns
    -------
    requests.Session
        Session with JSON ``Accept`` and, optionally, ``Authorization`` headers.
    """
    session = requests.Session()
    session.headers["Accept"] = "application/json"
    if token:
        session.headers["Authorization"] = f"Bearer {token}"
        # Do not log the token value
        logger.debug("Catalog session opened with bearer token")
    else:
        logger.debug("Catalog session opened without credentials")
    return session


def parse_level(entry: dict) -> dict:
    """Normalize one catalog prize level into keyword arguments for ``PrizeLevel``.

    Raises
    ------
    ValueError
        If a required field is missing.
    """
    try:
        code = str(entry["code"])
        total = int(entry["total"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"Malformed catalog prize level: {entry!r}") from exc

    return {
        "code": code,
        "name": entry.get("name") or code,
        "total": total,
        "base_probability": float(entry.get("probability", 0.0)),
        "is_bonus": bool(entry.get("bonus", False)),
    }
