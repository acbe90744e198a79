"""
Retry/backoff helper for GitLab GET requests.
Only rate-limited (429) and unavailable (503) responses are retried; every other outcome,
including transport exceptions, goes straight back to the caller for translation.
"""

import os
import time
import random
import email.utils
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any
import requests

logger = logging.getLogger(__name__)

RETRY_STATUSES = (429, 503)

# retry/backoff defaults from environment
DEFAULT_MAX_RETRIES = int(os.getenv("GITLAB_MAX_RETRIES", "3"))
DEFAULT_BACKOFF_BASE = float(os.getenv("GITLAB_BACKOFF_BASE", "0.5"))
DEFAULT_MAX_BACKOFF = float(os.getenv("GITLAB_MAX_BACKOFF", "30.0"))

# runtime-overrides
_runtime_max_retries: Optional[int] = None
_runtime_backoff_base: Optional[float] = None
_runtime_max_backoff: Optional[float] = None


def configure_retry(max_retries: Optional[int] = None, backoff_base: Optional[float] = None, max_backoff: Optional[float] = None):
    """Configure retry/backoff defaults at runtime (e.g. from CLI)."""
    global _runtime_max_retries, _runtime_backoff_base, _runtime_max_backoff
    if max_retries is not None:
        _runtime_max_retries = int(max_retries)
    if backoff_base is not None:
        _runtime_backoff_base = float(backoff_base)
    if max_backoff is not None:
        _runtime_max_backoff = float(max_backoff)


def _parse_retry_after(raw_ra: Optional[str]) -> Optional[float]:
    if not raw_ra:
        return None
    try:
        return max(0.0, float(raw_ra))
    except ValueError:
        pass
    try:
        dt = email.utils.parsedate_to_datetime(raw_ra)
    except (TypeError, ValueError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return max(0.0, (dt - datetime.now(timezone.utc)).total_seconds())


def _resolve_settings(max_retries: Optional[int], backoff_base: Optional[float], max_backoff: Optional[float]):
    if max_retries is not None:
        retries = int(max_retries)
    elif _runtime_max_retries is not None:
        retries = _runtime_max_retries
    else:
        retries = DEFAULT_MAX_RETRIES

    if backoff_base is not None:
        base = float(backoff_base)
    elif _runtime_backoff_base is not None:
        base = _runtime_backoff_base
    else:
        base = DEFAULT_BACKOFF_BASE

    if max_backoff is not None:
        cap = float(max_backoff)
    elif _runtime_max_backoff is not None:
        cap = _runtime_max_backoff
    else:
        cap = DEFAULT_MAX_BACKOFF
    return max(0, retries), base, cap


def _compute_wait_seconds(resp, backoff: float, max_backoff: float) -> float:
    headers = getattr(resp, 'headers', None) or {}
    ra = _parse_retry_after(headers.get('Retry-After'))
    if ra is not None:
        return min(ra + random.uniform(0, backoff), max_backoff)
    return min(backoff + random.uniform(0, backoff), max_backoff)


def get_with_retries(
    url: str,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, Any]] = None,
    timeout: Optional[float] = None,
    max_retries: Optional[int] = None,
    backoff_base: Optional[float] = None,
    max_backoff: Optional[float] = None,
) -> requests.Response:
    """Perform a GET, retrying 429/503 responses with exponential backoff.

    max_retries counts retries after the first attempt. The last response is returned as-is once
    retries are exhausted; requests exceptions propagate unchanged.
    """
    retries, backoff, cap = _resolve_settings(max_retries, backoff_base, max_backoff)
    attempt = 0
    while True:
        resp = requests.get(url, headers=headers or {}, params=params or {}, timeout=timeout)
        status = getattr(resp, 'status_code', 0)
        if status not in RETRY_STATUSES or attempt >= retries:
            return resp
        wait = _compute_wait_seconds(resp, backoff, cap)
        attempt += 1
        logger.info('GitLab responded %s for %s; retry %d/%d in %.1fs', status, url, attempt, retries, wait)
        time.sleep(wait)
        backoff = min(backoff * 2, cap)


__all__ = ["configure_retry", "get_with_retries"]
