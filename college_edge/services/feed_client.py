"""
Shared HTTP plumbing for the external data feeds.

Every feed is read-only and pull-based.  Transient failures (connection
errors, timeouts, 5xx/429 responses) are retried with bounded exponential
backoff; after the last attempt the exception propagates to the calling
job, which records a failed ``DataFetch`` row and skips that unit.
"""

import logging
import os
import time
from typing import Any, Dict, Optional

import requests
from dotenv import load_dotenv
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

load_dotenv()

logger = logging.getLogger(__name__)

HTTP_MAX_ATTEMPTS = int(os.getenv("HTTP_MAX_ATTEMPTS", "3"))
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "15"))


class TransientFeedError(requests.RequestException):
    """Raised for status codes worth retrying (429 and 5xx)."""


class FeedClient:
    """Base class: one ``requests.Session`` and a retrying ``get_json``."""

    source = "feed"

    def __init__(self, base_url: str, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.last_response_ms: Optional[float] = None

    def _headers(self) -> Dict[str, str]:
        return {"Accept": "application/json"}

    def _params(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in params.items() if v is not None}

    @retry(
        stop=stop_after_attempt(HTTP_MAX_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(
            (requests.ConnectionError, requests.Timeout, TransientFeedError)
        ),
        reraise=True,
    )
    def get_json(self, path: str, **params) -> Any:
        url = f"{self.base_url}{path}"
        started = time.perf_counter()
        response = self.session.get(
            url, params=self._params(params), headers=self._headers(), timeout=HTTP_TIMEOUT
        )
        self.last_response_ms = (time.perf_counter() - started) * 1000
        if response.status_code == 429 or response.status_code >= 500:
            logger.warning("%s %s returned %d, retrying", self.source, path, response.status_code)
            raise TransientFeedError(f"{self.source} {path}: HTTP {response.status_code}")
        response.raise_for_status()
        return response.json()
