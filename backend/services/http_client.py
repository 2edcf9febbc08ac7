"""
Resilient HTTP client for the Drive API.

Every attempt takes a fresh bearer token from the credential pool, so a
retry may go out under a different identity. Transport failures back off
linearly, 429s honour Retry-After, and the attempt budget is fixed.
"""
import time
import asyncio
import logging
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from core.config import ADDON_NAME, ADDON_VERSION, API_MAX_ATTEMPTS, API_TIMEOUT_MS, RETRY_BASE_MS
from core.errors import RetryBudgetExhausted, UpstreamError
from services.credentials import CredentialPool

logger = logging.getLogger(__name__)

USER_AGENT = f"{ADDON_NAME.replace(' ', '-')}/{ADDON_VERSION}"


def parse_retry_after(value: Optional[str], now: Optional[float] = None) -> Optional[float]:
    """Parse a Retry-After header (delta-seconds or HTTP-date) into seconds."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when is None:
        return None
    now = time.time() if now is None else now
    return max(when.timestamp() - now, 0.0)


class ResilientClient:
    """
    Sole path for outbound Drive traffic.

    call() returns the response for any non-429 status, including 4xx/5xx;
    deciding whether that is an error is left to the caller.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        pool: CredentialPool,
        max_attempts: int = API_MAX_ATTEMPTS,
        timeout_ms: int = API_TIMEOUT_MS,
        retry_base_ms: int = RETRY_BASE_MS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._http = http_client
        self.pool = pool
        self.max_attempts = max_attempts
        self.timeout_ms = timeout_ms
        self.retry_base_ms = retry_base_ms
        self._sleep = sleep

    async def call(
        self,
        url: str,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        max_attempts: Optional[int] = None,
        timeout_ms: Optional[int] = None,
        stream: bool = False,
    ) -> httpx.Response:
        """
        Perform one logical call.

        With stream=True the body is left unread and the caller must
        aclose() the response.

        Raises RetryBudgetExhausted when every attempt failed or was
        rate limited. NoCredentialsAvailable propagates untouched.
        """
        attempts = max_attempts or self.max_attempts
        timeout = (timeout_ms or self.timeout_ms) / 1000
        last_error = ""

        for attempt in range(attempts):
            token = await self.pool.acquire_one()
            request_headers = dict(headers or {})
            request_headers["Authorization"] = f"Bearer {token}"
            request_headers["User-Agent"] = USER_AGENT

            try:
                request = self._http.build_request(method, url, params=params, headers=request_headers)
                response = await asyncio.wait_for(self._http.send(request, stream=stream), timeout=timeout)
            except (httpx.TransportError, asyncio.TimeoutError) as e:
                last_error = repr(e)
                delay = self.retry_base_ms * (attempt + 1) / 1000
                logger.warning(
                    f"Drive call failed (attempt {attempt + 1}/{attempts}): {last_error}; retrying in {delay:.2f}s"
                )
                if attempt + 1 < attempts:
                    await self._sleep(delay)
                continue

            if response.status_code == 429:
                delay = parse_retry_after(response.headers.get("Retry-After"))
                if delay is None:
                    delay = float(2 ** attempt)
                last_error = "HTTP 429"
                if stream:
                    await response.aclose()
                logger.warning(
                    f"Drive quota exceeded (attempt {attempt + 1}/{attempts}) for {url}; waiting {delay:.1f}s"
                )
                if attempt + 1 < attempts:
                    await self._sleep(delay)
                continue

            return response

        logger.error(f"Retry budget exhausted for {url} after {attempts} attempts ({last_error})")
        raise RetryBudgetExhausted(url, attempts, last_error)

    async def get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Optional[dict]:
        """
        GET and decode JSON. A 4xx or a malformed body gives None; a 5xx
        raises UpstreamError.
        """
        response = await self.call(url, params=params)
        if response.status_code >= 500:
            logger.error(f"Drive server error {response.status_code} for {url}")
            raise UpstreamError(url, response.status_code)
        if not response.is_success:
            logger.info(f"Drive returned {response.status_code} for {url}")
            return None
        try:
            body = response.json()
        except ValueError:
            logger.warning(f"Malformed JSON from {url}")
            return None
        return body if isinstance(body, dict) else None
