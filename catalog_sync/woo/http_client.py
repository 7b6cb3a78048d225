# catalog_sync/woo/http_client.py
# ==========================================================
# Outbound HTTP with bounded retries, exponential backoff,
# rate-limit cooldown and endpoint-sensitive timeouts.
# ==========================================================
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urlparse

import httpx

from catalog_sync.logging_filters import summarize_body
from catalog_sync.result import ApiResult, HTTP, NOT_FOUND, RATE_LIMITED, TRANSPORT
from catalog_sync.sync_logger import SyncLogger

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
BASE_DELAY = 2.0
MAX_DELAY = 30.0
RATE_LIMIT_COOLDOWN = 15.0
RATE_LIMIT_STATUSES = (429, 503)

# seconds
TIMEOUT_METADATA = 30.0
TIMEOUT_PRODUCT_UPDATE = 60.0
TIMEOUT_MEDIA = 120.0
TIMEOUT_PRODUCT_CREATE = 300.0
TIMEOUT_VARIATIONS = 600.0


def resolve_timeout(endpoint: str, method: str) -> float:
    """Pick a timeout from the endpoint path and HTTP method."""
    path = urlparse(endpoint).path.rstrip("/")
    method = method.upper()
    if "/variations" in path:
        return TIMEOUT_VARIATIONS
    if "/wp/v2/media" in path:
        return TIMEOUT_MEDIA
    last = path.rsplit("/", 1)[-1]
    if path.endswith("/products") and method == "POST":
        return TIMEOUT_PRODUCT_CREATE
    if "/products/" in path and last.isdigit() and method in ("PUT", "PATCH"):
        return TIMEOUT_PRODUCT_UPDATE
    return TIMEOUT_METADATA


def backoff_delay(attempt: int, base: float = BASE_DELAY, cap: float = MAX_DELAY) -> float:
    """Delay after the given (1-based) failed attempt."""
    return min(base * (2 ** (attempt - 1)), cap)


def _decode(resp: httpx.Response) -> Any:
    if not resp.content:
        return None
    try:
        return resp.json()
    except ValueError:
        return resp.text


def error_message_from_body(body: Any, status: Optional[int]) -> str:
    msg = None
    if isinstance(body, dict):
        msg = body.get("message") or body.get("error")
    return f"API error: {msg or 'Unknown error'}"


class RetryClient:
    def __init__(
        self,
        sync_logger: SyncLogger,
        *,
        client: Optional[httpx.AsyncClient] = None,
        verify: bool = False,
        max_attempts: int = MAX_ATTEMPTS,
        base_delay: float = BASE_DELAY,
        max_delay: float = MAX_DELAY,
        rate_limit_cooldown: float = RATE_LIMIT_COOLDOWN,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.log = sync_logger
        self._client = client or httpx.AsyncClient(verify=verify, follow_redirects=True)
        self._owns_client = client is None
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.rate_limit_cooldown = rate_limit_cooldown
        self.sleep = sleep

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "RetryClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        body: Any = None,
        timeout_hint: Optional[float] = None,
        *,
        params: Optional[Dict[str, Any]] = None,
        auth: Optional[tuple] = None,
        content: Optional[bytes] = None,
        raw: bool = False,
        attempts: Optional[int] = None,
    ) -> ApiResult:
        """
        Perform ``method endpoint`` with up to ``attempts`` (default ``max_attempts``) tries.
        Returns the decoded JSON body (or the httpx.Response when ``raw``) on 2xx,
        a ``not_found`` failure on 404, else the last transport/HTTP failure.
        """
        method = method.upper()
        timeout = timeout_hint if timeout_hint is not None else resolve_timeout(endpoint, method)
        ctx = {"endpoint": endpoint.split("?", 1)[0], "method": method}
        max_attempts = attempts or self.max_attempts
        last: ApiResult = ApiResult.fail(TRANSPORT, "No attempt made")

        for attempt in range(1, max_attempts + 1):
            self.log.info("API request", {**ctx, "attempt": attempt, "timeout": timeout})
            try:
                resp = await self._client.request(
                    method,
                    endpoint,
                    params=params,
                    headers=headers,
                    json=body if content is None and body is not None else None,
                    content=content,
                    auth=auth,
                    timeout=timeout,
                )
            except httpx.HTTPError as e:
                last = ApiResult.fail(TRANSPORT, f"Transport error: {e.__class__.__name__}: {e}")
                self.log.warning("API transport failure", {**ctx, "attempt": attempt, "error": str(e)})
                if attempt < max_attempts:
                    await self.sleep(backoff_delay(attempt, self.base_delay, self.max_delay))
                continue

            status = resp.status_code
            if 200 <= status < 300:
                return ApiResult.success(resp if raw else _decode(resp), status=status)

            data = _decode(resp)
            snippet = summarize_body(resp.text)
            if status == 404:
                self.log.info("API resource not found", {**ctx, "status": status})
                return ApiResult.fail(NOT_FOUND, error_message_from_body(data, status), status, data)

            if status in RATE_LIMIT_STATUSES:
                last = ApiResult.fail(RATE_LIMITED, error_message_from_body(data, status), status, data)
                self.log.warning("API rate limited", {
                    **ctx, "attempt": attempt, "status": status, "cooldown": self.rate_limit_cooldown,
                })
                if attempt < max_attempts:
                    await self.sleep(self.rate_limit_cooldown)
                continue

            last = ApiResult.fail(HTTP, error_message_from_body(data, status), status, data)
            self.log.warning("API request failed", {**ctx, "attempt": attempt, "status": status, "response": snippet})
            if attempt < max_attempts:
                await self.sleep(backoff_delay(attempt, self.base_delay, self.max_delay))

        self.log.error("API request gave up", {
            **ctx, "attempts": max_attempts, "status": last.status, "error": last.message,
        })
        return last
