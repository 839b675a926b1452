"""Outbound HTTP with per-attempt timeouts and bounded retry."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .errors import ClientError, TransientError

log = structlog.get_logger()

DEFAULT_TIMEOUT = 45.0
UPLOAD_TIMEOUT = 60.0


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to retry a transient failure and how long to wait.

    The delay before retry ``n`` is ``base_delay * backoff ** (n - 1)``,
    capped at ``max_delay``. ``backoff=1`` gives a fixed delay.
    """

    max_retries: int = 2
    base_delay: float = 0.5
    backoff: float = 3.0
    max_delay: float = 10.0
    retry_server_errors: bool = True

    def is_retryable(self, exc: BaseException) -> bool:
        if not isinstance(exc, TransientError):
            return False
        return self.retry_server_errors or exc.status_code is None

    def retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(
                multiplier=self.base_delay, exp_base=self.backoff, max=self.max_delay
            ),
            retry=retry_if_exception(self.is_retryable),
            before_sleep=_log_retry,
            reraise=True,
        )


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    log.info(
        "request_retry",
        attempt=retry_state.attempt_number,
        wait=retry_state.next_action.sleep if retry_state.next_action else 0,
        error=str(exc),
    )


def error_message(response: httpx.Response) -> str:
    """Prefer the ``message`` field of a JSON error body, else the reason phrase."""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.reason_phrase or f"HTTP {response.status_code}"


class RequestFacade:
    """Send requests, retrying network errors, timeouts and 5xx responses.

    4xx responses are raised as ClientError on the first attempt; repeating
    a malformed request cannot succeed.
    """

    def __init__(
        self,
        base_url: str = "",
        policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.base_url = base_url
        self.policy = policy or RetryPolicy()
        self.transport = transport
        self.headers = {"Accept": "application/json", **(headers or {})}

    async def send(
        self,
        method: str,
        url: str,
        body: object | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        params: dict | None = None,
    ) -> httpx.Response:
        """Send a JSON request and return the response (status < 400)."""
        kwargs: dict = {"params": params}
        if body is not None:
            kwargs["json"] = body
        return await self._with_retry(self.policy, method, url, timeout, kwargs)

    async def upload_file(
        self,
        url: str,
        content: bytes,
        filename: str,
        content_type: str,
        field_name: str = "cover",
        max_retries: int = 2,
        timeout: float = UPLOAD_TIMEOUT,
    ) -> httpx.Response:
        """POST ``content`` as a multipart file field."""
        kwargs = {"files": {field_name: (filename, content, content_type)}}
        policy = replace(self.policy, max_retries=max_retries)
        return await self._with_retry(policy, "POST", url, timeout, kwargs)

    async def _with_retry(
        self, policy: RetryPolicy, method: str, url: str, timeout: float, kwargs: dict
    ) -> httpx.Response:
        async for attempt in policy.retrying():
            with attempt:
                response = await self._attempt(method, url, timeout, kwargs)
        return response

    async def _attempt(
        self, method: str, url: str, timeout: float, kwargs: dict
    ) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            transport=self.transport,
            headers=self.headers,
            timeout=timeout,
        ) as client:
            try:
                response = await asyncio.wait_for(
                    client.request(method, url, **kwargs), timeout
                )
            except asyncio.TimeoutError as e:
                log.debug("request_timeout", method=method, url=url, timeout=timeout)
                raise TransientError(f"Request timed out after {timeout}s") from e
            except httpx.TransportError as e:
                log.debug("request_network_error", method=method, url=url, error=str(e))
                raise TransientError(f"Network error: {e}") from e

        status = response.status_code
        if status < 400:
            return response
        message = error_message(response)
        if status >= 500:
            raise TransientError(f"Server error ({status}): {message}", status_code=status)
        raise ClientError(message, status_code=status)
