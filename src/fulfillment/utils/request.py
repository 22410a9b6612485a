"""
Blocking HTTP plumbing shared by the Radarr, Sonarr, library and TMDB clients.

Every client owns one `SmartSession`. Requests go out over httpx but come back
as `requests.Response` subclasses, so callers only ever deal with the
`requests` exception hierarchy.
"""

import json
import random
import time
from email.utils import parsedate_to_datetime
from enum import Enum
from types import SimpleNamespace
from typing import Any
from urllib.parse import urlparse

import httpx
import requests
from loguru import logger


class CircuitBreakerOpen(RuntimeError):
    """A host's breaker is open; the request was not sent."""

    def __init__(self, name: str):
        super().__init__(f"Circuit breaker OPEN for {name}")
        self.name = name


class BreakerState(str, Enum):
    Closed = "CLOSED"
    Open = "OPEN"
    HalfOpen = "HALF_OPEN"


class CircuitBreaker:
    """
    Fails fast for a host after `failure_threshold` consecutive failures.

    Once `recovery_time` seconds have passed a single trial request is let through:
    success closes the breaker, failure opens it again.
    """

    def __init__(self, failure_threshold: int = 5, recovery_time: int = 30, name: str = "unknown"):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_time = recovery_time
        self.state = BreakerState.Closed
        self.failures = 0
        self.opened_at: float | None = None

    def check(self) -> None:
        if self.state != BreakerState.Open:
            return

        if self.opened_at is not None and time.monotonic() - self.opened_at > self.recovery_time:
            self.state = BreakerState.HalfOpen
            logger.debug(f"Letting one request through to {self.name} after {self.recovery_time}s")
            return

        raise CircuitBreakerOpen(self.name)

    def record(self, success: bool) -> None:
        if success:
            if self.state != BreakerState.Closed:
                logger.info(f"{self.name} recovered, circuit breaker closed")
            self.state = BreakerState.Closed
            self.failures = 0
            self.opened_at = None
            return

        self.failures += 1
        if self.state == BreakerState.HalfOpen or self.failures >= self.failure_threshold:
            if self.state != BreakerState.Open:
                logger.warning(f"{self.name} failed {self.failures} time(s), circuit breaker open")
            self.state = BreakerState.Open
            self.opened_at = time.monotonic()


class SmartResponse(requests.Response):
    """`requests.Response` with the JSON body also readable as attributes via `.data`."""

    _parsed: Any = None

    @classmethod
    def from_httpx(cls, response: httpx.Response) -> "SmartResponse":
        smart = cls()
        smart.status_code = response.status_code
        smart.reason = response.reason_phrase
        smart.url = str(response.request.url)
        smart.headers.update(response.headers.items())
        smart._content = response.content or b""
        if response.encoding:
            smart.encoding = response.encoding
        response.close()
        return smart

    @property
    def data(self) -> Any:
        """Body parsed into `SimpleNamespace` objects; `{}` when it is empty or not JSON."""

        if self._parsed is None:
            self._parsed = {}
            if self.content and "json" in self.headers.get("Content-Type", ""):
                try:
                    self._parsed = json.loads(
                        self.content, object_hook=lambda d: SimpleNamespace(**d)
                    )
                except ValueError as e:
                    logger.error(f"Unreadable JSON from {self.url}: {e}")

        return self._parsed


def get_hostname_from_url(url: str) -> str:
    return (urlparse(url).hostname or "").lower()


def retry_after_seconds(value: str | None) -> float | None:
    """Delay requested by a `Retry-After` header, in seconds or as an HTTP date."""

    if not value:
        return None

    if value.strip().isdigit():
        return float(value)

    try:
        return max(0.0, parsedate_to_datetime(value).timestamp() - time.time())
    except (TypeError, ValueError):
        return None


class SmartSession:
    """
    httpx client with default headers and params, an optional base URL,
    retries with jittered exponential backoff, and a circuit breaker for the
    base URL's host.

    Transient answers (429 and 5xx) and transport failures are retried up to
    `retries` times. What is left after that is returned (for answers) or
    raised as `requests.exceptions.Timeout` / `ConnectionError`.
    """

    def __init__(
        self,
        base_url: str | None = None,
        retries: int = 3,
        backoff_factor: float = 0.3,
        timeout: float = 30.0,
        circuit_breaker: bool = True,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.retries = int(retries)
        self.backoff_factor = float(backoff_factor)
        self.headers: dict[str, str] = {}
        self.params: dict[str, Any] = {}
        self.breakers: dict[str, CircuitBreaker] = {}

        self._client = httpx.Client(
            http2=True,
            timeout=httpx.Timeout(timeout, connect=5.0),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
        )

        if circuit_breaker and self.base_url:
            host = get_hostname_from_url(self.base_url)
            self.breakers[host] = CircuitBreaker(name=host)

    def request(self, method: str, url: str, **kwargs: Any) -> SmartResponse:
        """
        Send a request, retrying transient failures.

        `headers` and `params` are merged over the session defaults; a numeric
        `timeout` overrides the session timeout. Any other keyword is passed
        to httpx unchanged.

        Raises:
            requests.exceptions.Timeout: If the last attempt timed out.
            requests.exceptions.ConnectionError: If the last attempt could not connect.
            CircuitBreakerOpen: If the host is failing and the breaker is open.
        """

        method = method.upper()
        url = self._resolve(url)
        breaker = self.breakers.get(get_hostname_from_url(url))
        if breaker:
            breaker.check()

        headers = {**self.headers, **(kwargs.pop("headers", None) or {})}
        params = {**self.params, **(kwargs.pop("params", None) or {})}
        follow_redirects = kwargs.pop("allow_redirects", True)
        timeout = kwargs.pop("timeout", None)
        if not isinstance(timeout, (int, float)):
            timeout = self._client.timeout

        for attempt in range(1, self.retries + 2):
            last_attempt = attempt > self.retries

            try:
                response = self._client.request(
                    method,
                    url,
                    headers=headers,
                    params=params or None,
                    timeout=timeout,
                    follow_redirects=follow_redirects,
                    **kwargs,
                )
            except httpx.RequestError as e:
                if not last_attempt:
                    time.sleep(self._backoff(attempt))
                    continue
                if breaker:
                    breaker.record(False)
                if isinstance(e, httpx.TimeoutException):
                    raise requests.exceptions.Timeout(f"{method} {url}: {e}") from e
                raise requests.exceptions.ConnectionError(f"{method} {url}: {e}") from e

            transient = response.status_code == 429 or response.status_code >= 500
            if transient and not last_attempt:
                delay = retry_after_seconds(response.headers.get("Retry-After"))
                time.sleep(self._backoff(attempt) if delay is None else delay)
                continue

            if breaker:
                breaker.record(not transient)

            logger.trace(f"{method} {url} -> {response.status_code} (attempt {attempt})")
            return SmartResponse.from_httpx(response)

    def get(self, url: str, **kwargs: Any) -> SmartResponse:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> SmartResponse:
        return self.request("POST", url, **kwargs)

    def close(self):
        self._client.close()

    def _resolve(self, url: str) -> str:
        if self.base_url and not url.lower().startswith(("http://", "https://")):
            return f"{self.base_url}/{url.lstrip('/')}"
        return url

    def _backoff(self, attempt: int) -> float:
        # Equal jitter: somewhere in [0.5, 1.0] of the exponential step
        step = self.backoff_factor * 2 ** (attempt - 1)
        return step * (0.5 + random.random() / 2)
