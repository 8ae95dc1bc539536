"""Retrying, timeout-bounded executor for every call to the backend API."""

import asyncio
import json
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, replace
from typing import Any, Optional

import httpx

from ..errors import (
    ClientError,
    RequestError,
    RequestFailed,
    RequestTimeout,
    TransientTransportError,
)
from ..events import Event, Notifier
from ..logging import get_logger
from .policy import AttemptOutcome, RequestAttempt, RetryPolicy, classify_status

logger = get_logger("transport")

AuthProvider = Callable[[], Mapping[str, str]]


@dataclass
class RequestOptions:
    """Per-call options. ``None`` means use the executor's default."""
    method: str = "GET"
    json: Any = None
    params: Optional[dict] = None
    headers: Optional[dict[str, str]] = None
    timeout: Optional[float] = None
    max_retries: Optional[int] = None
    retry_delay: Optional[float] = None
    include_auth: bool = True


def _parse_body(response: httpx.Response) -> Any:
    """JSON when the content type says so, raw text otherwise."""
    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            return response.json()
        except ValueError:
            return response.text
    return response.text


def _merge_headers(target: dict[str, str], headers: Mapping[str, str]) -> None:
    """Header names are case-insensitive: a later value replaces any spelling of the name."""
    for name, value in headers.items():
        for existing in [k for k in target if k.lower() == name.lower()]:
            del target[existing]
        target[name] = value


def _error_message(response: httpx.Response, body: Any) -> str:
    """Pull a readable message out of a failed response."""
    message = ""
    if isinstance(body, dict):
        error = body.get("error")
        if error:
            message = error if isinstance(error, str) else json.dumps(error)
        else:
            message = json.dumps(body)
    elif isinstance(body, list):
        message = json.dumps(body)
    elif body:
        message = str(body)
    return message or f"HTTP {response.status_code}: {response.reason_phrase}"


class RequestExecutor:
    """Async HTTP executor with default headers, timeouts and bounded retries.

    Timeouts are terminal: a hung attempt already consumed the budget.
    4xx responses other than 429 are terminal. Transport errors, 429 and
    5xx are retried with exponential backoff until the policy runs out,
    then surfaced as ``RequestFailed``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        auth_provider: Optional[AuthProvider] = None,
        notifier: Optional[Notifier] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.policy = RetryPolicy(max_retries=max_retries, base_delay=retry_delay)
        self._auth_provider = auth_provider
        self._notifier = notifier
        self._sleep = sleep
        # Deadlines are enforced per attempt by execute(), not by httpx
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=None,
            transport=transport,
        )

    def set_auth_provider(self, provider: Optional[AuthProvider]) -> None:
        """Attach the source of session headers (usually CredentialSession)."""
        self._auth_provider = provider

    async def close(self):
        await self._client.aclose()

    def compose_headers(
        self,
        headers: Optional[Mapping[str, str]] = None,
        include_auth: bool = True,
    ) -> dict[str, str]:
        """Default headers, then session headers, then caller headers (caller wins)."""
        composed = {"Content-Type": "application/json"}
        if include_auth and self._auth_provider is not None:
            _merge_headers(composed, self._auth_provider())
        if headers:
            _merge_headers(composed, headers)
        return composed

    async def get(self, endpoint: str, **options) -> Any:
        return await self.execute(endpoint, RequestOptions(method="GET", **options))

    async def post(self, endpoint: str, json: Any = None, **options) -> Any:
        return await self.execute(endpoint, RequestOptions(method="POST", json=json, **options))

    async def execute(self, endpoint: str, options: Optional[RequestOptions] = None) -> Any:
        """Perform a call and return its parsed body.

        Raises:
            RequestTimeout: an attempt exceeded the deadline
            ClientError: terminal 4xx response
            RequestFailed: retryable failures exhausted the policy
        """
        options = options or RequestOptions()
        timeout = options.timeout if options.timeout is not None else self.timeout
        policy = self.policy
        if options.max_retries is not None or options.retry_delay is not None:
            policy = replace(
                policy,
                max_retries=options.max_retries if options.max_retries is not None else policy.max_retries,
                base_delay=options.retry_delay if options.retry_delay is not None else policy.base_delay,
            )

        headers = self.compose_headers(options.headers, options.include_auth)
        carries_session = any(name.lower() == "authorization" for name in headers)
        method = options.method.upper()

        attempts: list[RequestAttempt] = []
        last_error: Optional[RequestError] = None

        for number in range(1, policy.max_retries + 1):
            attempt = RequestAttempt(number=number, timeout=timeout)
            attempts.append(attempt)
            started = time.monotonic()

            try:
                response = await asyncio.wait_for(
                    self._client.request(
                        method,
                        endpoint,
                        json=options.json,
                        params=options.params,
                        headers=headers,
                    ),
                    timeout=timeout,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException):
                attempt.elapsed = time.monotonic() - started
                attempt.outcome = AttemptOutcome.TERMINAL
                attempt.error = RequestTimeout(
                    f"Request timeout after {timeout:g}s",
                    endpoint=endpoint,
                    attempts=number,
                )
                logger.error(
                    f"{method} {endpoint} timed out on attempt {number} after {timeout:g}s",
                    extra={"endpoint": endpoint},
                )
                attempt.error.history = attempts
                raise attempt.error
            except httpx.TransportError as e:
                attempt.elapsed = time.monotonic() - started
                attempt.outcome = AttemptOutcome.RETRYABLE
                attempt.error = TransientTransportError(
                    f"{type(e).__name__}: {e}",
                    endpoint=endpoint,
                    attempts=number,
                )
                attempt.error.__cause__ = e
                logger.warning(
                    f"{method} {endpoint} attempt {number} failed: {type(e).__name__}: {e}",
                    extra={"endpoint": endpoint},
                )
            else:
                attempt.elapsed = time.monotonic() - started
                attempt.status = response.status_code
                attempt.outcome = classify_status(response.status_code)
                body = _parse_body(response)

                if attempt.outcome is AttemptOutcome.SUCCESS:
                    return body

                message = _error_message(response, body)
                logger.warning(
                    f"{method} {endpoint} attempt {number} returned HTTP {response.status_code}: {message}",
                    extra={"endpoint": endpoint},
                )

                if attempt.outcome is AttemptOutcome.TERMINAL:
                    attempt.error = ClientError(
                        message,
                        endpoint=endpoint,
                        attempts=number,
                        status=response.status_code,
                        body=body,
                    )
                    if response.status_code == 401 and carries_session and self._notifier:
                        self._notifier.publish(
                            Event.AUTH_REQUIRED,
                            {"reason": message, "endpoint": endpoint},
                        )
                    attempt.error.history = attempts
                    raise attempt.error

                attempt.error = TransientTransportError(
                    message,
                    endpoint=endpoint,
                    attempts=number,
                    status=response.status_code,
                    body=body,
                )

            last_error = attempt.error
            if policy.has_attempts_left(number):
                delay = policy.delay_for(number)
                logger.debug(f"Retrying {method} {endpoint} in {delay:g}s")
                await self._sleep(delay)

        logger.error(
            f"All {policy.max_retries} attempt(s) failed for {method} {endpoint}: {last_error}",
            extra={"endpoint": endpoint},
        )
        failed = RequestFailed(last_error)
        failed.history = attempts
        raise failed
