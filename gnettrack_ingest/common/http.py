"""HTTP client with retries and timeouts for line-protocol writes."""

from __future__ import annotations

from dataclasses import dataclass, replace
from types import TracebackType
from typing import Any

import requests
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from gnettrack_ingest.common.constants import USER_AGENT
from gnettrack_ingest.common.errors import TransportRejected, TransportTransient

RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


@dataclass(frozen=True)
class TimeoutConfig:
    connect: float = 10.0
    read: float = 30.0


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 5
    multiplier: float = 1.0
    max_wait: float = 30.0


@dataclass(frozen=True)
class RetryState:
    """Attempt bookkeeping for one request, advanced by value."""

    attempts: int = 0
    last_error_kind: str | None = None

    @property
    def retries(self) -> int:
        return max(self.attempts - 1, 0)

    def begin_attempt(self) -> "RetryState":
        return replace(self, attempts=self.attempts + 1)

    def record_failure(self, error_kind: str) -> "RetryState":
        return replace(self, last_error_kind=error_kind)


@dataclass(frozen=True)
class HttpResult:
    status_code: int
    text: str
    retry_state: RetryState


class HttpClient:
    def __init__(
        self,
        *,
        timeout: TimeoutConfig | None = None,
        retry: RetryConfig | None = None,
    ) -> None:
        self.timeout = timeout or TimeoutConfig()
        self.retry = retry or RetryConfig()
        self.session = requests.Session()

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _headers(self, headers: dict[str, str] | None) -> dict[str, str]:
        out = {"User-Agent": USER_AGENT}
        if headers:
            out.update(headers)
        return out

    def _raise_for_status_or_retry(self, response: requests.Response) -> None:
        status = response.status_code
        if status in RETRYABLE_STATUS_CODES or status >= 500:
            raise TransportTransient(f"Retryable HTTP status: {status}", status_code=status)
        if status >= 400:
            raise TransportRejected(f"HTTP status: {status} {_error_body(response)}".rstrip(), status_code=status)

    def _send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None,
        data: str | bytes | dict[str, Any] | None,
        headers: dict[str, str] | None,
        auth: tuple[str, str] | None,
    ) -> requests.Response:
        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                data=data,
                headers=self._headers(headers),
                auth=auth,
                timeout=(self.timeout.connect, self.timeout.read),
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise TransportTransient(f"Transport failure for {url}: {exc}") from exc
        except requests.RequestException as exc:
            raise TransportRejected(f"Request to {url} could not be sent: {exc}") from exc
        self._raise_for_status_or_retry(response)
        return response

    def request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        data: str | bytes | dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        auth: tuple[str, str] | None = None,
        state: RetryState | None = None,
    ) -> HttpResult:
        """Send a request, retrying transient failures.

        Returns the final response together with the retry state. When the
        attempts are exhausted the last ``TransportTransient`` is re-raised with
        the retry state attached as ``exc.retry_state``.
        """
        current = state or RetryState()
        retrying = Retrying(
            stop=stop_after_attempt(self.retry.max_attempts),
            wait=wait_exponential_jitter(
                initial=self.retry.multiplier,
                max=self.retry.max_wait,
                jitter=1.0,
            ),
            retry=retry_if_exception_type(TransportTransient),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    current = current.begin_attempt()
                    try:
                        response = self._send(method, url, params=params, data=data, headers=headers, auth=auth)
                    except (TransportTransient, TransportRejected) as exc:
                        current = current.record_failure(exc.error_code)
                        raise
        except (TransportTransient, TransportRejected) as exc:
            exc.retry_state = current
            raise
        return HttpResult(status_code=response.status_code, text=response.text, retry_state=current)

    def post_text(
        self,
        url: str,
        body: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        auth: tuple[str, str] | None = None,
    ) -> HttpResult:
        merged = {"Content-Type": "text/plain; charset=utf-8"}
        if headers:
            merged.update(headers)
        return self.request(
            "POST",
            url,
            params=params,
            data=body.encode("utf-8"),
            headers=merged,
            auth=auth,
        )

    def get(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        auth: tuple[str, str] | None = None,
    ) -> HttpResult:
        return self.request("GET", url, params=params, headers=headers, auth=auth)


def _error_body(response: requests.Response) -> str:
    try:
        text = response.text or ""
    except (AttributeError, ValueError):
        return ""
    return text.strip()[:200]
