"""Minimal work-tracking REST client with basic auth, retries, and timeout."""

from __future__ import annotations

import base64
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from tag_cascade.config import Settings

RETRYABLE_HTTP_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
JSON_PATCH_CONTENT_TYPE = "application/json-patch+json"
DEFAULT_USER_AGENT = "tag-cascade/1.0"
logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ServiceError(Exception):
    """Base tracking-service request error."""

    message: str
    code: str = "service_error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class TemporaryServiceError(ServiceError):
    """Retryable service error (throttling, 5xx, transport failure)."""

    retry_after: int | None = None


@dataclass(slots=True)
class NonRetryableServiceError(ServiceError):
    """Service error that retrying will not fix (auth, bad query, missing item)."""


def basic_auth_header(token: str) -> str:
    """Build the Authorization header value for a personal access token."""

    encoded = base64.b64encode(f":{token}".encode()).decode("ascii")
    return f"Basic {encoded}"


class TrackingClient:
    """HTTP client scoped to one organization and project.

    Paths passed to :meth:`get`, :meth:`post` and :meth:`patch` are relative to
    ``{base_url}/{organization}/{project}/_apis/``; the API version is appended
    to every request.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._api_version = settings.api_version
        self._max_retries = settings.max_retries
        self._retry_backoff_seconds = settings.retry_backoff_seconds
        self._sleep = sleep
        base_url = (
            f"{settings.base_url.rstrip('/')}/{quote(settings.organization, safe='')}/"
            f"{quote(settings.project, safe='')}/_apis/"
        )
        self._client = httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(settings.request_timeout_seconds, connect=10.0),
            headers={
                "Authorization": basic_auth_header(settings.token),
                "Accept": "application/json",
                "User-Agent": DEFAULT_USER_AGENT,
            },
            transport=transport,
            follow_redirects=False,
        )

    def get(self, path: str, *, params: dict[str, str] | None = None) -> Any:
        return self._request("GET", path, params=params)

    def post(self, path: str, payload: object) -> Any:
        return self._request("POST", path, json=payload)

    def patch(self, path: str, operations: list[dict[str, object]]) -> Any:
        return self._request(
            "PATCH",
            path,
            json=operations,
            headers={"Content-Type": JSON_PATCH_CONTENT_TYPE},
        )

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: object = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        query = {**(params or {}), "api-version": self._api_version}
        attempt = 0
        last_error: TemporaryServiceError | None = None
        while attempt < self._max_retries:
            attempt += 1
            try:
                response = self._client.request(
                    method,
                    path,
                    params=query,
                    json=json,
                    headers=headers,
                )
            except httpx.TimeoutException:
                last_error = TemporaryServiceError(
                    message=f"{method} {path} timed out",
                    code="timeout",
                )
            except httpx.HTTPError as exc:
                last_error = TemporaryServiceError(
                    message=f"{method} {path} transport error: {exc}",
                    code="transport",
                )
            else:
                if response.is_success:
                    return _decode_json(method, path, response)
                last_error = _classify_status(method, path, response)

            if attempt < self._max_retries:
                backoff = self._retry_backoff_seconds * attempt
                if last_error.retry_after is not None:
                    backoff = max(backoff, float(last_error.retry_after))
                logger.warning(
                    "%s (attempt %d/%d), retrying in %.1fs",
                    last_error.message,
                    attempt,
                    self._max_retries,
                    backoff,
                )
                self._sleep(backoff)

        if last_error is None:
            raise TemporaryServiceError(message=f"{method} {path} failed", code="unknown")
        raise last_error

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> TrackingClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _decode_json(method: str, path: str, response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise NonRetryableServiceError(
            message=f"{method} {path} returned invalid JSON: {exc}",
            code="invalid_json",
        ) from exc


def _classify_status(method: str, path: str, response: httpx.Response) -> TemporaryServiceError:
    detail = _error_detail(response)
    message = f"{method} {path} failed with HTTP {response.status_code}"
    if detail:
        message = f"{message}: {detail}"
    if response.status_code in RETRYABLE_HTTP_STATUS_CODES:
        return TemporaryServiceError(
            message=message,
            code=str(response.status_code),
            retry_after=_parse_retry_after(response.headers.get("Retry-After")),
        )
    raise NonRetryableServiceError(message=message, code=str(response.status_code))


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip()[:200]
    if isinstance(payload, dict):
        return str(payload.get("message") or "")
    return ""


def _parse_retry_after(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return max(0, int(value.strip()))
    except ValueError:
        return None
