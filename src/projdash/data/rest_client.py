"""Blocking HTTP client for the hosted backend, awaited through worker threads."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any

import requests

from projdash.errors import (
    DashboardError,
    NotFoundError,
    PermissionDeniedError,
    StoreError,
    TransientNetworkError,
    ValidationError,
)

logger = logging.getLogger(__name__)

Params = Mapping[str, str] | Sequence[tuple[str, str]]


def error_message(response: requests.Response) -> str:
    """Best-effort human message from an error response body."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "msg", "error_description", "error"):
            value = body.get(key)
            if value:
                return str(value)
    text = response.text.strip()
    return text[:200] if text else f"HTTP {response.status_code}"


def error_for_response(response: requests.Response) -> DashboardError:
    """Map an HTTP error status to the dashboard error taxonomy."""
    status = response.status_code
    message = error_message(response)
    if status in (401, 403):
        return PermissionDeniedError(message)
    if status in (404, 406):
        return NotFoundError(message)
    if status in (400, 409, 422):
        return ValidationError(message)
    if status == 408 or status == 429 or status >= 500:
        return TransientNetworkError(message)
    return StoreError(message)


def json_body(response: requests.Response) -> Any:
    """Decoded JSON body; a body that is not JSON is a ValidationError."""
    try:
        return response.json()
    except ValueError as exc:
        msg = f"Malformed JSON in response (HTTP {response.status_code})"
        raise ValidationError(msg) from exc


def parse_content_range(header: str | None) -> int | None:
    """Total from a PostgREST ``Content-Range`` header (``0-9/48`` or ``*/0``)."""
    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[1].strip()
    return int(total) if total.isdigit() else None


class RestClient:
    """Thin wrapper over ``requests.Session`` for the Supabase REST surface.

    Every request carries the project ``apikey``; the bearer token is the
    signed-in user's access token, or the anon key when signed out.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._session = session or requests.Session()
        self._access_token: str | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def access_token(self) -> str | None:
        return self._access_token

    def set_access_token(self, token: str | None) -> None:
        self._access_token = token

    def url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def headers(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._access_token or self._api_key}",
        }
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Params | None = None,
        json: Any = None,
        data: bytes | None = None,
        headers: Mapping[str, str] | None = None,
        allow_status: tuple[int, ...] = (),
    ) -> requests.Response:
        """Send a request without blocking the event loop.

        Raises a ``DashboardError`` subclass for transport failures and for
        error statuses not listed in ``allow_status``.
        """
        return await asyncio.to_thread(
            self._send, method, path, params, json, data, headers, allow_status
        )

    def _send(
        self,
        method: str,
        path: str,
        params: Params | None,
        json: Any,
        data: bytes | None,
        headers: Mapping[str, str] | None,
        allow_status: tuple[int, ...],
    ) -> requests.Response:
        url = self.url(path)
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                json=json,
                data=data,
                headers=self.headers(headers),
                timeout=self._timeout,
            )
        except requests.Timeout as exc:
            msg = f"{method} {path} timed out after {self._timeout:g}s"
            raise TransientNetworkError(msg) from exc
        except requests.ConnectionError as exc:
            msg = f"Could not connect to {self._base_url}"
            raise TransientNetworkError(msg) from exc
        except requests.RequestException as exc:
            msg = f"{method} {path} failed: {exc}"
            raise StoreError(msg) from exc
        if response.status_code >= 400 and response.status_code not in allow_status:
            logger.debug("%s %s -> %s", method, path, response.status_code)
            raise error_for_response(response)
        return response

    def close(self) -> None:
        self._session.close()
