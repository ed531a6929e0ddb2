"""Outbound webhook notifications (delete and upload events)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import requests

from projdash.errors import WebhookError

logger = logging.getLogger(__name__)


class WebhookNotifier:
    """Best-effort notifier for the operations endpoint.

    Every call raises ``WebhookError`` on transport failure, timeout or an
    HTTP status >= 400. Without a configured URL the notifier does nothing.
    """

    def __init__(
        self,
        url: str = "",
        *,
        timeout: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self._url)

    async def project_deleted(self, project_id: str, project_no: str) -> int | None:
        """Announce a deleted project. Returns the HTTP status, or ``None`` when disabled."""
        return await self._send("DELETE", {"projectId": project_id, "projectNo": project_no})

    async def files_uploaded(
        self, project_id: str, project_no: str, file_names: list[str]
    ) -> int | None:
        payload = {
            "event": "files_uploaded",
            "projectId": project_id,
            "projectNo": project_no,
            "files": list(file_names),
        }
        return await self._send("POST", payload)

    def close(self) -> None:
        self._session.close()

    async def _send(self, method: str, payload: dict[str, Any]) -> int | None:
        if not self._url:
            return None
        status = await asyncio.to_thread(self._request, method, payload)
        logger.info("Webhook %s %s answered %d", method, self._url, status)
        return status

    def _request(self, method: str, payload: dict[str, Any]) -> int:
        try:
            response = self._session.request(
                method, self._url, json=payload, timeout=self._timeout
            )
        except requests.Timeout as exc:
            msg = f"Webhook timed out after {self._timeout:g}s"
            raise WebhookError(msg) from exc
        except requests.RequestException as exc:
            msg = f"Webhook request failed: {exc}"
            raise WebhookError(msg) from exc
        if response.status_code >= 400:
            msg = f"Webhook answered HTTP {response.status_code}"
            raise WebhookError(msg)
        return response.status_code
