"""GoTrue password authentication for the hosted backend."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from projdash.data.rest_client import json_body
from projdash.data.rows import as_dict, parse_profile
from projdash.errors import AuthenticationError, DashboardError, NotFoundError, ValidationError
from projdash.models.auth import AuthSession, UserProfile

if TYPE_CHECKING:
    from projdash.data.rest_client import RestClient

logger = logging.getLogger(__name__)

AUTH = "auth/v1"


class RemoteAuthProvider:
    """Signs in against GoTrue and installs the access token on the client."""

    def __init__(self, client: RestClient) -> None:
        self._client = client
        self._session: AuthSession | None = None

    async def get_session(self) -> AuthSession | None:
        return self._session

    async def sign_in(self, email: str, password: str) -> AuthSession:
        try:
            response = await self._client.request(
                "POST",
                f"{AUTH}/token",
                params={"grant_type": "password"},
                json={"email": email.strip(), "password": password},
            )
        except (ValidationError, NotFoundError) as exc:
            raise AuthenticationError(str(exc)) from exc
        return await self._session_from(json_body(response))

    async def sign_up(self, email: str, password: str, full_name: str = "") -> AuthSession:
        try:
            response = await self._client.request(
                "POST",
                f"{AUTH}/signup",
                json={
                    "email": email.strip(),
                    "password": password,
                    "data": {"full_name": full_name.strip()},
                },
            )
        except ValidationError as exc:
            raise AuthenticationError(str(exc)) from exc
        body = as_dict(json_body(response))
        if not body.get("access_token"):
            msg = "Registration received. Confirm your email address, then sign in."
            raise AuthenticationError(msg)
        return await self._session_from(body)

    async def sign_out(self) -> None:
        if self._client.access_token:
            try:
                await self._client.request("POST", f"{AUTH}/logout")
            except DashboardError as exc:
                logger.warning("Remote sign-out failed: %s", exc)
        self._client.set_access_token(None)
        self._session = None

    async def get_profile(self, user_id: str) -> UserProfile:
        response = await self._client.request(
            "GET", "rest/v1/profiles", params=[("select", "*"), ("id", f"eq.{user_id}")]
        )
        rows = json_body(response)
        if not isinstance(rows, list) or not rows:
            msg = f"Profile {user_id} not found"
            raise NotFoundError(msg)
        return parse_profile(rows[0])

    async def _session_from(self, body: Any) -> AuthSession:
        data = as_dict(body)
        user = as_dict(data.get("user") or {})
        token = str(data.get("access_token") or "")
        if not token or not user.get("id"):
            msg = "Authentication response did not include a session"
            raise AuthenticationError(msg)
        self._client.set_access_token(token)
        try:
            profile = await self.get_profile(str(user["id"]))
        except NotFoundError:
            metadata = as_dict(user.get("user_metadata") or {})
            profile = UserProfile(
                id=str(user["id"]),
                email=str(user.get("email") or ""),
                full_name=str(metadata.get("full_name") or ""),
                avatar_url=str(metadata.get("avatar_url") or ""),
            )
        self._session = AuthSession(
            access_token=token,
            refresh_token=str(data.get("refresh_token") or ""),
            user=profile,
        )
        return self._session
