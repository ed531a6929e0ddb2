"""Authentication service with sign-in state listeners."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Literal

from result import Err, Ok, Result

from projdash.errors import DashboardError

if TYPE_CHECKING:
    from projdash.data.protocols import AuthProviderProtocol
    from projdash.models.auth import AuthSession, UserProfile

logger = logging.getLogger(__name__)

AuthEvent = Literal["SIGNED_IN", "SIGNED_OUT"]
AuthListener = Callable[[AuthEvent, "AuthSession | None"], None]


class AuthService:
    """Wraps an auth provider and tracks the current session."""

    def __init__(self, provider: AuthProviderProtocol) -> None:
        self._provider = provider
        self._session: AuthSession | None = None
        self._listeners: list[AuthListener] = []

    @property
    def session(self) -> AuthSession | None:
        return self._session

    @property
    def current_user(self) -> UserProfile | None:
        return self._session.user if self._session is not None else None

    def on_auth_state_change(self, callback: AuthListener) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it."""
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    async def get_session(self) -> AuthSession | None:
        self._session = await self._provider.get_session()
        return self._session

    async def sign_in(self, email: str, password: str) -> Result[AuthSession, DashboardError]:
        try:
            session = await self._provider.sign_in(email, password)
        except DashboardError as exc:
            logger.info("Sign-in failed for %s: %s", email, exc)
            return Err(exc)
        self._set_session(session)
        return Ok(session)

    async def sign_up(
        self, email: str, password: str, full_name: str = ""
    ) -> Result[AuthSession, DashboardError]:
        try:
            session = await self._provider.sign_up(email, password, full_name)
        except DashboardError as exc:
            logger.info("Sign-up failed for %s: %s", email, exc)
            return Err(exc)
        self._set_session(session)
        return Ok(session)

    async def sign_out(self) -> Result[None, DashboardError]:
        try:
            await self._provider.sign_out()
        except DashboardError as exc:
            return Err(exc)
        self._session = None
        self._emit("SIGNED_OUT", None)
        return Ok(None)

    def _set_session(self, session: AuthSession) -> None:
        self._session = session
        logger.info("Signed in as %s", session.user.email)
        self._emit("SIGNED_IN", session)

    def _emit(self, event: AuthEvent, session: AuthSession | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:
                logger.exception("Auth listener failed for %s", event)
