from __future__ import annotations

import pytest
from result import Err, Ok

from projdash.data.db import Database
from projdash.data.local_auth import LocalAuthProvider, validate_credentials
from projdash.errors import AuthenticationError, ValidationError
from projdash.models.auth import AuthSession, UserRole
from projdash.services.auth_service import AuthService


def test_validate_credentials_normalizes_email() -> None:
    assert validate_credentials("  Jane@Example.COM ", "secret") == "jane@example.com"
    with pytest.raises(ValidationError, match="valid email"):
        validate_credentials("jane", "secret")
    with pytest.raises(ValidationError, match="at least 6"):
        validate_credentials("jane@example.com", "12345")


@pytest.mark.asyncio
async def test_first_account_is_admin(in_memory_db: Database) -> None:
    provider = LocalAuthProvider(in_memory_db)

    first = await provider.sign_up("admin@example.com", "secret1", "Ada Admin")
    second = await provider.sign_up("member@example.com", "secret2")

    assert first.user.role is UserRole.ADMIN
    assert first.user.display_name == "Ada Admin"
    assert second.user.role is UserRole.MEMBER
    assert second.user.display_name == "member@example.com"
    assert await provider.get_session() == second


@pytest.mark.asyncio
async def test_duplicate_and_bad_credentials_fail(in_memory_db: Database) -> None:
    provider = LocalAuthProvider(in_memory_db)
    await provider.sign_up("jane@example.com", "secret1")

    with pytest.raises(AuthenticationError, match="already registered"):
        await provider.sign_up("JANE@example.com", "another1")
    with pytest.raises(AuthenticationError, match="Invalid login credentials"):
        await provider.sign_in("jane@example.com", "wrong-password")
    with pytest.raises(AuthenticationError, match="Invalid login credentials"):
        await provider.sign_in("nobody@example.com", "secret1")

    session = await provider.sign_in(" Jane@Example.com", "secret1")
    assert session.user.email == "jane@example.com"
    await provider.sign_out()
    assert await provider.get_session() is None


@pytest.mark.asyncio
async def test_auth_service_tracks_session_and_notifies(in_memory_db: Database) -> None:
    service = AuthService(LocalAuthProvider(in_memory_db))
    events: list[tuple[str, AuthSession | None]] = []
    unsubscribe = service.on_auth_state_change(
        lambda event, session: events.append((event, session))
    )

    signed_up = await service.sign_up("jane@example.com", "secret1", "Jane Doe")
    assert isinstance(signed_up, Ok)
    assert service.current_user is not None
    assert service.current_user.full_name == "Jane Doe"

    assert isinstance(await service.sign_out(), Ok)
    assert service.session is None
    assert [event for event, _ in events] == ["SIGNED_IN", "SIGNED_OUT"]

    unsubscribe()
    await service.sign_in("jane@example.com", "secret1")
    assert len(events) == 2


@pytest.mark.asyncio
async def test_auth_service_returns_err_without_notifying(in_memory_db: Database) -> None:
    service = AuthService(LocalAuthProvider(in_memory_db))
    events: list[str] = []
    service.on_auth_state_change(lambda event, _session: events.append(event))

    result = await service.sign_in("ghost@example.com", "secret1")

    assert isinstance(result, Err)
    assert result.err_value.user_message == "Invalid login credentials"
    assert events == []
    assert service.current_user is None


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_sign_in(in_memory_db: Database) -> None:
    service = AuthService(LocalAuthProvider(in_memory_db))

    def _boom(_event: str, _session: AuthSession | None) -> None:
        raise RuntimeError("listener bug")

    service.on_auth_state_change(_boom)

    assert isinstance(await service.sign_up("jane@example.com", "secret1"), Ok)
    assert service.current_user is not None
