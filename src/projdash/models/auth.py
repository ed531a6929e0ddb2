"""Authentication models."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel


class UserRole(StrEnum):
    ADMIN = "Admin"
    MANAGER = "Manager"
    MEMBER = "Member"


class UserProfile(BaseModel):
    """Profile row joined to an auth user."""

    id: str
    email: str
    full_name: str = ""
    avatar_url: str = ""
    role: UserRole = UserRole.MEMBER

    @property
    def display_name(self) -> str:
        return self.full_name or self.email


class AuthSession(BaseModel):
    """Signed-in session."""

    access_token: str
    refresh_token: str = ""
    user: UserProfile
