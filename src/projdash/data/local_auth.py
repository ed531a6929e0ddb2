"""Password authentication against the local ``profiles`` table."""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import uuid
from typing import TYPE_CHECKING

import aiosqlite

from projdash.data.local_store import utc_now
from projdash.data.rows import parse_profile
from projdash.errors import AuthenticationError, NotFoundError, ValidationError
from projdash.models.auth import AuthSession, UserProfile, UserRole

if TYPE_CHECKING:
    from projdash.data.db import Database

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 240_000
MIN_PASSWORD_LENGTH = 6


def hash_password(password: str, salt: bytes) -> str:
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return digest.hex()


def validate_credentials(email: str, password: str) -> str:
    """Return the normalized email or raise ``ValidationError``."""
    normalized = email.strip().lower()
    local, _, domain = normalized.partition("@")
    if not local or "." not in domain:
        msg = f"{email!r} is not a valid email address"
        raise ValidationError(msg)
    if len(password) < MIN_PASSWORD_LENGTH:
        msg = f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        raise ValidationError(msg)
    return normalized


class LocalAuthProvider:
    """Single-process auth provider. The first account becomes an Admin."""

    def __init__(self, db: Database) -> None:
        self._db = db
        self._session: AuthSession | None = None

    async def get_session(self) -> AuthSession | None:
        return self._session

    async def sign_up(self, email: str, password: str, full_name: str = "") -> AuthSession:
        normalized = validate_credentials(email, password)
        count_row = await self._db.fetch_one("SELECT COUNT(*) AS cnt FROM profiles")
        first_user = count_row is None or int(count_row["cnt"]) == 0
        role = UserRole.ADMIN if first_user else UserRole.MEMBER
        salt = secrets.token_bytes(16)
        user_id = str(uuid.uuid4())
        now = utc_now()
        try:
            await self._db.execute(
                """INSERT INTO profiles (
                       id, email, full_name, role, password_hash, password_salt,
                       created_at, updated_at
                   ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    user_id,
                    normalized,
                    full_name.strip() or None,
                    role.value,
                    hash_password(password, salt),
                    salt.hex(),
                    now,
                    now,
                ),
            )
            await self._db.commit()
        except aiosqlite.IntegrityError:
            await self._db.rollback()
            msg = "User already registered"
            raise AuthenticationError(msg) from None
        logger.info("Registered local user %s as %s", normalized, role.value)
        return self._start_session(await self.get_profile(user_id))

    async def sign_in(self, email: str, password: str) -> AuthSession:
        row = await self._db.fetch_one(
            "SELECT * FROM profiles WHERE email = ?", (email.strip().lower(),)
        )
        if row is None or not row["password_hash"] or not row["password_salt"]:
            msg = "Invalid login credentials"
            raise AuthenticationError(msg)
        expected = str(row["password_hash"])
        actual = hash_password(password, bytes.fromhex(str(row["password_salt"])))
        if not hmac.compare_digest(expected, actual):
            msg = "Invalid login credentials"
            raise AuthenticationError(msg)
        return self._start_session(parse_profile(row))

    async def sign_out(self) -> None:
        self._session = None

    async def get_profile(self, user_id: str) -> UserProfile:
        row = await self._db.fetch_one("SELECT * FROM profiles WHERE id = ?", (user_id,))
        if row is None:
            msg = f"Profile {user_id} not found"
            raise NotFoundError(msg)
        return parse_profile(row)

    def _start_session(self, profile: UserProfile) -> AuthSession:
        self._session = AuthSession(
            access_token=secrets.token_urlsafe(32),
            refresh_token=secrets.token_urlsafe(32),
            user=profile,
        )
        return self._session
