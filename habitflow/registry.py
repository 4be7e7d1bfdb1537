"""Registration, listing and deletion of user accounts."""

from __future__ import annotations

import asyncio
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from .errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from .events import USER_REGISTERED, LiveUpdateChannel
from .models import User
from .store import UserStore

logger = logging.getLogger("habitflow.registry")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _normalise_text(value: Optional[str]) -> str:
    if value is None:
        return ""
    return str(value).strip()


@dataclass(frozen=True)
class Identity:
    """The authenticated view of an account handed back to a client session."""

    current_user: User
    is_admin: bool = False


class RegistryService:
    """Enforces unique emails on top of a :class:`UserStore` and announces new users."""

    def __init__(
        self,
        store: UserStore,
        channel: LiveUpdateChannel,
        *,
        admin_email: Optional[str] = None,
    ) -> None:
        self._store = store
        self._channel = channel
        self._admin_email = admin_email.strip().lower() if admin_email else None
        # Serialises the existence check with the insert inside this process.
        self._register_lock = asyncio.Lock()

    @property
    def store(self) -> UserStore:
        return self._store

    @property
    def channel(self) -> LiveUpdateChannel:
        return self._channel

    async def register(self, name: Optional[str], email: Optional[str], password: Optional[str] = None) -> User:
        """Create a new account and broadcast it to live-update subscribers."""

        normalised_name = _normalise_text(name)
        normalised_email = _normalise_text(email).lower()
        if not normalised_name or not normalised_email:
            raise ValidationError("name and email required")

        async with self._register_lock:
            if await self._store.find_by_email(normalised_email) is not None:
                raise ConflictError("User already exists")

            user = User(
                id=uuid.uuid4().hex,
                name=normalised_name,
                email=normalised_email,
                created_at=_utcnow(),
                password=password if password else None,
            )
            await self._store.insert(user)

        logger.info("Registered user %s <%s>", user.id, user.email)
        self._channel.publish(USER_REGISTERED, user.to_document())
        return user

    async def list_users(self) -> List[User]:
        return await self._store.list_users()

    async def find_by_email(self, email: str) -> Optional[User]:
        normalised = _normalise_text(email).lower()
        if not normalised:
            return None
        return await self._store.find_by_email(normalised)

    async def delete_user(self, user_id: str) -> bool:
        removed = await self._store.delete_by_id(user_id)
        if removed:
            logger.info("Deleted user %s", user_id)
        return removed

    async def remove_user(self, user_id: str) -> None:
        """Delete a user or raise :class:`NotFoundError` when no record matched."""

        if not await self.delete_user(user_id):
            raise NotFoundError("Not found")

    async def authenticate(self, email: Optional[str], password: Optional[str]) -> Identity:
        """Check a login attempt against the stored, client-encoded password.

        Accounts registered without a password accept any credential.
        """

        user = await self.find_by_email(email or "")
        if user is None:
            raise AuthenticationError("No account found for this email")

        if user.password and not secrets.compare_digest(user.password, password or ""):
            raise AuthenticationError("Invalid credentials")

        return Identity(current_user=user, is_admin=self.is_admin(user.email))

    def is_admin(self, email: str) -> bool:
        return self._admin_email is not None and email.strip().lower() == self._admin_email


__all__ = ["Identity", "RegistryService"]
