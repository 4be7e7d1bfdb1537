"""User store contract and the flat JSON file backend."""

from __future__ import annotations

import abc
import json
import logging
from pathlib import Path
from typing import Any, List, Optional

from .errors import StorageError
from .models import User

logger = logging.getLogger("habitflow.store")


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_data_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the JSON user file."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "users.json").resolve(strict=False)


class UserStore(abc.ABC):
    """Persistence contract shared by every user store backend.

    Uniqueness of email addresses is not enforced here; the registry service
    checks for an existing record before calling :meth:`insert`.
    """

    name = "abstract"

    @abc.abstractmethod
    async def list_users(self) -> List[User]:
        """Return every stored user, newest first when the backend can order."""

    @abc.abstractmethod
    async def find_by_email(self, email: str) -> Optional[User]:
        """Return the user with a case-insensitively matching email, if any."""

    @abc.abstractmethod
    async def insert(self, user: User) -> None:
        """Persist a fully populated record."""

    @abc.abstractmethod
    async def delete_by_id(self, user_id: str) -> bool:
        """Remove the matching record and report whether one was removed."""

    async def close(self) -> None:
        return None

    def describe(self) -> str:
        return self.name


class JSONFileUserStore(UserStore):
    """Store users as a single JSON array that is rewritten on every change.

    Each call re-reads the file; there is no locking, so concurrent writers in
    other processes follow last-write-wins.
    """

    name = "file"

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def describe(self) -> str:
        return f"file:{self._path}"

    def _read_documents(self) -> List[Any]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            logger.warning("Unable to read %s, treating it as empty: %s", self._path, exc)
            return []

        try:
            documents = json.loads(raw or "[]")
        except ValueError as exc:
            logger.warning("Ignoring unparseable user data in %s: %s", self._path, exc)
            return []
        if not isinstance(documents, list):
            logger.warning("Ignoring user data in %s: expected a JSON array", self._path)
            return []
        return documents

    def _read(self) -> List[User]:
        users: List[User] = []
        for index, document in enumerate(self._read_documents()):
            try:
                users.append(User.from_document(document))
            except (ValueError, TypeError, AttributeError) as exc:
                logger.warning("Skipping invalid user record %s in %s: %s", index, self._path, exc)
        return users

    def _write(self, documents: List[Any]) -> None:
        payload = json.dumps(documents, indent=2)
        try:
            _ensure_directory(self._path)
            self._path.write_text(payload, encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Unable to write user data: {exc}") from exc

    async def list_users(self) -> List[User]:
        return self._read()

    async def find_by_email(self, email: str) -> Optional[User]:
        normalized = email.strip().lower()
        for user in self._read():
            if user.email.lower() == normalized:
                return user
        return None

    # Writes carry records that fail validation through untouched.
    async def insert(self, user: User) -> None:
        documents = self._read_documents()
        documents.append(user.to_document())
        self._write(documents)

    async def delete_by_id(self, user_id: str) -> bool:
        documents = self._read_documents()
        remaining = [
            document
            for document in documents
            if not (isinstance(document, dict) and str(document.get("id")) == user_id)
        ]
        if len(remaining) == len(documents):
            return False
        self._write(remaining)
        return True


__all__ = ["UserStore", "JSONFileUserStore", "resolve_data_path"]
