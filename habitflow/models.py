"""Domain models for the HabitFlow user registry."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional


@dataclass(frozen=True)
class User:
    """Represents a registered account as stored by a user store backend."""

    id: str
    name: str
    email: str
    created_at: datetime
    password: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        """Return the persisted (and wire) representation of the record."""

        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "password": self.password,
            "createdAt": self.created_at.isoformat(),
        }

    @staticmethod
    def from_document(data: Mapping[str, Any]) -> "User":
        """Create a :class:`User` from a stored document."""

        required_fields = {"id", "name", "email", "createdAt"}
        missing = required_fields - data.keys()
        if missing:
            raise ValueError(f"Missing required user fields: {', '.join(sorted(missing))}")

        password = data.get("password")
        return User(
            id=str(data["id"]),
            name=str(data["name"]),
            email=str(data["email"]),
            created_at=datetime.fromisoformat(str(data["createdAt"])),
            password=str(password) if password is not None else None,
        )


def encode_password(password: str) -> str:
    """Encode a plain password the same way the browser client does (``btoa``)."""

    return base64.b64encode(password.encode("utf-8")).decode("ascii")


def decode_password(encoded: str) -> str:
    """Reverse :func:`encode_password`, raising ``ValueError`` for malformed input."""

    try:
        return base64.b64decode(encoded.encode("ascii"), validate=True).decode("utf-8")
    except (ValueError, binascii.Error) as exc:
        raise ValueError("Password is not validly encoded") from exc


__all__ = ["User", "encode_password", "decode_password"]
