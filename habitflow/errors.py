"""Exception hierarchy shared by the store, registry and HTTP layers."""

from __future__ import annotations


class RegistryError(Exception):
    """Base class for failures surfaced to API clients."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(RegistryError):
    """Required registration input is missing or malformed."""

    status_code = 400


class AuthenticationError(RegistryError):
    status_code = 401


class NotFoundError(RegistryError):
    status_code = 404


class ConflictError(RegistryError):
    """An account already exists for the supplied email address."""

    status_code = 409


class StorageError(RegistryError):
    """The backing medium could not be read from or written to."""

    status_code = 500


__all__ = [
    "RegistryError",
    "ValidationError",
    "AuthenticationError",
    "NotFoundError",
    "ConflictError",
    "StorageError",
]
