"""HabitFlow user registry service."""

from __future__ import annotations

from typing import Any

from .models import User
from .store import JSONFileUserStore, UserStore, resolve_data_path


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the registry HTTP application."""

    from .service import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "User",
    "UserStore",
    "JSONFileUserStore",
    "resolve_data_path",
    "create_app",
]
