"""Startup selection of the user store backend."""

from __future__ import annotations

import logging

from .config import Settings
from .errors import StorageError
from .store import JSONFileUserStore, UserStore

logger = logging.getLogger("habitflow.backends")


def open_user_store(settings: Settings) -> UserStore:
    """Return the configured store, falling back to the JSON file on connection failure."""

    if settings.mongo_url:
        from .mongo import connect_mongo_store

        try:
            return connect_mongo_store(
                settings.mongo_url,
                database=settings.mongo_database,
                collection=settings.mongo_collection,
            )
        except StorageError as exc:
            logger.warning("%s; falling back to file storage at %s", exc, settings.data_path)

    logger.info("Using file storage at %s", settings.data_path)
    return JSONFileUserStore(settings.data_path)


__all__ = ["open_user_store"]
