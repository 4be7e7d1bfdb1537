"""MongoDB-backed user store."""

from __future__ import annotations

import logging
from functools import partial
from typing import Any, Dict, List, Mapping, Optional

import anyio
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from .errors import StorageError
from .models import User
from .store import UserStore

logger = logging.getLogger("habitflow.mongo")

DEFAULT_DATABASE = "habitflow"
DEFAULT_COLLECTION = "users"
DEFAULT_CONNECT_TIMEOUT_MS = 3000


def _to_mongo(user: User) -> Dict[str, Any]:
    document = user.to_document()
    document["_id"] = user.id
    return document


def _from_mongo(document: Mapping[str, Any]) -> User:
    data = dict(document)
    data.pop("_id", None)
    return User.from_document(data)


class MongoUserStore(UserStore):
    """One document per user, looked up through a non-unique email index.

    ``pymongo`` is blocking, so every operation is pushed to a worker thread
    and the calling request suspends until it completes.
    """

    name = "mongodb"

    def __init__(self, collection: Collection, *, client: MongoClient | None = None) -> None:
        self._collection = collection
        self._client = client

    def describe(self) -> str:
        return f"mongodb:{self._collection.full_name}"

    async def _run(self, func, *args: Any, **kwargs: Any) -> Any:
        try:
            return await anyio.to_thread.run_sync(partial(func, *args, **kwargs))
        except PyMongoError as exc:
            raise StorageError(f"Document store operation failed: {exc}") from exc

    def ensure_indexes(self) -> None:
        try:
            self._collection.create_index([("email", ASCENDING)], name="email_lookup")
        except PyMongoError as exc:
            raise StorageError(f"Unable to create email index: {exc}") from exc

    async def list_users(self) -> List[User]:
        def _fetch() -> List[Mapping[str, Any]]:
            return list(self._collection.find().sort("createdAt", DESCENDING))

        documents = await self._run(_fetch)
        return [_from_mongo(document) for document in documents]

    async def find_by_email(self, email: str) -> Optional[User]:
        document = await self._run(self._collection.find_one, {"email": email.strip().lower()})
        if document is None:
            return None
        return _from_mongo(document)

    async def insert(self, user: User) -> None:
        await self._run(self._collection.insert_one, _to_mongo(user))

    async def delete_by_id(self, user_id: str) -> bool:
        result = await self._run(self._collection.delete_one, {"_id": user_id})
        return result.deleted_count > 0

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


def connect_mongo_store(
    url: str,
    *,
    database: str = DEFAULT_DATABASE,
    collection: str = DEFAULT_COLLECTION,
    timeout_ms: int = DEFAULT_CONNECT_TIMEOUT_MS,
) -> MongoUserStore:
    """Connect to MongoDB and return a ready store, or raise :class:`StorageError`."""

    client: MongoClient | None = None
    try:
        client = MongoClient(url, serverSelectionTimeoutMS=timeout_ms)
        client.admin.command("ping")
    except PyMongoError as exc:
        if client is not None:
            client.close()
        raise StorageError(f"Unable to connect to MongoDB: {exc}") from exc

    store = MongoUserStore(client[database][collection], client=client)
    try:
        store.ensure_indexes()
    except StorageError:
        client.close()
        raise
    logger.info("Connected to MongoDB collection %s.%s", database, collection)
    return store


__all__ = ["MongoUserStore", "connect_mongo_store"]
