"""Tests for the MongoDB store against an in-memory stand-in collection."""

from __future__ import annotations

import asyncio
import unittest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Dict, List

from pymongo.errors import ServerSelectionTimeoutError

from habitflow.errors import StorageError
from habitflow.models import User
from habitflow.mongo import MongoUserStore


class _Cursor:
    def __init__(self, documents: List[Dict[str, Any]]) -> None:
        self._documents = documents

    def sort(self, key: str, direction: int) -> List[Dict[str, Any]]:
        return sorted(self._documents, key=lambda item: item[key], reverse=direction < 0)


class FakeCollection:
    full_name = "habitflow.users"

    def __init__(self) -> None:
        self.documents: List[Dict[str, Any]] = []
        self.indexes: List[Any] = []
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise ServerSelectionTimeoutError("connection lost")

    def create_index(self, keys, **kwargs):
        self.indexes.append((keys, kwargs))
        return kwargs.get("name")

    def find(self) -> _Cursor:
        self._check()
        return _Cursor([dict(item) for item in self.documents])

    def find_one(self, query: Dict[str, Any]):
        self._check()
        for item in self.documents:
            if all(item.get(key) == value for key, value in query.items()):
                return dict(item)
        return None

    def insert_one(self, document: Dict[str, Any]):
        self._check()
        self.documents.append(dict(document))
        return SimpleNamespace(inserted_id=document["_id"])

    def delete_one(self, query: Dict[str, Any]):
        self._check()
        for index, item in enumerate(self.documents):
            if all(item.get(key) == value for key, value in query.items()):
                del self.documents[index]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)


def _user(user_id: str, email: str, minutes: int) -> User:
    created = datetime(2024, 5, 1, tzinfo=timezone.utc) + timedelta(minutes=minutes)
    return User(id=user_id, name=user_id.title(), email=email, created_at=created, password="c2VjcmV0")


class MongoUserStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.collection = FakeCollection()
        self.store = MongoUserStore(self.collection)  # type: ignore[arg-type]

    def test_documents_use_user_id_as_primary_key(self) -> None:
        asyncio.run(self.store.insert(_user("alice", "alice@example.com", 0)))

        stored = self.collection.documents[0]
        self.assertEqual(stored["_id"], "alice")
        self.assertEqual(stored["email"], "alice@example.com")
        self.assertEqual(stored["password"], "c2VjcmV0")

    def test_listing_is_newest_first(self) -> None:
        asyncio.run(self.store.insert(_user("old", "old@example.com", 0)))
        asyncio.run(self.store.insert(_user("new", "new@example.com", 10)))

        users = asyncio.run(self.store.list_users())
        self.assertEqual([user.id for user in users], ["new", "old"])

    def test_find_and_delete(self) -> None:
        asyncio.run(self.store.insert(_user("alice", "alice@example.com", 0)))

        found = asyncio.run(self.store.find_by_email("Alice@Example.com"))
        self.assertIsNotNone(found)
        self.assertEqual(found.id, "alice")

        self.assertTrue(asyncio.run(self.store.delete_by_id("alice")))
        self.assertFalse(asyncio.run(self.store.delete_by_id("alice")))
        self.assertIsNone(asyncio.run(self.store.find_by_email("alice@example.com")))

    def test_email_index_is_not_unique(self) -> None:
        self.store.ensure_indexes()

        keys, options = self.collection.indexes[0]
        self.assertEqual(keys, [("email", 1)])
        self.assertNotIn("unique", options)

    def test_driver_failures_become_storage_errors(self) -> None:
        self.collection.fail = True

        with self.assertRaises(StorageError):
            asyncio.run(self.store.insert(_user("alice", "alice@example.com", 0)))
        with self.assertRaises(StorageError):
            asyncio.run(self.store.list_users())


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
