from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from habitflow.errors import StorageError
from habitflow.models import User
from habitflow.store import JSONFileUserStore, resolve_data_path


def _user(user_id: str, email: str, *, minutes: int = 0) -> User:
    created = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc) + timedelta(minutes=minutes)
    return User(id=user_id, name=f"User {user_id}", email=email, created_at=created)


@pytest.fixture()
def store(tmp_path: Path) -> JSONFileUserStore:
    return JSONFileUserStore(tmp_path / "data" / "users.json")


def test_missing_file_reads_as_empty(store: JSONFileUserStore) -> None:
    assert asyncio.run(store.list_users()) == []
    assert asyncio.run(store.find_by_email("nobody@example.com")) is None


def test_insert_preserves_insertion_order_and_writes_json_array(store: JSONFileUserStore) -> None:
    asyncio.run(store.insert(_user("a", "a@example.com", minutes=5)))
    asyncio.run(store.insert(_user("b", "b@example.com")))

    users = asyncio.run(store.list_users())
    assert [user.id for user in users] == ["a", "b"]

    on_disk = json.loads(store.path.read_text(encoding="utf-8"))
    assert isinstance(on_disk, list)
    assert on_disk[0]["email"] == "a@example.com"
    assert on_disk[0]["createdAt"] == "2024-05-01T12:05:00+00:00"


def test_find_by_email_is_case_insensitive(store: JSONFileUserStore) -> None:
    asyncio.run(store.insert(_user("a", "ana@test.com")))

    found = asyncio.run(store.find_by_email("  ANA@Test.com "))
    assert found is not None
    assert found.id == "a"


def test_delete_by_id_reports_whether_a_record_was_removed(store: JSONFileUserStore) -> None:
    asyncio.run(store.insert(_user("a", "a@example.com")))
    asyncio.run(store.insert(_user("b", "b@example.com")))

    assert asyncio.run(store.delete_by_id("a")) is True
    assert [user.id for user in asyncio.run(store.list_users())] == ["b"]
    assert asyncio.run(store.delete_by_id("a")) is False


def test_corrupt_file_is_treated_as_empty(store: JSONFileUserStore) -> None:
    store.path.parent.mkdir(parents=True)
    store.path.write_text("{not json", encoding="utf-8")

    assert asyncio.run(store.list_users()) == []


def test_existing_records_written_by_other_clients_are_read(store: JSONFileUserStore) -> None:
    store.path.parent.mkdir(parents=True)
    store.path.write_text(
        json.dumps(
            [
                {
                    "id": "1714564800000",
                    "name": "Legacy",
                    "email": "legacy@example.com",
                    "password": None,
                    "createdAt": "2024-05-01T12:00:00.000Z",
                }
            ]
        ),
        encoding="utf-8",
    )

    users = asyncio.run(store.list_users())
    assert len(users) == 1
    assert users[0].password is None
    assert users[0].created_at.tzinfo is not None


def test_unwritable_medium_raises_storage_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    store = JSONFileUserStore(blocker / "users.json")

    with pytest.raises(StorageError):
        asyncio.run(store.insert(_user("a", "a@example.com")))


def test_resolve_data_path_defaults_to_project_data_directory() -> None:
    path = resolve_data_path(None)
    assert path.name == "users.json"
    assert path.parent.name == "data"


def test_resolve_data_path_honours_explicit_value(tmp_path: Path) -> None:
    target = tmp_path / "custom.json"
    assert resolve_data_path(str(target)) == target.resolve()


def test_invalid_record_does_not_hide_or_erase_valid_ones(store: JSONFileUserStore) -> None:
    store.path.parent.mkdir(parents=True)
    store.path.write_text(
        json.dumps(
            [
                {
                    "id": "1",
                    "name": "Kept",
                    "email": "kept@example.com",
                    "password": None,
                    "createdAt": "2024-05-01T12:00:00+00:00",
                },
                {"id": "2", "name": "Broken", "email": "broken@example.com"},
            ]
        ),
        encoding="utf-8",
    )

    assert [user.id for user in asyncio.run(store.list_users())] == ["1"]

    asyncio.run(store.insert(_user("3", "new@example.com")))

    on_disk = json.loads(store.path.read_text(encoding="utf-8"))
    assert [item["id"] for item in on_disk] == ["1", "2", "3"]
    assert [user.id for user in asyncio.run(store.list_users())] == ["1", "3"]

    assert asyncio.run(store.delete_by_id("3")) is True
    on_disk = json.loads(store.path.read_text(encoding="utf-8"))
    assert [item["id"] for item in on_disk] == ["1", "2"]
