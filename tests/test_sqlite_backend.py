"""Tests for the SQLite backend."""

from __future__ import annotations

import asyncio
import json
import sqlite3

import pytest

import shiftlog.errors as errors
from shiftlog.backends.sqlite import SqliteBackend


def backend_at(tmp_path, **kwargs) -> SqliteBackend:
    return SqliteBackend(path=str(tmp_path / "shiftlog.db"), poll_interval=0.05, **kwargs)


class TestSqliteStorage:
    """Reads and writes."""

    def test_creates_documents_table(self, tmp_path) -> None:
        async def scenario():
            await backend_at(tmp_path).put("records", "r1", {"id": "r1"})

        asyncio.run(scenario())

        conn = sqlite3.connect(str(tmp_path / "shiftlog.db"))
        row = conn.execute(
            "SELECT collection, id, body FROM documents"
        ).fetchone()
        conn.close()
        assert row[0] == "records"
        assert row[1] == "r1"
        assert json.loads(row[2]) == {"id": "r1"}

    def test_put_replaces_document(self, tmp_path) -> None:
        async def scenario():
            backend = backend_at(tmp_path)
            await backend.put("records", "r1", {"id": "r1", "meters": 1})
            await backend.put("records", "r1", {"id": "r1", "meters": 2})
            return await backend.list_all("records")

        assert asyncio.run(scenario()) == [{"id": "r1", "meters": 2}]

    def test_list_ids_uses_storage_keys(self, tmp_path) -> None:
        async def scenario():
            backend = backend_at(tmp_path)
            await backend.put("records", "r2", {"meters": 1})
            await backend.put("records", "r1", {"id": "r1"})
            await backend.put("settings", "comments", {"values": []})
            return await backend.list_ids("records")

        assert asyncio.run(scenario()) == ["r1", "r2"]

    def test_get_document(self, tmp_path) -> None:
        async def scenario():
            backend = backend_at(tmp_path)
            await backend.put("settings", "comments", {"values": ["X"]})
            return (
                await backend.get_document("settings", "comments"),
                await backend.get_document("settings", "operators"),
            )

        assert asyncio.run(scenario()) == ({"values": ["X"]}, None)

    def test_put_many_and_delete_many(self, tmp_path) -> None:
        async def scenario():
            backend = backend_at(tmp_path)
            await backend.put_many(
                "records", {"a": {"id": "a"}, "b": {"id": "b"}, "c": {"id": "c"}}
            )
            await backend.delete_many("records", ["a", "c", "missing"])
            return await backend.list_all("records")

        assert asyncio.run(scenario()) == [{"id": "b"}]

    def test_data_survives_new_instance(self, tmp_path) -> None:
        async def scenario():
            await backend_at(tmp_path).put("records", "r1", {"id": "r1"})
            return await backend_at(tmp_path).list_all("records")

        assert asyncio.run(scenario()) == [{"id": "r1"}]


class TestSqliteSubscriptions:
    """Change notifications."""

    def test_initial_snapshot_and_own_writes(self, tmp_path, eventually) -> None:
        async def scenario():
            backend = backend_at(tmp_path)
            seen = []
            backend.subscribe("records", seen.append, lambda e: None)
            await eventually(lambda: seen == [[]])
            await backend.put("records", "r1", {"id": "r1"})
            await eventually(lambda: len(seen) == 2)
            await backend.close()
            return seen

        assert asyncio.run(scenario()) == [[], [{"id": "r1"}]]

    def test_writes_from_another_connection_are_detected(self, tmp_path, eventually) -> None:
        """The watcher picks up commits made outside this instance."""

        async def scenario():
            reader = backend_at(tmp_path)
            writer = backend_at(tmp_path)
            seen = []
            reader.subscribe("records", seen.append, lambda e: None)
            await eventually(lambda: seen == [[]])
            await writer.put("records", "r1", {"id": "r1"})
            await eventually(lambda: len(seen) == 2)
            await reader.close()
            return seen[-1]

        assert asyncio.run(scenario()) == [{"id": "r1"}]

    def test_document_subscription(self, tmp_path, eventually) -> None:
        async def scenario():
            backend = backend_at(tmp_path)
            seen = []
            backend.subscribe_document("settings", "comments", seen.append, lambda e: None)
            await eventually(lambda: seen == [None])
            await backend.put("settings", "comments", {"values": ["X"]})
            await eventually(lambda: len(seen) == 2)
            await backend.close()
            return seen

        assert asyncio.run(scenario()) == [None, {"values": ["X"]}]

    def test_no_delivery_after_close(self, tmp_path, eventually) -> None:
        async def scenario():
            backend = backend_at(tmp_path)
            writer = backend_at(tmp_path)
            seen = []
            backend.subscribe("records", seen.append, lambda e: None)
            await eventually(lambda: seen == [[]])
            await backend.close()
            await backend.close()
            await writer.put("records", "r1", {"id": "r1"})
            await asyncio.sleep(0.2)
            return seen

        assert asyncio.run(scenario()) == [[]]


class TestSqliteFailures:
    """Error classification."""

    def test_unopenable_path_is_connectivity_error(self, tmp_path) -> None:
        """A directory in place of the database file cannot be opened."""
        (tmp_path / "shiftlog.db").mkdir()

        async def scenario():
            await backend_at(tmp_path).list_all("records")

        with pytest.raises(errors.ConnectivityError):
            asyncio.run(scenario())

    def test_read_only_write_is_authorization_error(self, tmp_path) -> None:
        async def scenario():
            await backend_at(tmp_path).put("records", "r1", {"id": "r1"})
            read_only = backend_at(tmp_path, read_only=True)
            assert await read_only.list_all("records") == [{"id": "r1"}]
            await read_only.put("records", "r2", {"id": "r2"})

        with pytest.raises(errors.AuthorizationError):
            asyncio.run(scenario())

    def test_subscription_error_is_reported(self, tmp_path, eventually) -> None:
        (tmp_path / "shiftlog.db").mkdir()

        async def scenario():
            backend = backend_at(tmp_path)
            failures = []
            backend.subscribe("records", lambda docs: None, failures.append)
            await eventually(lambda: bool(failures))
            await backend.close()
            return failures[0]

        assert isinstance(asyncio.run(scenario()), errors.ConnectivityError)
