"""Tests for the in-process broadcast backend."""

from __future__ import annotations

import asyncio

import pytest

import shiftlog.errors as errors
from shiftlog.backends.memory import MemoryBackend


class TestMemoryBackendStorage:
    """Reads and writes."""

    def test_put_and_get(self, channel) -> None:
        async def scenario():
            backend = MemoryBackend(channel=channel)
            await backend.put("records", "r1", {"id": "r1", "meters": 10})
            return await backend.get_document("records", "r1")

        assert asyncio.run(scenario()) == {"id": "r1", "meters": 10}

    def test_get_missing_returns_none(self, channel) -> None:
        async def scenario():
            return await MemoryBackend(channel=channel).get_document("settings", "comments")

        assert asyncio.run(scenario()) is None

    def test_stored_documents_are_copies(self, channel) -> None:
        """Mutating a written or read document does not change the store."""

        async def scenario():
            backend = MemoryBackend(channel=channel)
            document = {"id": "r1", "tags": ["a"]}
            await backend.put("records", "r1", document)
            document["tags"].append("b")
            read = await backend.get_document("records", "r1")
            read["tags"].append("c")
            return await backend.get_document("records", "r1")

        assert asyncio.run(scenario()) == {"id": "r1", "tags": ["a"]}

    def test_instances_on_one_channel_share_data(self, channel) -> None:
        async def scenario():
            await MemoryBackend(channel=channel).put("records", "r1", {"id": "r1"})
            return await MemoryBackend(channel=channel).list_all("records")

        assert asyncio.run(scenario()) == [{"id": "r1"}]

    def test_list_ids_uses_storage_keys(self, channel) -> None:
        async def scenario():
            backend = MemoryBackend(channel=channel)
            await backend.put("records", "r1", {"meters": 1})
            return await backend.list_ids("records")

        assert asyncio.run(scenario()) == ["r1"]

    def test_delete_many_ignores_missing(self, channel) -> None:
        async def scenario():
            backend = MemoryBackend(channel=channel)
            await backend.put_many("records", {"a": {"id": "a"}, "b": {"id": "b"}})
            await backend.delete_many("records", ["a", "zzz"])
            return await backend.list_all("records")

        assert asyncio.run(scenario()) == [{"id": "b"}]


class TestMemoryBackendSubscriptions:
    """Change notifications."""

    def test_initial_snapshot_and_updates(self, channel, settle) -> None:
        async def scenario():
            backend = MemoryBackend(channel=channel)
            seen = []
            backend.subscribe("records", seen.append, lambda e: None)
            await settle()
            await backend.put("records", "r1", {"id": "r1"})
            await settle()
            return seen

        assert asyncio.run(scenario()) == [[], [{"id": "r1"}]]

    def test_other_instance_writes_are_broadcast(self, channel, settle) -> None:
        """A write through one instance reaches listeners on another."""

        async def scenario():
            reader = MemoryBackend(channel=channel)
            writer = MemoryBackend(channel=channel)
            seen = []
            reader.subscribe("records", seen.append, lambda e: None)
            await writer.put("records", "r1", {"id": "r1"})
            await settle()
            return seen

        assert asyncio.run(scenario())[-1] == [{"id": "r1"}]

    def test_other_collections_do_not_notify(self, channel, settle) -> None:
        async def scenario():
            backend = MemoryBackend(channel=channel)
            seen = []
            backend.subscribe("records", seen.append, lambda e: None)
            await settle()
            await backend.put("settings", "comments", {"values": ["X"]})
            await settle()
            return seen

        assert asyncio.run(scenario()) == [[]]

    def test_document_subscription(self, channel, settle) -> None:
        async def scenario():
            backend = MemoryBackend(channel=channel)
            seen = []
            backend.subscribe_document("settings", "comments", seen.append, lambda e: None)
            await settle()
            await backend.put("settings", "operators", {"values": ["Ana"]})
            await backend.put("settings", "comments", {"values": ["X"]})
            await settle()
            return seen

        assert asyncio.run(scenario()) == [None, {"values": ["X"]}]

    def test_delete_of_missing_document_does_not_notify(self, channel, settle) -> None:
        async def scenario():
            backend = MemoryBackend(channel=channel)
            seen = []
            backend.subscribe("records", seen.append, lambda e: None)
            await settle()
            await backend.delete("records", "nope")
            await settle()
            return seen

        assert asyncio.run(scenario()) == [[]]

    def test_closed_subscription_receives_nothing(self, channel, settle) -> None:
        async def scenario():
            backend = MemoryBackend(channel=channel)
            seen = []
            subscription = backend.subscribe("records", seen.append, lambda e: None)
            await backend.put("records", "r1", {"id": "r1"})
            subscription.close()
            subscription.close()
            await settle()
            return seen, subscription.closed

        seen, closed = asyncio.run(scenario())
        assert seen == []
        assert closed

    def test_close_cancels_own_listeners(self, channel, settle) -> None:
        async def scenario():
            backend = MemoryBackend(channel=channel)
            other = MemoryBackend(channel=channel)
            seen = []
            backend.subscribe("records", seen.append, lambda e: None)
            await settle()
            await backend.close()
            await backend.close()
            await other.put("records", "r1", {"id": "r1"})
            await settle()
            return seen

        assert asyncio.run(scenario()) == [[]]


class TestMemoryBackendFailures:
    """Outages and permission failures."""

    def test_offline_writes_raise_connectivity_error(self, channel) -> None:
        async def scenario():
            backend = MemoryBackend(channel=channel)
            backend.set_online(False)
            await backend.put("records", "r1", {"id": "r1"})

        with pytest.raises(errors.ConnectivityError):
            asyncio.run(scenario())

    def test_offline_reads_raise_connectivity_error(self, channel) -> None:
        async def scenario():
            backend = MemoryBackend(channel=channel)
            backend.set_online(False)
            await backend.list_all("records")

        with pytest.raises(errors.ConnectivityError):
            asyncio.run(scenario())

    def test_read_only_rejects_writes(self, channel) -> None:
        async def scenario():
            await MemoryBackend(channel=channel, read_only=True).delete("records", "r1")

        with pytest.raises(errors.AuthorizationError):
            asyncio.run(scenario())

    def test_outage_and_recovery_are_signalled(self, channel, settle) -> None:
        """After an error, the next snapshot is delivered even if unchanged."""

        async def scenario():
            backend = MemoryBackend(channel=channel)
            events = []
            backend.subscribe(
                "records",
                lambda docs: events.append(("change", docs)),
                lambda err: events.append(("error", err.code)),
            )
            await settle()
            backend.set_online(False)
            await settle()
            backend.set_online(True)
            await settle()
            return events

        assert asyncio.run(scenario()) == [
            ("change", []),
            ("error", "unavailable"),
            ("change", []),
        ]

    def test_subscribe_while_offline_reports_error(self, channel, settle) -> None:
        async def scenario():
            backend = MemoryBackend(channel=channel)
            backend.set_online(False)
            errors_seen = []
            backend.subscribe("records", lambda docs: None, errors_seen.append)
            await settle()
            return errors_seen

        (error,) = asyncio.run(scenario())
        assert isinstance(error, errors.ConnectivityError)
