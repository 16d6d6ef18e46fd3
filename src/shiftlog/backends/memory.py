"""In-process broadcast backend.

Every MemoryBackend configured with the same ``channel`` shares one set of
collections and one listener list, the way browser tabs share local
storage and a broadcast channel. A write through any instance is delivered
to the listeners of all instances on that channel, the writer included.

Useful for demos, tests and single-process deployments. Nothing survives
the process.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Literal

import pydantic as pdt
from loguru import logger

import shiftlog.backends.base as base
import shiftlog.errors as errors


@dataclass
class Channel:
    """Shared state behind one channel name."""

    collections: dict[str, dict[str, base.Document]] = field(default_factory=dict)
    listeners: list[base.Listener] = field(default_factory=list)
    online: bool = True


_CHANNELS: dict[str, Channel] = {}


def get_channel(name: str) -> Channel:
    return _CHANNELS.setdefault(name, Channel())


def drop_channel(name: str) -> None:
    """Forget a channel's data. Listeners already registered stay attached to the old state."""
    _CHANNELS.pop(name, None)


class MemoryBackend(base.BaseBackend):
    """Process-local backend with cross-instance change broadcast.

    Example:
        backend = MemoryBackend(channel="planta")
        await backend.put("records", "r1", {"id": "r1", ...})
    """

    kind: Literal["memory"] = "memory"
    channel: str = "default"
    read_only: bool = False

    _own: list[base.Listener] = pdt.PrivateAttr(default_factory=list)

    @property
    def _hub(self) -> Channel:
        return get_channel(self.channel)

    def _check_reachable(self, operation: str) -> None:
        if not self._hub.online:
            raise errors.ConnectivityError(operation, f"channel '{self.channel}' is offline")

    def _check_writable(self, operation: str) -> None:
        self._check_reachable(operation)
        if self.read_only:
            raise errors.AuthorizationError(operation, f"channel '{self.channel}' is read-only for this client")

    def _documents(self, collection: str) -> dict[str, base.Document]:
        return self._hub.collections.setdefault(collection, {})

    def _publish(self, collection: str) -> None:
        documents = self._documents(collection)
        for listener in list(self._hub.listeners):
            if listener.collection == collection:
                listener.deliver(listener.payload(documents))

    async def put(self, collection: str, doc_id: str, document: base.Document) -> None:
        self._check_writable(f"Writing '{collection}/{doc_id}'")
        self._documents(collection)[doc_id] = copy.deepcopy(document)
        logger.debug(f"memory[{self.channel}]: put {collection}/{doc_id}")
        self._publish(collection)

    async def put_many(self, collection: str, documents: dict[str, base.Document]) -> None:
        self._check_writable(f"Writing {len(documents)} document(s) to '{collection}'")
        target = self._documents(collection)
        for doc_id, document in documents.items():
            target[doc_id] = copy.deepcopy(document)
        logger.debug(f"memory[{self.channel}]: put {len(documents)} into {collection}")
        self._publish(collection)

    async def delete(self, collection: str, doc_id: str) -> None:
        self._check_writable(f"Deleting '{collection}/{doc_id}'")
        if self._documents(collection).pop(doc_id, None) is None:
            return
        logger.debug(f"memory[{self.channel}]: delete {collection}/{doc_id}")
        self._publish(collection)

    async def delete_many(self, collection: str, doc_ids: list[str]) -> None:
        self._check_writable(f"Deleting {len(doc_ids)} document(s) from '{collection}'")
        target = self._documents(collection)
        removed = [doc_id for doc_id in doc_ids if target.pop(doc_id, None) is not None]
        if removed:
            logger.debug(f"memory[{self.channel}]: delete {len(removed)} from {collection}")
            self._publish(collection)

    async def list_all(self, collection: str) -> list[base.Document]:
        self._check_reachable(f"Listing '{collection}'")
        return [copy.deepcopy(doc) for doc in self._documents(collection).values()]

    async def list_ids(self, collection: str) -> list[str]:
        self._check_reachable(f"Listing '{collection}'")
        return list(self._documents(collection))

    async def get_document(self, collection: str, doc_id: str) -> base.Document | None:
        self._check_reachable(f"Reading '{collection}/{doc_id}'")
        doc = self._documents(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    def subscribe(
        self, collection: str, on_change: base.OnCollection, on_error: base.OnError
    ) -> base.Subscription:
        return self._register(base.Listener(collection, None, on_change, on_error))

    def subscribe_document(
        self,
        collection: str,
        doc_id: str,
        on_change: base.OnDocument,
        on_error: base.OnError,
    ) -> base.Subscription:
        return self._register(base.Listener(collection, doc_id, on_change, on_error))

    def _register(self, listener: base.Listener) -> base.Subscription:
        hub = self._hub
        hub.listeners.append(listener)
        self._own.append(listener)
        if hub.online:
            listener.deliver(listener.payload(self._documents(listener.collection)))
        else:
            listener.fail(
                errors.ConnectivityError(
                    f"Listening to '{listener.collection}'",
                    f"channel '{self.channel}' is offline",
                )
            )

        def cancel() -> None:
            listener.cancel()
            if listener in hub.listeners:
                hub.listeners.remove(listener)
            if listener in self._own:
                self._own.remove(listener)

        return base.Subscription(cancel)

    def set_online(self, online: bool) -> None:
        """Simulate the channel going down or coming back.

        Going offline reports a connectivity error to every listener on the
        channel; coming back re-delivers the current snapshots.
        """
        hub = self._hub
        if hub.online == online:
            return
        hub.online = online
        logger.info(f"memory[{self.channel}]: {'online' if online else 'offline'}")
        for listener in list(hub.listeners):
            if online:
                listener.deliver(listener.payload(self._documents(listener.collection)))
            else:
                listener.fail(
                    errors.ConnectivityError(
                        f"Listening to '{listener.collection}'",
                        f"channel '{self.channel}' is offline",
                    )
                )

    async def close(self) -> None:
        hub = self._hub
        for listener in list(self._own):
            listener.cancel()
            if listener in hub.listeners:
                hub.listeners.remove(listener)
        self._own.clear()
