"""Base classes for shiftlog persistence backends.

A backend is a durable document store with change notifications. It holds
named collections of JSON documents keyed by id. Records live in one
collection; the two vocabulary lists are singleton documents in another.

The core (Record Store, Vocabulary Registry) is written against
BaseBackend only. Each environment in shiftlog.yaml picks a concrete
implementation through the ``kind`` discriminator.
"""

from __future__ import annotations

import abc
import asyncio
import copy
from typing import Any, Callable

import pydantic as pdt
from loguru import logger

import shiftlog.errors as errors

Document = dict[str, Any]
OnCollection = Callable[[list[Document]], None]
OnDocument = Callable[[Document | None], None]
OnError = Callable[[errors.BackendError], None]

_UNSET: Any = object()


class Subscription:
    """Handle returned by every subscribe call.

    Closing is idempotent and safe during teardown. The handle is also
    callable, so it can be used directly as an unsubscribe function.
    """

    def __init__(self, cancel: Callable[[], None]) -> None:
        self._cancel = cancel
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._cancel()

    def __call__(self) -> None:
        self.close()


class Listener:
    """One registered change callback on a collection or a single document.

    Deliveries are scheduled on the event loop the listener was created on,
    in the order they are handed in. Identical consecutive snapshots are
    dropped, except the first snapshot after an error, which always goes
    out so subscribers can tell that service is back.
    """

    def __init__(
        self,
        collection: str,
        doc_id: str | None,
        on_change: Callable[[Any], None],
        on_error: OnError,
    ) -> None:
        self.collection = collection
        self.doc_id = doc_id
        self._on_change = on_change
        self._on_error = on_error
        self._loop = asyncio.get_running_loop()
        self._last: Any = _UNSET
        self.active = True

    def payload(self, documents: dict[str, Document]) -> Any:
        """Select what this listener receives from a collection's documents."""
        if self.doc_id is None:
            return [copy.deepcopy(doc) for doc in documents.values()]
        doc = documents.get(self.doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    def deliver(self, payload: Any) -> None:
        if not self.active or payload == self._last:
            return
        self._last = payload
        self._loop.call_soon(self._dispatch_change, payload)

    def fail(self, error: errors.BackendError) -> None:
        if not self.active:
            return
        self._last = _UNSET
        self._loop.call_soon(self._dispatch_error, error)

    def cancel(self) -> None:
        self.active = False

    def _dispatch_change(self, payload: Any) -> None:
        if self.active:
            self._on_change(payload)

    def _dispatch_error(self, error: errors.BackendError) -> None:
        if self.active:
            logger.warning(
                f"Listener on '{self.collection}' reported {error.code}: {error.cause}"
            )
            self._on_error(error)


class BaseBackend(abc.ABC, pdt.BaseModel, strict=True, frozen=True, extra="forbid"):
    """Abstract persistence backend.

    Implementations are frozen Pydantic models (config-as-code); runtime
    state such as listeners and connections lives in private attributes.

    Every I/O method is a coroutine and raises ConnectivityError or
    AuthorizationError on failure. Subscriptions never end on error: the
    listener's ``on_error`` is called and delivery resumes on recovery.
    """

    kind: str

    @abc.abstractmethod
    async def put(self, collection: str, doc_id: str, document: Document) -> None:
        """Create or fully replace one document."""
        ...

    @abc.abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Remove one document. Removing a missing document is a no-op."""
        ...

    @abc.abstractmethod
    async def list_all(self, collection: str) -> list[Document]:
        """Return every document in a collection (order unspecified)."""
        ...

    @abc.abstractmethod
    async def list_ids(self, collection: str) -> list[str]:
        """Return the keys every document in a collection is stored under."""
        ...

    @abc.abstractmethod
    async def get_document(self, collection: str, doc_id: str) -> Document | None:
        """Return one document, or None if it does not exist."""
        ...

    @abc.abstractmethod
    def subscribe(
        self, collection: str, on_change: OnCollection, on_error: OnError
    ) -> Subscription:
        """Listen to a collection.

        ``on_change`` receives the full document list shortly after
        registration and after every committed change.
        """
        ...

    @abc.abstractmethod
    def subscribe_document(
        self, collection: str, doc_id: str, on_change: OnDocument, on_error: OnError
    ) -> Subscription:
        """Listen to one document. ``on_change`` receives None while it is absent."""
        ...

    @abc.abstractmethod
    async def close(self) -> None:
        """Cancel all listeners and release resources. Idempotent."""
        ...

    async def put_many(self, collection: str, documents: dict[str, Document]) -> None:
        """Write several documents. Backends with transactions make this atomic."""
        for doc_id, document in documents.items():
            await self.put(collection, doc_id, document)

    async def delete_many(self, collection: str, doc_ids: list[str]) -> None:
        """Remove several documents. Missing ids are ignored."""
        for doc_id in doc_ids:
            await self.delete(collection, doc_id)
