"""Record store: the in-memory mirror of the records collection.

The store subscribes once to the backend and fans every snapshot out to
its own subscribers, newest first. It never edits its cache directly;
a write only becomes visible when the backend reports it back.
"""

from __future__ import annotations

import asyncio
from typing import Callable

import pydantic as pdt
from loguru import logger

import shiftlog.backends.base as base
import shiftlog.errors as errors
import shiftlog.vocabulary as vocabulary
from shiftlog.models import Record, VocabularyKind, sort_key

RECORDS = vocabulary.RECORDS

OnRecords = Callable[[list[Record]], None]
OnErrorMessage = Callable[[str], None]


def _noop_error(message: str) -> None:
    pass


class RecordStore:
    """Ordered, de-duplicated view of every Record in the backend.

    Subscribers receive the full list on registration and after every
    backend change. ``on_error`` receives a non-empty message when the
    backend subscription fails and an empty one when it recovers.
    """

    def __init__(
        self,
        backend: base.BaseBackend,
        vocabulary_registry: vocabulary.VocabularyRegistry,
    ) -> None:
        self._backend = backend
        self._vocabulary = vocabulary_registry
        self._records: tuple[Record, ...] = ()
        self._error: errors.BackendError | None = None
        self._subscribers: list[tuple[OnRecords, OnErrorMessage]] = []
        self._subscription: base.Subscription | None = None
        self._ready = asyncio.Event()

    # -- lifecycle ------------------------------------------------------------

    def start(self) -> None:
        """Begin listening to the records collection. Idempotent."""
        if self._subscription is not None:
            return
        self._subscription = self._backend.subscribe(
            RECORDS, self._on_snapshot, self._on_error
        )

    async def wait_ready(self, timeout: float | None = None) -> bool:
        """Wait for the first snapshot or error from the backend."""
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def close(self) -> None:
        """Release the backend listener and drop all subscribers."""
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        self._subscribers.clear()

    # -- backend callbacks ----------------------------------------------------

    def _on_snapshot(self, documents: list[base.Document]) -> None:
        by_id: dict[str, Record] = {}
        for document in documents:
            try:
                record = Record.from_document(document)
            except pdt.ValidationError as exc:
                logger.warning(
                    f"Skipping malformed record {document.get('id', '?')}: {exc.error_count()} error(s)"
                )
                continue
            by_id[record.id] = record
        records = tuple(sorted(by_id.values(), key=sort_key))
        self._ready.set()

        recovered = self._error is not None
        if recovered:
            logger.info("Record subscription recovered")
            self._error = None
            self._emit_error("")
        if records == self._records and not recovered:
            return
        self._records = records
        logger.debug(f"Delivering {len(self._records)} record(s)")
        self._emit_records()

    def _on_error(self, error: errors.BackendError) -> None:
        self._error = error
        self._ready.set()
        self._emit_error(error.message)

    def _emit_records(self) -> None:
        records = list(self._records)
        for on_records, _ in list(self._subscribers):
            try:
                on_records(list(records))
            except Exception:
                logger.exception("Record subscriber failed")

    def _emit_error(self, message: str) -> None:
        for _, on_error in list(self._subscribers):
            try:
                on_error(message)
            except Exception:
                logger.exception("Record error subscriber failed")

    # -- reads ----------------------------------------------------------------

    @property
    def records(self) -> list[Record]:
        """Last delivered snapshot, newest first."""
        return list(self._records)

    @property
    def error(self) -> errors.BackendError | None:
        """Current subscription error, or None while healthy."""
        return self._error

    def get(self, record_id: str) -> Record | None:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def subscribe(
        self, on_records: OnRecords, on_error: OnErrorMessage | None = None
    ) -> base.Subscription:
        """Register a subscriber. It receives the current list immediately."""
        entry = (on_records, on_error or _noop_error)
        self._subscribers.append(entry)
        on_records(list(self._records))
        if self._error is not None:
            entry[1](self._error.message)

        def cancel() -> None:
            self._subscribers[:] = [s for s in self._subscribers if s is not entry]

        return base.Subscription(cancel)

    # -- writes ---------------------------------------------------------------

    async def save(self, record: Record) -> None:
        """Create or fully replace a Record by identifier.

        New comment and operator values are appended to their vocabularies.
        Backend failures propagate to the caller unchanged.
        """
        await self._backend.put(RECORDS, record.id, record.to_document())
        logger.debug(f"Saved record {record.id}")
        await self._vocabulary.add_if_absent(VocabularyKind.COMMENTS, record.changes_comment)
        await self._vocabulary.add_if_absent(VocabularyKind.OPERATORS, record.operator)

    async def delete_one(self, record_id: str) -> None:
        """Remove one Record. Unknown identifiers are a no-op."""
        await self._backend.delete(RECORDS, record_id)
        logger.debug(f"Deleted record {record_id}")

    async def clear_all(self) -> int:
        """Remove every Record. Returns how many were removed.

        Deletes by storage key, so documents the store skips as malformed
        are removed too. Vocabularies are kept so suggestions survive a reset.
        """
        doc_ids = await self._backend.list_ids(RECORDS)
        await self._backend.delete_many(RECORDS, doc_ids)
        logger.info(f"Cleared {len(doc_ids)} record(s)")
        return len(doc_ids)
