"""SQLite backend.

Stores every document as a JSON row in a single ``documents`` table keyed
by (collection, id). Several processes may share the file:

- writes made through this instance are delivered to its listeners right
  after commit;
- writes made by other connections are picked up by a watcher task that
  polls ``PRAGMA data_version`` every ``poll_interval`` seconds.

Blocking sqlite3 calls run in worker threads so the event loop is never
held up by disk I/O.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
from pathlib import Path
from typing import Any, Callable, Literal

import pydantic as pdt
from loguru import logger

import shiftlog.backends.base as base
import shiftlog.errors as errors


def _classify(operation: str, exc: sqlite3.Error) -> errors.BackendError:
    """Map a sqlite3 failure onto the backend error taxonomy."""
    details = str(exc)
    lowered = details.lower()
    if "readonly" in lowered or "permission" in lowered or "not authorized" in lowered:
        return errors.AuthorizationError(operation, details)
    return errors.ConnectivityError(operation, details)


class SqliteBackend(base.BaseBackend):
    """SQLite-backed document store with change polling.

    Example:
        backend = SqliteBackend(path=".shiftlog/shiftlog.db")
        await backend.put("records", "r1", {"id": "r1", ...})
    """

    kind: Literal["sqlite"] = "sqlite"
    path: str
    poll_interval: float = pdt.Field(default=1.0, gt=0)
    read_only: bool = False

    _listeners: list[base.Listener] = pdt.PrivateAttr(default_factory=list)
    _watcher: asyncio.Task | None = pdt.PrivateAttr(default=None)
    _watch_conn: sqlite3.Connection | None = pdt.PrivateAttr(default=None)
    _schema_ready: bool = pdt.PrivateAttr(default=False)
    _read_lock: asyncio.Lock | None = pdt.PrivateAttr(default=None)
    _stale: bool = pdt.PrivateAttr(default=False)
    _pending: set[asyncio.Task] = pdt.PrivateAttr(default_factory=set)

    def _connect(self, shared: bool = False) -> sqlite3.Connection:
        """Create a database connection, creating the schema on first use.

        ``shared`` connections may be used from more than one worker thread
        (one at a time).
        """
        if self.read_only:
            uri = f"{Path(self.path).resolve().as_uri()}?mode=ro"
            return sqlite3.connect(uri, uri=True, check_same_thread=not shared)

        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path, check_same_thread=not shared)
        if not self._schema_ready:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    id TEXT NOT NULL,
                    body TEXT NOT NULL,
                    PRIMARY KEY (collection, id)
                )
            """)
            conn.commit()
            self._schema_ready = True
        return conn

    async def _run(self, operation: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as exc:
            raise _classify(operation, exc) from exc

    # -- blocking helpers (run in worker threads) ---------------------------

    def _write_rows(self, collection: str, documents: dict[str, base.Document]) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.executemany(
                    "INSERT OR REPLACE INTO documents (collection, id, body) VALUES (?, ?, ?)",
                    [
                        (collection, doc_id, json.dumps(document, sort_keys=True))
                        for doc_id, document in documents.items()
                    ],
                )
        finally:
            conn.close()

    def _delete_rows(self, collection: str, doc_ids: list[str]) -> int:
        conn = self._connect()
        try:
            with conn:
                cursor = conn.executemany(
                    "DELETE FROM documents WHERE collection = ? AND id = ?",
                    [(collection, doc_id) for doc_id in doc_ids],
                )
                return cursor.rowcount
        finally:
            conn.close()

    def _read_collection(self, collection: str) -> dict[str, base.Document]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT id, body FROM documents WHERE collection = ? ORDER BY id",
                (collection,),
            ).fetchall()
            return {row[0]: json.loads(row[1]) for row in rows}
        finally:
            conn.close()

    def _read_one(self, collection: str, doc_id: str) -> base.Document | None:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT body FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            ).fetchone()
            return json.loads(row[0]) if row else None
        finally:
            conn.close()

    def _data_version(self) -> int:
        if self._watch_conn is None:
            self._watch_conn = self._connect(shared=True)
        return self._watch_conn.execute("PRAGMA data_version").fetchone()[0]

    def _reset_watch_conn(self) -> None:
        if self._watch_conn is not None:
            self._watch_conn.close()
            self._watch_conn = None

    # -- contract -----------------------------------------------------------

    async def put(self, collection: str, doc_id: str, document: base.Document) -> None:
        await self.put_many(collection, {doc_id: document})

    async def put_many(self, collection: str, documents: dict[str, base.Document]) -> None:
        if not documents:
            return
        operation = (
            f"Writing '{collection}/{next(iter(documents))}'"
            if len(documents) == 1
            else f"Writing {len(documents)} document(s) to '{collection}'"
        )
        await self._run(operation, self._write_rows, collection, documents)
        logger.debug(f"sqlite[{self.path}]: put {len(documents)} into {collection}")
        await self._refresh(collection)

    async def delete(self, collection: str, doc_id: str) -> None:
        await self.delete_many(collection, [doc_id])

    async def delete_many(self, collection: str, doc_ids: list[str]) -> None:
        if not doc_ids:
            return
        removed = await self._run(
            f"Deleting {len(doc_ids)} document(s) from '{collection}'",
            self._delete_rows,
            collection,
            doc_ids,
        )
        if removed:
            logger.debug(f"sqlite[{self.path}]: delete {removed} from {collection}")
            await self._refresh(collection)

    async def list_all(self, collection: str) -> list[base.Document]:
        documents = await self._run(f"Listing '{collection}'", self._read_collection, collection)
        return list(documents.values())

    async def list_ids(self, collection: str) -> list[str]:
        documents = await self._run(f"Listing '{collection}'", self._read_collection, collection)
        return list(documents)

    async def get_document(self, collection: str, doc_id: str) -> base.Document | None:
        return await self._run(
            f"Reading '{collection}/{doc_id}'", self._read_one, collection, doc_id
        )

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
        self._listeners.append(listener)
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._prime(listener))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        if self._watcher is None or self._watcher.done():
            self._watcher = loop.create_task(self._watch())

        def cancel() -> None:
            listener.cancel()
            if listener in self._listeners:
                self._listeners.remove(listener)

        return base.Subscription(cancel)

    def _lock(self) -> asyncio.Lock:
        # Snapshot reads are serialized so listeners never see an older
        # snapshot after a newer one.
        if self._read_lock is None:
            self._read_lock = asyncio.Lock()
        return self._read_lock

    async def _prime(self, listener: base.Listener) -> None:
        async with self._lock():
            try:
                documents = await self._run(
                    f"Listening to '{listener.collection}'",
                    self._read_collection,
                    listener.collection,
                )
            except errors.BackendError as exc:
                self._stale = True
                listener.fail(exc)
                return
            listener.deliver(listener.payload(documents))

    async def _refresh(self, collection: str | None = None) -> None:
        """Re-read collections with listeners and hand snapshots to them."""
        collections = {
            listener.collection
            for listener in self._listeners
            if collection is None or listener.collection == collection
        }
        async with self._lock():
            self._stale = False
            for name in sorted(collections):
                targets = [item for item in self._listeners if item.collection == name]
                try:
                    documents = await self._run(
                        f"Listening to '{name}'", self._read_collection, name
                    )
                except errors.BackendError as exc:
                    self._stale = True
                    for listener in targets:
                        listener.fail(exc)
                    continue
                for listener in targets:
                    listener.deliver(listener.payload(documents))

    async def _watch(self) -> None:
        last_version: int | None = None
        while True:
            await asyncio.sleep(self.poll_interval)
            if not self._listeners:
                continue
            try:
                version = await asyncio.to_thread(self._data_version)
            except sqlite3.Error as exc:
                await asyncio.to_thread(self._reset_watch_conn)
                error = _classify("Watching for changes", exc)
                for listener in list(self._listeners):
                    listener.fail(error)
                self._stale = True
                continue
            if version != last_version or self._stale:
                last_version = version
                await self._refresh()

    async def close(self) -> None:
        for listener in list(self._listeners):
            listener.cancel()
        self._listeners.clear()
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()
        if self._watcher is not None:
            self._watcher.cancel()
            try:
                await self._watcher
            except asyncio.CancelledError:
                pass
            self._watcher = None
        self._read_lock = None
        await asyncio.to_thread(self._reset_watch_conn)
