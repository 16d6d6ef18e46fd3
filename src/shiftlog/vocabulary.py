"""Vocabulary registry for change comments and operator names.

Each vocabulary is displayed as ``sorted(defaults | custom)``. Defaults come
from configuration and are permanent; the custom list lives in one backend
document per vocabulary and only ever holds values that are not defaults.

Renaming an entry rewrites every Record that references it. Display-time
canonicalization (``normalize_key`` / ``canonical``) lets analytics group
"Montado", "montado" and "Montádo" together without touching stored data.
"""

from __future__ import annotations

import asyncio
import unicodedata
from typing import Callable, Iterable

from loguru import logger

import shiftlog.backends.base as base
import shiftlog.errors as errors
from shiftlog.models import VocabularyKind

SETTINGS = "settings"
RECORDS = "records"

DEFAULT_COMMENTS = [
    "Antivaho",
    "NT",
    "No tejido",
    "Montado",
    "Pedidos",
    "Cambio carro",
    "Bio",
    "PApel",
]
DEFAULT_OPERATORS: list[str] = []

OnVocabulary = Callable[[list[str], list[str]], None]


def normalize_key(value: str) -> str:
    """Diacritic-stripped, case-folded, trimmed form used for grouping."""
    decomposed = unicodedata.normalize("NFD", value.strip())
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return stripped.casefold()


def merge(defaults: Iterable[str], custom: Iterable[str]) -> list[str]:
    """Sorted, de-duplicated union of defaults and custom entries."""
    return sorted(set(defaults) | set(custom))


def canonical_map(entries: Iterable[str]) -> dict[str, str]:
    """Normalized key -> exact spelling. The first entry in sorted order wins a clash."""
    mapping: dict[str, str] = {}
    for entry in sorted(entries):
        mapping.setdefault(normalize_key(entry), entry)
    return mapping


def _values_of(document: base.Document | None) -> list[str]:
    if not document:
        return []
    values = document.get("values", [])
    return [v for v in values if isinstance(v, str)]


class VocabularyRegistry:
    """Owner of the Comments and Operators vocabularies.

    The in-memory caches are rebuilt only from backend notifications.
    Writes read the current custom list from the backend first, so two
    additions in quick succession do not overwrite each other.
    """

    def __init__(
        self,
        backend: base.BaseBackend,
        defaults: dict[VocabularyKind, list[str]] | None = None,
    ) -> None:
        self._backend = backend
        defaults = defaults or {}
        self._defaults = {
            VocabularyKind.COMMENTS: tuple(defaults.get(VocabularyKind.COMMENTS, DEFAULT_COMMENTS)),
            VocabularyKind.OPERATORS: tuple(defaults.get(VocabularyKind.OPERATORS, DEFAULT_OPERATORS)),
        }
        self._custom: dict[VocabularyKind, tuple[str, ...]] = {kind: () for kind in VocabularyKind}
        self._listeners: list[OnVocabulary] = []
        self._subscriptions: list[base.Subscription] = []
        self._seen: set[VocabularyKind] = set()
        self._ready = asyncio.Event()

    # -- lifecycle ------------------------------------------------------------

    def start(self) -> None:
        """Begin listening to both vocabulary documents. Idempotent."""
        if self._subscriptions:
            return
        for kind in VocabularyKind:
            self._subscriptions.append(
                self._backend.subscribe_document(
                    SETTINGS,
                    kind.value,
                    lambda doc, kind=kind: self._on_document(kind, doc),
                    lambda exc, kind=kind: self._on_error(kind, exc),
                )
            )

    async def wait_ready(self, timeout: float | None = None) -> bool:
        """Wait until both vocabularies have been delivered once."""
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def close(self) -> None:
        """Stop listening and drop subscribers. Safe to call more than once."""
        for subscription in self._subscriptions:
            subscription.close()
        self._subscriptions.clear()
        self._listeners.clear()

    def _on_document(self, kind: VocabularyKind, document: base.Document | None) -> None:
        custom = tuple(_values_of(document))
        self._seen.add(kind)
        if len(self._seen) == len(VocabularyKind):
            self._ready.set()
        if custom == self._custom[kind]:
            return
        self._custom[kind] = custom
        logger.debug(f"Vocabulary '{kind.value}' now has {len(custom)} custom entries")
        self._notify()

    def _on_error(self, kind: VocabularyKind, error: errors.BackendError) -> None:
        logger.warning(f"Vocabulary '{kind.value}' subscription error: {error.message}")
        self._seen.add(kind)
        if len(self._seen) == len(VocabularyKind):
            self._ready.set()

    # -- reads ----------------------------------------------------------------

    def values(self, kind: VocabularyKind) -> list[str]:
        """Merged, sorted vocabulary as displayed."""
        return merge(self._defaults[kind], self._custom[kind])

    def custom(self, kind: VocabularyKind) -> list[str]:
        return list(self._custom[kind])

    def defaults(self, kind: VocabularyKind) -> list[str]:
        return list(self._defaults[kind])

    @property
    def comments(self) -> list[str]:
        return self.values(VocabularyKind.COMMENTS)

    @property
    def operators(self) -> list[str]:
        return self.values(VocabularyKind.OPERATORS)

    def is_builtin(self, kind: VocabularyKind, value: str) -> bool:
        return value in self._defaults[kind]

    def canonical(self, kind: VocabularyKind, raw: str) -> str | None:
        """Exact vocabulary spelling matching ``raw`` after normalization, if any."""
        return canonical_map(self.values(kind)).get(normalize_key(raw))

    def subscribe(self, on_change: OnVocabulary) -> base.Subscription:
        """Register a listener; it fires now and on every change of either list."""
        self._listeners.append(on_change)
        on_change(self.comments, self.operators)

        def cancel() -> None:
            if on_change in self._listeners:
                self._listeners.remove(on_change)

        return base.Subscription(cancel)

    def _notify(self) -> None:
        comments, operators = self.comments, self.operators
        for listener in list(self._listeners):
            try:
                listener(list(comments), list(operators))
            except Exception:
                logger.exception("Vocabulary listener failed")

    # -- writes ---------------------------------------------------------------

    async def _load_custom(self, kind: VocabularyKind) -> list[str]:
        return _values_of(await self._backend.get_document(SETTINGS, kind.value))

    async def _store_custom(self, kind: VocabularyKind, values: list[str]) -> None:
        await self._backend.put(SETTINGS, kind.value, {"values": values})

    async def add_if_absent(self, kind: VocabularyKind, value: str) -> bool:
        """Append ``value`` to the custom list unless it is already a member.

        Exact, case-sensitive comparison. Empty values are ignored.
        Returns True when the backend was written.
        """
        if not value or self.is_builtin(kind, value):
            return False
        custom = await self._load_custom(kind)
        if value in custom:
            return False
        custom.append(value)
        await self._store_custom(kind, custom)
        logger.info(f"Added '{value}' to {kind.value}")
        return True

    async def remove(self, kind: VocabularyKind, value: str) -> bool:
        """Drop ``value`` from the custom list. Records are left untouched.

        Built-in defaults stay in the displayed list even when removed.
        Removing a value that is not stored is a no-op.
        """
        custom = await self._load_custom(kind)
        if value not in custom:
            if self.is_builtin(kind, value):
                logger.info(f"'{value}' is a built-in {kind.value} entry and cannot be removed")
            return False
        await self._store_custom(kind, [v for v in custom if v != value])
        logger.info(f"Removed '{value}' from {kind.value}")
        return True

    async def rename(self, kind: VocabularyKind, old: str, new: str) -> int:
        """Rename an entry and rewrite every Record whose field equals ``old``.

        Records are rewritten first; the vocabulary document is only changed
        once they are all written. If ``new`` already exists the two entries
        merge. Returns the number of rewritten Records.

        Raises:
            RenameError: If ``old`` or ``new`` is blank, or any backend write fails.
        """
        if not old.strip():
            raise errors.RenameError(kind.value, old, new, "The current value is empty")
        if old == new:
            return 0
        if not new.strip():
            raise errors.RenameError(kind.value, old, new, "The new value is empty")

        field = kind.record_field
        try:
            documents = await self._backend.list_all(RECORDS)
            rewritten = {
                doc["id"]: {**doc, field: new}
                for doc in documents
                if doc.get(field) == old and "id" in doc
            }
            if rewritten:
                await self._backend.put_many(RECORDS, rewritten)
        except errors.BackendError as exc:
            raise errors.RenameError(
                kind.value, old, new, f"Rewriting records failed: {exc.message}"
            ) from exc

        try:
            custom = [v for v in await self._load_custom(kind) if v != old]
            if new not in custom and not self.is_builtin(kind, new):
                custom.append(new)
            await self._store_custom(kind, custom)
        except errors.BackendError as exc:
            raise errors.RenameError(
                kind.value, old, new, f"Updating the vocabulary failed: {exc.message}"
            ) from exc

        logger.info(f"Renamed {kind.value} '{old}' -> '{new}' ({len(rewritten)} record(s))")
        return len(rewritten)
