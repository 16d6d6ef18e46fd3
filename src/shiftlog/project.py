"""Project handle: the explicit lifecycle for one shiftlog client.

Provides the shiftlog.connect() entry point. A ShiftlogProject owns one
backend connection, the Vocabulary Registry, the Record Store and the
connectivity monitor, and wires them together. Nothing starts listening at
import time; listening begins in start() and ends in close().

Usage:
    import shiftlog

    async with shiftlog.connect() as project:
        await project.save(record)
        page = project.list_view().project(project.records.records)
"""

from __future__ import annotations

import datetime as dt
from pathlib import Path

from loguru import logger

import shiftlog.connectivity as connectivity
import shiftlog.records as records_mod
import shiftlog.settings as settings
import shiftlog.views as views
import shiftlog.vocabulary as vocabulary
from shiftlog.models import Record, VocabularyKind


class ShiftlogProject:
    """Runtime handle for a shiftlog deployment.

    Not a Pydantic model -- this is a runtime handle, not configuration.
    Mutating helpers check the connectivity monitor first and refuse to
    write while the connection is known to be lost.
    """

    def __init__(self, shiftlog_settings: settings.ShiftlogSettings) -> None:
        self._settings = shiftlog_settings
        self.backend = shiftlog_settings.active_environment.backend
        self.connectivity = connectivity.ConnectivityMonitor()
        self.vocabulary = vocabulary.VocabularyRegistry(
            self.backend, shiftlog_settings.vocabulary.as_defaults()
        )
        self.records = records_mod.RecordStore(self.backend, self.vocabulary)
        self._error_subscription = None
        self._started = False

    @property
    def name(self) -> str:
        """Project name from shiftlog.yaml."""
        return self._settings.name

    @property
    def env(self) -> str:
        """Active environment name."""
        return self._settings.active_env

    @property
    def config(self) -> settings.ShiftlogSettings:
        return self._settings

    # -- lifecycle ------------------------------------------------------------

    async def start(self) -> None:
        """Start listening and wait (bounded) for the first snapshots."""
        if self._started:
            return
        self._started = True
        self.vocabulary.start()
        self.records.start()
        self._error_subscription = self.records.subscribe(
            lambda _records: None, self.connectivity.report_backend_error
        )
        timeout = self._settings.startup_timeout
        ready = await self.vocabulary.wait_ready(timeout) and await self.records.wait_ready(timeout)
        if not ready:
            logger.warning(f"Backend did not answer within {timeout}s; starting with an empty view")
        logger.debug(f"Project '{self.name}' started on env '{self.env}' ({self.backend.kind})")

    async def close(self) -> None:
        """Stop every listener and release the backend. Idempotent."""
        if not self._started:
            return
        self._started = False
        if self._error_subscription is not None:
            self._error_subscription.close()
            self._error_subscription = None
        self.records.close()
        self.vocabulary.close()
        await self.backend.close()
        logger.debug(f"Project '{self.name}' closed")

    async def __aenter__(self) -> ShiftlogProject:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # -- gated mutations ------------------------------------------------------

    async def save(self, record: Record) -> None:
        self.connectivity.require_writable(f"Saving record {record.id}")
        await self.records.save(record)

    async def delete(self, record_id: str) -> None:
        self.connectivity.require_writable(f"Deleting record {record_id}")
        await self.records.delete_one(record_id)

    async def clear(self) -> int:
        self.connectivity.require_writable("Clearing all records")
        return await self.records.clear_all()

    async def remove_entry(self, kind: VocabularyKind, value: str) -> bool:
        self.connectivity.require_writable(f"Removing '{value}' from {kind.value}")
        return await self.vocabulary.remove(kind, value)

    async def rename_entry(self, kind: VocabularyKind, old: str, new: str) -> int:
        self.connectivity.require_writable(f"Renaming '{old}' in {kind.value}")
        return await self.vocabulary.rename(kind, old, new)

    # -- views ----------------------------------------------------------------

    def list_view(self) -> views.RecordListView:
        return views.RecordListView(page_size=self._settings.page_size)

    def summary(self, today: dt.date | None = None) -> views.Summary:
        return views.summarize(
            self.records.records,
            today or dt.date.today(),
            target_meters=self._settings.analytics.target_meters,
        )

    def machine_performance(self, records: list[Record] | None = None) -> list[views.Bucket]:
        return views.by_machine(
            self.records.records if records is None else records,
            window=self._settings.analytics.machine_window,
        )

    def incidents(self, records: list[Record] | None = None) -> list[views.Bucket]:
        return views.incidents(
            self.records.records if records is None else records,
            self.vocabulary.comments,
            top_n=self._settings.analytics.incident_top_n,
        )


def connect(
    path: Path | str = Path("shiftlog.yaml"),
    env: str | None = None,
) -> ShiftlogProject:
    """Build a project handle from shiftlog.yaml.

    The handle is not started; use it as an async context manager or call
    start() and close() explicitly.

    Raises:
        ConfigurationError: If the configuration cannot be loaded.
    """
    return ShiftlogProject(settings.load_shiftlog_settings(path, env=env))
