"""Global test configuration and fixtures."""

from __future__ import annotations

import asyncio
import datetime as dt
import uuid

import pytest

import shiftlog.backends.memory as memory
from shiftlog.models import Boss, Machine, Record, Shift


@pytest.fixture
def channel():
    """A memory channel name no other test shares."""
    name = f"test-{uuid.uuid4().hex[:12]}"
    yield name
    memory.drop_channel(name)


@pytest.fixture
def settle():
    """Let scheduled listener callbacks run."""

    async def _settle(rounds: int = 5) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle


@pytest.fixture
def eventually():
    """Poll until a condition holds (for backends that deliver from threads)."""

    async def _eventually(predicate, timeout: float = 3.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.01)

    return _eventually


@pytest.fixture
def make_record():
    """Build a Record with sensible defaults."""

    def _make(**overrides) -> Record:
        fields = {
            "date": dt.date(2024, 1, 1),
            "machine": Machine.WH1,
            "shift": Shift.MORNING,
            "boss": Boss.MARTIN,
            "meters": 5000,
        }
        fields.update(overrides)
        return Record(**fields)

    return _make
