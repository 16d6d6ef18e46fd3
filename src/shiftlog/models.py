"""Domain types for production records.

A Record is one shift measurement for one machine. Records are stored as
camelCase documents (the wire format shared with the browser clients) and
exposed to Python code as frozen pydantic models with snake_case fields.
"""

from __future__ import annotations

import datetime as dt
import enum
import time
import uuid
from typing import Any

import pydantic as pdt
from pydantic.alias_generators import to_camel


class Machine(str, enum.Enum):
    """Production lines on the factory floor."""

    WH1 = "WH1"
    GIAVE = "Giave"
    WH3 = "WH3"
    NEXUS = "NEXUS"
    SL2 = "SL2"
    M21 = "21"
    M22 = "22"


class Shift(str, enum.Enum):
    MORNING = "Mañana"
    AFTERNOON = "Tarde"
    NIGHT = "Noche"


class Boss(str, enum.Enum):
    MARTIN = "J.Martín"
    NAVARRO = "J.Navarro"


class VocabularyKind(str, enum.Enum):
    """Controlled vocabularies, one singleton document each."""

    COMMENTS = "comments"
    OPERATORS = "operators"

    @property
    def record_field(self) -> str:
        """Document key on a Record that references this vocabulary."""
        return _RECORD_FIELDS[self]


_RECORD_FIELDS = {
    VocabularyKind.COMMENTS: "changesComment",
    VocabularyKind.OPERATORS: "operator",
}


class MonotonicClock:
    """Millisecond timestamps that never repeat or go back within a process."""

    def __init__(self) -> None:
        self._last = 0

    def now(self) -> int:
        current = time.time_ns() // 1_000_000
        self._last = max(current, self._last + 1)
        return self._last


clock = MonotonicClock()


def _new_id() -> str:
    return str(uuid.uuid4())


class Record(pdt.BaseModel):
    """One production event.

    Example:
        record = Record(
            date=dt.date(2024, 1, 1),
            machine=Machine.WH1,
            shift=Shift.MORNING,
            boss=Boss.MARTIN,
            meters=5000,
            changes_comment="Montado",
        )
    """

    model_config = pdt.ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="forbid",
    )

    id: str = pdt.Field(default_factory=_new_id, min_length=1)
    timestamp: int = pdt.Field(default_factory=clock.now, ge=0)
    date: dt.date
    machine: Machine
    shift: Shift
    boss: Boss
    operator: str = ""
    meters: int = pdt.Field(ge=0)
    changes_count: int = pdt.Field(default=0, ge=0)
    changes_comment: str = ""

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> Record:
        """Build a Record from a stored document."""
        return cls.model_validate(document)

    def to_document(self) -> dict[str, Any]:
        """Serialize to the stored document shape (camelCase, JSON types)."""
        return self.model_dump(mode="json", by_alias=True)

    def revise(self, **changes: Any) -> Record:
        """Return an edited copy that keeps the identifier and creation time.

        Field names are snake_case. The result is validated again.
        """
        changes.pop("id", None)
        changes.pop("timestamp", None)
        data = self.model_dump()
        data.update(changes)
        return type(self).model_validate(data)


def sort_key(record: Record) -> tuple[int, str]:
    """Newest first; equal timestamps fall back to identifier order."""
    return (-record.timestamp, record.id)


class FilterState(pdt.BaseModel, frozen=True, extra="forbid"):
    """Filter predicates for list and dashboard views.

    Empty strings and None mean "no constraint". Date bounds are inclusive.
    """

    start_date: dt.date | None = None
    end_date: dt.date | None = None
    machine: Machine | None = None
    boss: Boss | None = None
    operator: str = ""

    @pdt.field_validator("start_date", "end_date", "machine", "boss", mode="before")
    @classmethod
    def blank_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def is_empty(self) -> bool:
        return (
            self.start_date is None
            and self.end_date is None
            and self.machine is None
            and self.boss is None
            and not self.operator
        )
