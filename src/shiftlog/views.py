"""View projection: filtering, pagination and aggregates over Records.

Everything here is a pure function of its inputs except RecordListView,
which only remembers the active filter and page number.
"""

from __future__ import annotations

import datetime as dt
import math
from dataclasses import dataclass, field
from typing import Callable, Iterable, Sequence

import shiftlog.vocabulary as vocabulary
from shiftlog.models import FilterState, Record

DEFAULT_PAGE_SIZE = 20
DEFAULT_MACHINE_WINDOW = 50
DEFAULT_INCIDENT_TOP_N = 5
DEFAULT_TARGET_METERS = 5000


# =============================================================================
# Filtering
# =============================================================================


def matches(record: Record, filters: FilterState) -> bool:
    """True if ``record`` satisfies every set predicate in ``filters``."""
    if filters.start_date is not None and record.date < filters.start_date:
        return False
    if filters.end_date is not None and record.date > filters.end_date:
        return False
    if filters.machine is not None and record.machine != filters.machine:
        return False
    if filters.boss is not None and record.boss != filters.boss:
        return False
    if filters.operator and record.operator != filters.operator:
        return False
    return True


def apply_filters(records: Sequence[Record], filters: FilterState) -> list[Record]:
    """Records matching ``filters``, in their original order."""
    if filters.is_empty:
        return list(records)
    return [record for record in records if matches(record, filters)]


# =============================================================================
# Pagination
# =============================================================================


@dataclass(frozen=True)
class Page:
    """One page of a list view. ``number`` is 1-based."""

    items: tuple[Record, ...]
    number: int
    page_count: int
    total: int

    @property
    def has_previous(self) -> bool:
        return self.number > 1

    @property
    def has_next(self) -> bool:
        return self.number < self.page_count


def page_count(total: int, page_size: int) -> int:
    """Number of pages for ``total`` items; an empty list still has one page."""
    if page_size < 1:
        raise ValueError(f"page_size must be positive, got {page_size}")
    return max(1, math.ceil(total / page_size))


def paginate(records: Sequence[Record], page: int, page_size: int = DEFAULT_PAGE_SIZE) -> Page:
    """Slice ``records`` into ``page``. Out-of-range page numbers are clamped."""
    count = page_count(len(records), page_size)
    number = min(max(page, 1), count)
    start = (number - 1) * page_size
    return Page(
        items=tuple(records[start : start + page_size]),
        number=number,
        page_count=count,
        total=len(records),
    )


class RecordListView:
    """Filter and page state for a paginated list.

    Changing the filter set always returns the view to page 1.
    """

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        page_count(0, page_size)
        self.page_size = page_size
        self.filters = FilterState()
        self.page = 1

    def set_filters(self, filters: FilterState) -> None:
        if filters != self.filters:
            self.filters = filters
            self.page = 1

    def clear_filters(self) -> None:
        self.set_filters(FilterState())

    def go_to(self, page: int) -> None:
        self.page = max(page, 1)

    def project(self, records: Sequence[Record]) -> Page:
        result = paginate(apply_filters(records, self.filters), self.page, self.page_size)
        self.page = result.number
        return result


# =============================================================================
# Aggregates
# =============================================================================


@dataclass
class Bucket:
    """Totals for one group of Records."""

    label: str
    records: int = 0
    meters: int = 0
    changes: int = 0

    def add(self, record: Record) -> None:
        self.records += 1
        self.meters += record.meters
        self.changes += record.changes_count


def group_totals(
    records: Iterable[Record],
    key: Callable[[Record], str | None],
    top_n: int | None = None,
    order: str = "meters",
) -> list[Bucket]:
    """Group Records by ``key`` and sum them.

    Records whose key is None or empty are left out. Buckets are sorted by
    ``order`` ("meters", "records", "changes") descending, or by label
    ascending for ``order="label"``; ties keep first-seen order.
    """
    buckets: dict[str, Bucket] = {}
    for record in records:
        label = key(record)
        if not label:
            continue
        bucket = buckets.get(label)
        if bucket is None:
            bucket = buckets[label] = Bucket(label)
        bucket.add(record)

    result = list(buckets.values())
    if order == "label":
        result.sort(key=lambda b: b.label)
    else:
        result.sort(key=lambda b: getattr(b, order), reverse=True)
    return result[:top_n] if top_n is not None else result


def by_machine(records: Sequence[Record], window: int | None = DEFAULT_MACHINE_WINDOW) -> list[Bucket]:
    """Meters per machine over the most recent ``window`` Records."""
    recent = records[:window] if window is not None else records
    return group_totals(recent, lambda r: r.machine.value)


def by_operator(records: Iterable[Record], top_n: int | None = None) -> list[Bucket]:
    return group_totals(records, lambda r: r.operator.strip(), top_n=top_n)


def by_shift(records: Iterable[Record]) -> list[Bucket]:
    return group_totals(records, lambda r: r.shift.value)


def by_boss(records: Iterable[Record]) -> list[Bucket]:
    return group_totals(records, lambda r: r.boss.value)


def by_day(records: Iterable[Record]) -> list[Bucket]:
    """Daily totals, oldest day first."""
    return group_totals(records, lambda r: r.date.isoformat(), order="label")


def incidents(
    records: Iterable[Record],
    known_comments: Iterable[str] = (),
    top_n: int | None = DEFAULT_INCIDENT_TOP_N,
) -> list[Bucket]:
    """Most frequent change comments, grouped by their normalized form.

    A group is labeled with the vocabulary spelling when one matches,
    otherwise with the first spelling met. Comments shorter than two
    characters are ignored. Stored Records are not modified.
    """
    canonical = vocabulary.canonical_map(known_comments)
    labels: dict[str, str] = {}

    def label_of(record: Record) -> str | None:
        raw = record.changes_comment.strip()
        if len(raw) <= 1:
            return None
        norm = vocabulary.normalize_key(raw)
        if norm not in labels:
            labels[norm] = canonical.get(norm, raw)
        return labels[norm]

    return group_totals(records, label_of, top_n=top_n, order="records")


# =============================================================================
# Dashboard summary
# =============================================================================


@dataclass(frozen=True)
class Summary:
    """Headline numbers for one day compared with the day before."""

    day: dt.date
    meters: int = 0
    previous_meters: int = 0
    growth: float = 0.0
    avg_changes: float = 0.0
    efficiency: int = 0
    record_count: int = 0
    machines: list[Bucket] = field(default_factory=list)


def summarize(
    records: Sequence[Record],
    today: dt.date,
    target_meters: int = DEFAULT_TARGET_METERS,
) -> Summary:
    """Compute today's totals, growth versus yesterday and efficiency.

    Efficiency is today's meters as a percentage of ``target_meters`` per
    Record, capped at 100. Growth is 0 when yesterday produced nothing.
    """
    yesterday = today - dt.timedelta(days=1)
    todays = [r for r in records if r.date == today]
    meters = sum(r.meters for r in todays)
    previous = sum(r.meters for r in records if r.date == yesterday)

    growth = (meters - previous) / previous * 100 if previous else 0.0
    avg_changes = (
        round(sum(r.changes_count for r in todays) / len(todays), 1) if todays else 0.0
    )
    efficiency = (
        min(100, round(meters / (len(todays) * target_meters) * 100))
        if todays and target_meters > 0
        else 0
    )
    return Summary(
        day=today,
        meters=meters,
        previous_meters=previous,
        growth=growth,
        avg_changes=avg_changes,
        efficiency=efficiency,
        record_count=len(todays),
        machines=by_machine(todays, window=None),
    )
