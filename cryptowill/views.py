"""
Derived views over a controller snapshot.

Pure functions: same snapshot in, same result out. Nothing here talks to the
store or mutates records.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Sequence

from cryptowill.domain.models import Record


@dataclass(frozen=True)
class WillStats:
    total: int
    active: int
    executed: int
    total_amount: int
    average_amount: float


@dataclass(frozen=True)
class Page:
    items: List[Record]
    page: int
    total_pages: int
    total_items: int


def _display_amount(record: Record) -> int:
    if record.revealed_amount is not None:
        return record.revealed_amount
    return record.public_aux_value


def compute_stats(records: Iterable[Record]) -> WillStats:
    items = list(records)
    total = len(items)
    executed = sum(1 for record in items if record.is_finalized)
    total_amount = sum(_display_amount(record) for record in items)
    return WillStats(
        total=total,
        active=total - executed,
        executed=executed,
        total_amount=total_amount,
        average_amount=total_amount / total if total else 0.0,
    )


def filter_records(records: Iterable[Record], term: str = "") -> List[Record]:
    """Case-insensitive substring match over title and beneficiary."""
    needle = term.strip().lower()
    items = list(records)
    if not needle:
        return items
    return [
        record
        for record in items
        if needle in record.title.lower() or needle in record.beneficiary.lower()
    ]


def ordered(records: Iterable[Record]) -> List[Record]:
    """Newest first; ties broken by id for a stable order."""
    by_id = sorted(records, key=lambda record: record.id)
    return sorted(by_id, key=lambda record: record.created_at, reverse=True)


def paginate(records: Sequence[Record], page: int = 1, page_size: int = 5) -> Page:
    if page_size < 1:
        raise ValueError("page_size must be >= 1")
    total_items = len(records)
    total_pages = max(1, math.ceil(total_items / page_size))
    page = min(max(page, 1), total_pages)
    start = (page - 1) * page_size
    return Page(
        items=list(records[start : start + page_size]),
        page=page,
        total_pages=total_pages,
        total_items=total_items,
    )


__all__ = ["Page", "WillStats", "compute_stats", "filter_records", "ordered", "paginate"]
