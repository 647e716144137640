"""Structured WHERE-clause builder for store queries.

Optional query bounds are collected as ``(predicate, params)`` pairs and
only rendered to SQL at the store boundary, so composition can be checked
without a database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from bluetracker.models import FilterOptions, to_utc


def format_timestamp(value: datetime) -> str:
    """Render a datetime in the stored, lexically sortable RFC 3339 form.

    Fixed microsecond precision and a ``+00:00`` offset keep string order
    equal to chronological order.
    """
    return to_utc(value).isoformat(timespec="microseconds")


@dataclass
class QueryFilter:
    """Ordered list of predicates combined with AND."""

    clauses: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)

    def where(self, predicate: str, *params: Any) -> QueryFilter:
        """Append a predicate with its ``?`` parameters and return self."""
        if predicate.count("?") != len(params):
            raise ValueError(
                f"predicate {predicate!r} expects {predicate.count('?')} params, got {len(params)}"
            )
        self.clauses.append((predicate, params))
        return self

    def where_if(self, value: Any, predicate: str) -> QueryFilter:
        """Append ``predicate`` bound to *value* unless *value* is ``None``."""
        if value is not None:
            self.where(predicate, value)
        return self

    def __bool__(self) -> bool:
        return bool(self.clauses)

    def __len__(self) -> int:
        return len(self.clauses)

    @property
    def params(self) -> tuple[Any, ...]:
        return tuple(p for _, clause_params in self.clauses for p in clause_params)

    def render(self) -> tuple[str, tuple[Any, ...]]:
        """Return ``("WHERE a AND b", params)``, or ``("", ())`` when empty."""
        if not self.clauses:
            return "", ()
        sql = "WHERE " + " AND ".join(predicate for predicate, _ in self.clauses)
        return sql, self.params


def time_window(
    filters: FilterOptions, column: str = "timestamp", base: QueryFilter | None = None
) -> QueryFilter:
    """Add inclusive start/end bounds on *column* from *filters*."""
    query = base if base is not None else QueryFilter()
    if filters.start_time is not None:
        query.where(f"{column} >= ?", format_timestamp(filters.start_time))
    if filters.end_time is not None:
        query.where(f"{column} <= ?", format_timestamp(filters.end_time))
    return query


def detection_filter(address: str, filters: FilterOptions) -> QueryFilter:
    """Predicates selecting one device's detections inside the filter window."""
    return time_window(filters, base=QueryFilter().where("device_address = ?", address))


def device_filter(filters: FilterOptions, manufacturer_id: int | None = None) -> QueryFilter:
    """Predicates for listing devices.

    A time window restricts the listing to devices with at least one
    detection inside it.
    """
    query = QueryFilter().where_if(manufacturer_id, "d.manufacturer_id = ?")
    window = time_window(filters, column="det.timestamp")
    if window:
        inner, params = window.render()
        query.where(
            "EXISTS (SELECT 1 FROM detections det "
            f"{inner} AND det.device_address = d.address)",
            *params,
        )
    return query
