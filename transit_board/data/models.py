"""Data structures shared by the feed client, cache, transformer and pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class StopQuery:
    """One configured agency and the stops watched for it."""

    agency: str
    stops: frozenset[str]
    # Ordered (prefix, replacement) rules; only the first match applies.
    line_prefix_subs: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class RawArrival:
    """Single upstream prediction; any optional field may be missing."""

    stop_id: str
    line_id: str | None = None
    direction_id: str | None = None
    destination_name: str | None = None
    expected_arrival_time: str | None = None


@dataclass(frozen=True)
class CompleteArrival:
    """A RawArrival with every field needed for scheduling present."""

    stop_id: str
    line_id: str
    direction_id: str
    destination_name: str
    expected_arrival_time: str


@dataclass(frozen=True)
class Snapshot:
    """Last successfully fetched records for one agency."""

    agency: str
    records: tuple[RawArrival, ...]
    captured_at: datetime


@dataclass(frozen=True, order=True)
class LineKey:
    """Rider-facing line/direction/destination after substitution."""

    line: str
    agency: str
    direction: str
    destination: str


@dataclass(frozen=True)
class AgencyArrivals:
    """Upcoming arrivals for one agency grouped by direction."""

    agency: str
    live_time: datetime
    directions: dict[str, list[tuple[LineKey, list[datetime]]]] = field(default_factory=dict)


StopData = dict[str, AgencyArrivals]


__all__ = [
    "AgencyArrivals",
    "CompleteArrival",
    "LineKey",
    "RawArrival",
    "Snapshot",
    "StopData",
    "StopQuery",
]
