"""Turn one agency's cached records into grouped, sorted upcoming arrivals."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone

from transit_board.data.models import (
    AgencyArrivals,
    CompleteArrival,
    LineKey,
    RawArrival,
    Snapshot,
    StopQuery,
)

MAX_ARRIVALS_PER_LINE = 4


class TimeParseError(ValueError):
    """A present ExpectedArrivalTime could not be parsed."""


def complete_record(raw: RawArrival) -> CompleteArrival | None:
    """Return the record as a CompleteArrival, or None if any scheduling field is missing."""
    if (
        raw.expected_arrival_time is None
        or raw.line_id is None
        or raw.direction_id is None
        or raw.destination_name is None
    ):
        return None
    return CompleteArrival(
        stop_id=raw.stop_id,
        line_id=raw.line_id,
        direction_id=raw.direction_id,
        destination_name=raw.destination_name,
        expected_arrival_time=raw.expected_arrival_time,
    )


def parse_arrival_time(value: str) -> datetime:
    """Parse an ISO-8601 timestamp with an offset into an aware UTC datetime."""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise TimeParseError(f"Invalid ExpectedArrivalTime {value!r}") from exc
    if parsed.tzinfo is None:
        raise TimeParseError(f"ExpectedArrivalTime {value!r} has no UTC offset")
    return parsed.astimezone(timezone.utc)


def resolve_destination(destination: str, destination_subs: Mapping[str, str]) -> str:
    return destination_subs.get(destination, destination)


def resolve_line(line: str, line_prefix_subs: Sequence[tuple[str, str]]) -> str:
    """Replace the whole label using the first rule whose prefix matches."""
    for prefix, replacement in line_prefix_subs:
        if line.startswith(prefix):
            return replacement
    return line


def transform(
    query: StopQuery,
    snapshot: Snapshot,
    destination_subs: Mapping[str, str] | None = None,
    now: datetime | None = None,
) -> AgencyArrivals:
    """Group a snapshot's future arrivals by line, then by direction.

    Records missing a line, direction, destination or arrival time are
    skipped. A present but malformed arrival time raises TimeParseError for
    the whole agency. Each line keeps its four soonest arrivals.
    """
    destination_subs = destination_subs or {}
    now = now or datetime.now(timezone.utc)

    upcoming: dict[LineKey, list[datetime]] = defaultdict(list)
    for raw in snapshot.records:
        record = complete_record(raw)
        if record is None:
            continue

        time = parse_arrival_time(record.expected_arrival_time)
        if time < now:
            continue

        key = LineKey(
            line=resolve_line(record.line_id, query.line_prefix_subs),
            agency=query.agency,
            direction=record.direction_id,
            destination=resolve_destination(record.destination_name, destination_subs),
        )
        upcoming[key].append(time)

    directions: dict[str, list[tuple[LineKey, list[datetime]]]] = {}
    for key in sorted(upcoming):
        times = sorted(upcoming[key])[:MAX_ARRIVALS_PER_LINE]
        directions.setdefault(key.direction, []).append((key, times))

    return AgencyArrivals(
        agency=query.agency,
        live_time=snapshot.captured_at,
        directions=directions,
    )


__all__ = [
    "MAX_ARRIVALS_PER_LINE",
    "TimeParseError",
    "complete_record",
    "parse_arrival_time",
    "resolve_destination",
    "resolve_line",
    "transform",
]
