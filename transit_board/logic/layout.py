"""Project StopData onto the configured two-column board layout."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import math

from transit_board.config import AgencySection, LayoutConfig, Section, TextSection
from transit_board.data.models import StopData

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineRow:
    """One line/destination with minutes until its next arrivals."""

    id: str
    destination: str
    departure_minutes: list[int]

    def departure_minutes_str(self) -> str:
        return ", ".join(str(minutes) for minutes in self.departure_minutes)


@dataclass(frozen=True)
class AgencyRow:
    agency: str
    direction: str
    lines: list[LineRow]


@dataclass(frozen=True)
class TextRow:
    text: str


Row = AgencyRow | TextRow


@dataclass(frozen=True)
class Layout:
    """Rows for each column plus when each shown agency was last refreshed."""

    left: list[Row]
    right: list[Row]
    all_agencies: dict[str, datetime] = field(default_factory=dict)

    def oldest_live_time(self) -> datetime | None:
        if not self.all_agencies:
            return None
        return min(self.all_agencies.values())


def minutes_until(time: datetime, now: datetime) -> int:
    return math.floor((time - now).total_seconds() / 60)


def data_to_layout(stop_data: StopData, layout: LayoutConfig, now: datetime | None = None) -> Layout:
    """Build rows for both columns; sections without data are skipped."""
    now = now or datetime.now(timezone.utc)
    all_agencies: dict[str, datetime] = {}
    left = _column(stop_data, layout.left, all_agencies, now)
    right = _column(stop_data, layout.right, all_agencies, now)
    return Layout(left=left, right=right, all_agencies=all_agencies)


def _column(
    stop_data: StopData,
    sections: tuple[Section, ...],
    all_agencies: dict[str, datetime],
    now: datetime,
) -> list[Row]:
    rows: list[Row] = []
    for section in sections:
        if isinstance(section, TextSection):
            rows.append(TextRow(section.text))
            continue
        row = _agency_row(stop_data, section, all_agencies, now)
        if row is not None:
            rows.append(row)
    return rows


def _agency_row(
    stop_data: StopData,
    section: AgencySection,
    all_agencies: dict[str, datetime],
    now: datetime,
) -> AgencyRow | None:
    arrivals = stop_data.get(section.agency)
    if arrivals is None:
        logger.warning("Agency %s not found in stop data", section.agency)
        return None

    all_agencies[section.agency] = arrivals.live_time

    if section.direction not in arrivals.directions:
        logger.warning("Agency %s did not contain direction %s", section.agency, section.direction)
        return None

    lines = [
        LineRow(
            id=key.line,
            destination=key.destination,
            departure_minutes=[minutes_until(time, now) for time in times],
        )
        for key, times in arrivals.directions[section.direction]
    ]
    return AgencyRow(agency=section.agency, direction=section.direction, lines=lines)


__all__ = [
    "AgencyRow",
    "Layout",
    "LineRow",
    "Row",
    "TextRow",
    "data_to_layout",
    "minutes_until",
]
