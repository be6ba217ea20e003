"""On-disk per-agency snapshot store."""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from collections.abc import Iterable
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from transit_board.data.models import RawArrival, Snapshot

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class CacheError(Exception):
    """Raised when a snapshot cannot be read back."""


class CacheNotFoundError(CacheError):
    """No snapshot has been written for the agency yet."""


class CorruptCacheError(CacheError):
    """The stored snapshot exists but cannot be deserialized."""


class CacheIOError(CacheError):
    """Filesystem failure while reading or writing a snapshot."""


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SnapshotCache:
    """One JSON file per agency, replaced wholesale on every write.

    Writes go to a temporary file in the cache directory and are moved into
    place with ``os.replace``, so a concurrent reader sees either the previous
    snapshot or the new one.
    """

    def __init__(self, cache_dir: str | Path = ".") -> None:
        self._cache_dir = Path(cache_dir)

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    def path_for(self, agency: str) -> Path:
        return self._cache_dir / f".cache-{_UNSAFE_CHARS.sub('_', agency)}.json"

    def write(
        self,
        agency: str,
        records: Iterable[RawArrival],
        captured_at: datetime | None = None,
    ) -> Snapshot | None:
        """Persist records for an agency; returns the snapshot, or None if it failed."""
        snapshot = Snapshot(
            agency=agency,
            records=tuple(records),
            captured_at=captured_at or _utc_now(),
        )
        try:
            self.store(snapshot)
        except CacheIOError as exc:
            logger.warning("Failed to cache snapshot for %s: %s", agency, exc)
            return None
        return snapshot

    def store(self, snapshot: Snapshot) -> None:
        """Atomically replace the agency's snapshot file."""
        path = self.path_for(snapshot.agency)
        data = json.dumps(_snapshot_to_dict(snapshot), ensure_ascii=False)
        logger.debug("Storing %d records to %s", len(snapshot.records), path)

        tmp_name: str | None = None
        try:
            self._cache_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._cache_dir,
                prefix=path.name + ".",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as exc:
            raise CacheIOError(f"Could not write {path}: {exc}") from exc
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

    def read(self, agency: str) -> Snapshot:
        """Load the stored snapshot, however old it is."""
        path = self.path_for(agency)
        logger.debug("Trying to load cached file %s", path)
        try:
            with path.open("r", encoding="utf-8") as handle:
                text = handle.read()
        except FileNotFoundError as exc:
            raise CacheNotFoundError(f"No cached snapshot for {agency} at {path}") from exc
        except OSError as exc:
            raise CacheIOError(f"Could not read {path}: {exc}") from exc

        try:
            snapshot = _snapshot_from_dict(agency, json.loads(text))
        except (ValueError, TypeError, KeyError) as exc:
            raise CorruptCacheError(f"Cached snapshot at {path} is unreadable: {exc}") from exc

        logger.debug("Loaded cached data for %s captured at %s", agency, snapshot.captured_at.isoformat())
        return snapshot


def _snapshot_to_dict(snapshot: Snapshot) -> dict[str, Any]:
    return {
        "agency": snapshot.agency,
        "captured_at": snapshot.captured_at.isoformat(),
        "records": [asdict(record) for record in snapshot.records],
    }


_OPTIONAL_FIELDS = ("line_id", "direction_id", "destination_name", "expected_arrival_time")


def _record_from_dict(record: Any) -> RawArrival:
    if not isinstance(record, dict):
        raise ValueError("each record must be a JSON object")
    if not isinstance(record.get("stop_id"), str):
        raise ValueError("record 'stop_id' must be a string")
    for name in _OPTIONAL_FIELDS:
        if not isinstance(record.get(name), (str, type(None))):
            raise ValueError(f"record {name!r} must be a string or null")
    return RawArrival(**record)


def _snapshot_from_dict(agency: str, data: Any) -> Snapshot:
    if not isinstance(data, dict):
        raise ValueError("snapshot must be a JSON object")
    records = data["records"]
    if not isinstance(records, list):
        raise ValueError("'records' must be a list")

    captured_at = datetime.fromisoformat(data["captured_at"])
    if captured_at.tzinfo is None:
        captured_at = captured_at.replace(tzinfo=timezone.utc)

    return Snapshot(
        agency=agency,
        records=tuple(_record_from_dict(record) for record in records),
        captured_at=captured_at,
    )


__all__ = [
    "CacheError",
    "CacheIOError",
    "CacheNotFoundError",
    "CorruptCacheError",
    "SnapshotCache",
]
