from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from unittest.mock import MagicMock

from transit_board.data.feed_client import NetworkError, UpstreamStatusError
from transit_board.data.models import RawArrival, StopQuery
from transit_board.data.refresher import SnapshotRefresher
from transit_board.data.snapshot_cache import SnapshotCache

QUERIES = [
    StopQuery(agency="A", stops=frozenset({"1"})),
    StopQuery(agency="B", stops=frozenset({"2"})),
]
OLD = datetime(2020, 1, 1, tzinfo=timezone.utc)


def _records(stop_id: str) -> list[RawArrival]:
    return [RawArrival(stop_id, "14", "IB", "Downtown", "2030-01-01T12:00:00Z")]


def _fetch_a_ok_b_fails(agency: str, stops) -> list[RawArrival]:
    if agency == "B":
        raise UpstreamStatusError("Status 503", 503)
    return _records("1")


def test_refresh_once_without_queries(tmp_path) -> None:
    client = MagicMock()
    refresher = SnapshotRefresher(client, SnapshotCache(tmp_path), [], interval_seconds=1)

    assert refresher.refresh_once() == []
    client.fetch.assert_not_called()


def test_refresh_once_writes_every_agency(tmp_path) -> None:
    client = MagicMock()
    client.fetch.side_effect = lambda agency, stops: _records(next(iter(stops)))
    cache = SnapshotCache(tmp_path)
    refresher = SnapshotRefresher(client, cache, QUERIES, interval_seconds=1)

    results = refresher.refresh_once()

    assert [r.ok for r in results] == [True, True]
    assert cache.read("A").records[0].stop_id == "1"
    assert cache.read("B").records[0].stop_id == "2"
    assert client.fetch.call_count == 2


def test_partial_failure_leaves_failed_agency_untouched(tmp_path) -> None:
    cache = SnapshotCache(tmp_path)
    cache.write("A", [], captured_at=OLD)
    cache.write("B", _records("2"), captured_at=OLD)
    client = MagicMock()
    client.fetch.side_effect = _fetch_a_ok_b_fails
    refresher = SnapshotRefresher(client, cache, QUERIES, interval_seconds=1)

    results = refresher.refresh_once()

    by_agency = {r.agency: r for r in results}
    assert by_agency["A"].ok
    assert by_agency["A"].record_count == 1
    assert not by_agency["B"].ok
    assert "503" in by_agency["B"].error
    assert cache.read("A").captured_at > OLD
    assert cache.read("B").captured_at == OLD
    assert cache.read("B").records == tuple(_records("2"))


def test_unexpected_exception_is_contained(tmp_path) -> None:
    client = MagicMock()
    client.fetch.side_effect = KeyError("surprise")
    refresher = SnapshotRefresher(client, SnapshotCache(tmp_path), QUERIES, interval_seconds=1)

    results = refresher.refresh_once()

    assert [r.ok for r in results] == [False, False]


def test_cache_write_failure_is_reported(tmp_path) -> None:
    client = MagicMock()
    client.fetch.return_value = _records("1")
    cache = MagicMock()
    cache.write.return_value = None
    refresher = SnapshotRefresher(client, cache, QUERIES[:1], interval_seconds=1)

    [result] = refresher.refresh_once()

    assert not result.ok
    assert result.error == "cache write failed"


def test_fetches_run_concurrently(tmp_path) -> None:
    barrier = threading.Barrier(2, timeout=2)

    def fetch(agency: str, stops) -> list[RawArrival]:
        # Both agencies must be in flight at once for the barrier to release.
        barrier.wait()
        return []

    client = MagicMock()
    client.fetch.side_effect = fetch
    refresher = SnapshotRefresher(client, SnapshotCache(tmp_path), QUERIES, interval_seconds=1)

    results = refresher.refresh_once()

    assert all(r.ok for r in results)


def test_start_and_stop(tmp_path) -> None:
    client = MagicMock()
    client.fetch.side_effect = NetworkError("offline")
    stop_event = threading.Event()
    refresher = SnapshotRefresher(
        client, SnapshotCache(tmp_path), QUERIES, interval_seconds=0.1, stop_event=stop_event
    )

    refresher.start()

    deadline = time.time() + 2
    while time.time() < deadline and client.fetch.call_count < 4:
        time.sleep(0.05)

    assert client.fetch.call_count >= 4
    assert refresher.is_running()

    stop_event.set()
    refresher.join(timeout=2)

    assert not refresher.is_running()
    assert list(tmp_path.iterdir()) == []
