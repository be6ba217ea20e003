"""Threaded refresher that periodically writes fresh feed snapshots to disk."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
import logging
import threading
import time
from collections.abc import Sequence

from transit_board.data.feed_client import FeedClient, FeedClientError
from transit_board.data.models import StopQuery
from transit_board.data.snapshot_cache import SnapshotCache

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL_SECONDS = 180


@dataclass(frozen=True)
class RefreshResult:
    """Outcome of refreshing one agency during one tick."""

    agency: str
    ok: bool
    record_count: int
    finished_at: float
    error: str | None = None


class SnapshotRefresher:
    """Background loop that fetches every agency and caches the results.

    Each tick fans out one fetch per query and waits for all of them before
    sleeping, so at most one fetch per agency is in flight. Failures are
    logged per agency and never stop the loop.
    """

    def __init__(
        self,
        client: FeedClient,
        cache: SnapshotCache,
        queries: Sequence[StopQuery],
        interval_seconds: float = DEFAULT_REFRESH_INTERVAL_SECONDS,
        stop_event: threading.Event | None = None,
    ) -> None:
        self._client = client
        self._cache = cache
        self._queries = list(queries)
        self._interval_seconds = interval_seconds
        self._stop_event = stop_event or threading.Event()
        self._thread: threading.Thread | None = None

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background refresh thread."""
        if self.is_running():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="snapshot-refresher", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Signal the refresh thread to stop after the current tick."""
        self._stop_event.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def refresh_once(self) -> list[RefreshResult]:
        """Run one tick: fetch and cache every agency concurrently."""
        if not self._queries:
            return []
        with ThreadPoolExecutor(
            max_workers=len(self._queries), thread_name_prefix="refresh"
        ) as executor:
            return list(executor.map(self._refresh_agency, self._queries))

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.refresh_once()
            except Exception:
                logger.exception("Refresh tick failed")
            self._stop_event.wait(timeout=self._interval_seconds)

    def _refresh_agency(self, query: StopQuery) -> RefreshResult:
        try:
            records = self._client.fetch(query.agency, query.stops)
        except FeedClientError as exc:
            logger.warning("Refreshing %s failed: %s", query.agency, exc)
            return RefreshResult(query.agency, False, 0, time.time(), str(exc))
        except Exception as exc:
            logger.exception("Unexpected error refreshing %s", query.agency)
            return RefreshResult(query.agency, False, 0, time.time(), repr(exc))

        if self._cache.write(query.agency, records) is None:
            return RefreshResult(query.agency, False, len(records), time.time(), "cache write failed")

        logger.info("Refreshed %s: %d records", query.agency, len(records))
        return RefreshResult(query.agency, True, len(records), time.time())


__all__ = [
    "DEFAULT_REFRESH_INTERVAL_SECONDS",
    "RefreshResult",
    "SnapshotRefresher",
]
