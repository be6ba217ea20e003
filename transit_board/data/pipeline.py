"""Read-side orchestrator that assembles StopData from cached snapshots."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import logging
import threading
from collections.abc import Mapping, Sequence

from transit_board.data.feed_client import FeedClient
from transit_board.data.models import AgencyArrivals, StopData, StopQuery
from transit_board.data.refresher import DEFAULT_REFRESH_INTERVAL_SECONDS, SnapshotRefresher
from transit_board.data.snapshot_cache import CacheError, CacheNotFoundError, SnapshotCache
from transit_board.logic.transformer import TimeParseError, transform

logger = logging.getLogger(__name__)


class StopDataError(Exception):
    """Loading stop data failed for one agency."""

    def __init__(self, agency: str, message: str) -> None:
        super().__init__(f"loading data for agency {agency}: {message}")
        self.agency = agency


class StopDataPipeline:
    """Owns the background refresher and serves StopData from the cache.

    ``load`` never touches the network: it reads every agency's snapshot
    concurrently and transforms it. Agencies that were never cached are left
    out; any other failure aborts the load with StopDataError.
    """

    def __init__(
        self,
        queries: Sequence[StopQuery],
        cache: SnapshotCache,
        destination_subs: Mapping[str, str] | None = None,
        client: FeedClient | None = None,
        refresh_interval_seconds: float = DEFAULT_REFRESH_INTERVAL_SECONDS,
        stop_event: threading.Event | None = None,
    ) -> None:
        self._queries = list(queries)
        self._cache = cache
        self._destination_subs = dict(destination_subs or {})
        self.refresher: SnapshotRefresher | None = None
        if client is not None:
            self.refresher = SnapshotRefresher(
                client=client,
                cache=cache,
                queries=self._queries,
                interval_seconds=refresh_interval_seconds,
                stop_event=stop_event,
            )

    def start(self) -> None:
        """Start background refreshing, if a feed client was supplied."""
        if self.refresher is not None:
            self.refresher.start()

    def close(self, timeout: float | None = None) -> None:
        if self.refresher is not None:
            self.refresher.stop()
            self.refresher.join(timeout)

    def __enter__(self) -> StopDataPipeline:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def load(self, queries: Sequence[StopQuery] | None = None) -> StopData:
        """Build a fresh StopData keyed by agency."""
        queries = self._queries if queries is None else list(queries)
        if not queries:
            return {}

        with ThreadPoolExecutor(max_workers=len(queries), thread_name_prefix="load") as executor:
            futures = [executor.submit(self._load_agency, query) for query in queries]
            # Results are collected in submission order so the first failing query wins.
            results = [future.result() for future in futures]

        stop_data: StopData = {}
        for arrivals in results:
            if arrivals is not None:
                stop_data[arrivals.agency] = arrivals
        return stop_data

    def _load_agency(self, query: StopQuery) -> AgencyArrivals | None:
        try:
            snapshot = self._cache.read(query.agency)
        except CacheNotFoundError:
            logger.warning("No cached data for %s yet; leaving it out", query.agency)
            return None
        except CacheError as exc:
            raise StopDataError(query.agency, str(exc)) from exc

        try:
            return transform(query, snapshot, self._destination_subs)
        except TimeParseError as exc:
            raise StopDataError(query.agency, str(exc)) from exc


__all__ = ["StopDataError", "StopDataPipeline"]
