"""Main BART train watcher class."""

import logging
import threading
from datetime import datetime
from typing import List, Optional, Tuple

from .bart_client import BARTClient
from .errors import UpstreamFetchError
from .models import Route, Station, TrainPosition, TrainSnapshot, WatcherSnapshot
from .reconciliation import CycleEvents, ReconciliationEngine
from .schedule_loader import ScheduleLoader
from .segment_resolver import SegmentResolver
from .train_record import interpolate_position

logger = logging.getLogger(__name__)

UPDATE_INTERVAL = 10  # seconds

# Consecutive failed polls before the failure is logged as an error
FAILURE_ALERT_THRESHOLD = 3


class TrainWatcher:
    """
    Tracks BART trains between stations from the real-time estimate feed.

    One poll cycle fetches every station's estimates, resolves them onto
    segments and reconciles them against the trains already tracked. Cycles
    run one at a time on a background thread. Readers only ever see the
    snapshot published at the end of a complete cycle.
    """

    def __init__(
        self,
        client: Optional[BARTClient] = None,
        loader: Optional[ScheduleLoader] = None,
        load_schedule: bool = True,
        update_interval: float = UPDATE_INTERVAL,
    ):
        """
        Initialize the watcher.

        Args:
            client: BART API client. A default client is created if omitted.
            loader: Schedule loader. A new one is created if omitted.
            load_schedule: If True, download stations and schedules on init.
                If False, the loader must already be populated or be loaded
                manually before polling.
            update_interval: Seconds between poll cycles.
        """
        self.client = client or BARTClient()
        self.loader = loader or ScheduleLoader()
        self.update_interval = update_interval
        self.engine = ReconciliationEngine()
        self.consecutive_failures = 0

        self._snapshot = WatcherSnapshot(taken_at=datetime.now())
        self._snapshot_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        if load_schedule:
            self.loader.load_from_api(self.client)
        self.resolver = SegmentResolver(self.loader.routes, self.loader.travel_times)

    @property
    def stations(self) -> List[Station]:
        return list(self.loader.stations.values())

    @property
    def routes(self) -> List[Route]:
        return list(self.loader.routes)

    def reload_schedule(self) -> None:
        """
        Reload stations and schedules and rebuild the travel-time model.

        Trains already tracked keep the average they were created with. Only
        trains first seen after the reload use the new model.
        """
        self.loader.load_from_api(self.client)
        self.resolver = SegmentResolver(self.loader.routes, self.loader.travel_times)

    def poll_once(self) -> Optional[CycleEvents]:
        """
        Run one fetch, resolve and reconcile cycle.

        Returns:
            The cycle's events, or None if the feed could not be fetched. A
            failed fetch leaves the tracked trains untouched.
        """
        try:
            station_etds = self.client.fetch_etds()
        except UpstreamFetchError as e:
            self.consecutive_failures += 1
            if self.consecutive_failures >= FAILURE_ALERT_THRESHOLD:
                logger.error(f"Estimate feed failed {self.consecutive_failures} times in a row: {e}")
            else:
                logger.warning(f"Skipping poll cycle: {e}")
            return None

        self.consecutive_failures = 0
        now = datetime.now()
        segments = self.resolver.resolve_all(station_etds)
        events = self.engine.apply(segments, now=now)
        self._publish(self.engine.snapshot(now=now))
        return events

    def _publish(self, snapshot: WatcherSnapshot) -> None:
        with self._snapshot_lock:
            self._snapshot = snapshot

    def snapshot(self) -> WatcherSnapshot:
        """The state after the last complete poll cycle."""
        with self._snapshot_lock:
            return self._snapshot

    def positions(self) -> List[Tuple[TrainSnapshot, TrainPosition]]:
        """Interpolated position of every live train in the current snapshot."""
        result: List[Tuple[TrainSnapshot, TrainPosition]] = []
        for train in self.snapshot().trains:
            origin = self.loader.stations.get(train.origin_abbr)
            destination = self.loader.stations.get(train.destination_abbr)
            if origin is None or destination is None:
                logger.warning(f"No coordinates for segment {train.origin_abbr}-{train.destination_abbr}")
                continue
            position = interpolate_position(origin, destination, train.latest_minutes, train.average_minutes)
            result.append((train, position))
        return result

    def start(self) -> None:
        """Poll immediately, then every update_interval seconds on a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="bartwatch-poller", daemon=True)
        self._thread.start()
        logger.info(f"Started polling every {self.update_interval}s")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Stopped polling")

    def _run(self) -> None:
        while True:
            try:
                self.poll_once()
            except Exception as e:
                logger.error(f"Poll cycle failed: {e}", exc_info=True)
            if self._stop_event.wait(self.update_interval):
                break
