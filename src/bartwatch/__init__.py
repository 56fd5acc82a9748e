"""bartwatch - Real-time BART train positions from the station estimate feed."""

__version__ = "0.1.0"

from .models import LEAVING, Station, Route, Estimate, StationEtd, TrainSnapshot, TrainPosition, WatcherSnapshot
from .errors import BartWatchError, DataIntegrityError, UpstreamFetchError
from .travel_times import TravelTimeModel, compute_average_travel_times
from .segment_resolver import SegmentResolver
from .train_record import TrainRecord, interpolate_position
from .reconciliation import ReconciliationEngine, reconcile_segment
from .schedule_loader import ScheduleLoader
from .bart_client import BARTClient
from .train_watcher import TrainWatcher

__all__ = [
    "TrainWatcher",
    "ReconciliationEngine",
    "reconcile_segment",
    "SegmentResolver",
    "TravelTimeModel",
    "compute_average_travel_times",
    "TrainRecord",
    "interpolate_position",
    "ScheduleLoader",
    "BARTClient",
    "BartWatchError",
    "DataIntegrityError",
    "UpstreamFetchError",
    "LEAVING",
    "Station",
    "Route",
    "Estimate",
    "StationEtd",
    "TrainSnapshot",
    "TrainPosition",
    "WatcherSnapshot",
]
