"""Data models for BART train watching."""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from datetime import datetime

# Feed value for a train that is at the platform / departing now.
# Sorts before every real estimate, which the departure count relies on.
LEAVING = -1


@dataclass
class Station:
    """Represents a BART station."""
    abbr: str
    name: str
    latitude: float
    longitude: float
    address: str = ""
    city: str = ""
    zipcode: str = ""
    county: str = ""


@dataclass
class ScheduledStop:
    """A single stop of a scheduled train."""
    station: str  # Station abbreviation
    time: datetime  # Already rolled over past the service-day end
    load: int = 0
    bike: bool = False
    level: str = ""


@dataclass
class ScheduledTrain:
    """A scheduled train run with its ordered stops."""
    train_id: str
    train_index: int
    stops: List[ScheduledStop] = field(default_factory=list)

    def stop_index(self, station_abbr: str) -> int:
        """Index of the first stop at station_abbr, or -1."""
        for index, stop in enumerate(self.stops):
            if stop.station == station_abbr:
                return index
        return -1

    def runs_between(self, origin_abbr: str, destination_abbr: str) -> bool:
        """True if this train visits origin strictly before destination."""
        origin_index = self.stop_index(origin_abbr)
        destination_index = self.stop_index(destination_abbr)
        return 0 <= origin_index < destination_index


@dataclass
class RouteSchedule:
    """The schedule of one route for the loaded service day."""
    trains: List[ScheduledTrain] = field(default_factory=list)  # Empty if the route does not run
    date: Optional[datetime] = None
    schedule_number: Optional[int] = None


@dataclass
class Route:
    """Represents a BART route."""
    number: int
    name: str
    abbr: str
    color: str
    schedule: RouteSchedule = field(default_factory=RouteSchedule)


@dataclass(frozen=True)
class Estimate:
    """A raw real-time estimate for one train, scoped to an origin station."""
    minutes: int  # LEAVING (-1) when the train is departing
    cars: int = 0
    bike: bool = False
    platform: int = 0

    @property
    def is_leaving(self) -> bool:
        return self.minutes == LEAVING


@dataclass
class StationEtd:
    """Estimates at one origin station for trains headed to one destination."""
    destination_abbr: str
    destination: str
    estimates: List[Estimate] = field(default_factory=list)


@dataclass(frozen=True)
class ResolvedEstimate:
    """An estimate accepted as being on a concrete segment."""
    segment_key: str
    route_number: int
    estimate: Estimate
    average_minutes: float

    @property
    def minutes(self) -> int:
        return self.estimate.minutes


@dataclass(frozen=True)
class TrainUpdate:
    """One observed sample in a train's history."""
    timestamp: datetime
    minutes: int


@dataclass(frozen=True)
class TrainSnapshot:
    """Read-only view of a live train."""
    id: int
    origin_abbr: str
    destination_abbr: str
    updates: Tuple[TrainUpdate, ...]
    average_minutes: float
    cars: int

    @property
    def latest_minutes(self) -> int:
        return self.updates[-1].minutes


@dataclass(frozen=True)
class TrainPosition:
    """Interpolated position of a train on its segment."""
    latitude: float
    longitude: float
    progress: float  # 0 at the next station, 1 at the origin, may exceed 1
    heading: float  # Degrees from north, direction of travel along the segment


@dataclass(frozen=True)
class WatcherSnapshot:
    """State published after one complete poll cycle."""
    taken_at: datetime
    trains: Tuple[TrainSnapshot, ...] = ()
