"""Static station and route schedule loader."""

import logging
from typing import Dict, List, Mapping, Optional

from .bart_client import BARTClient, parse_route_schedule, parse_routes, parse_stations
from .models import Route, Station
from .travel_times import TravelTimeModel

logger = logging.getLogger(__name__)


class ScheduleLoader:
    """Loads and indexes BART stations, routes and their schedules."""

    def __init__(self):
        """Initialize the schedule loader."""
        self.stations: Dict[str, Station] = {}  # abbr -> Station
        self.routes: List[Route] = []
        self.travel_times = TravelTimeModel()

    def load_from_api(self, client: Optional[BARTClient] = None) -> None:
        """Download stations and every route's schedule from the BART API."""
        client = client or BARTClient()
        logger.info("Downloading stations and route schedules from the BART API")
        try:
            stations = client.fetch_stations()
            routes = client.fetch_routes_with_schedules()
        except Exception as e:
            logger.error(f"Failed to load schedule data: {e}")
            raise
        self._index(stations, routes)

    def load_from_files(self, stations_path: str, routes_path: str, schedule_paths: Mapping[int, str]) -> None:
        """
        Load data from saved API responses.

        Args:
            stations_path: Path to a stns response.
            routes_path: Path to a routes response.
            schedule_paths: {route_number: path to a routesched response}.
                Routes without an entry get an empty schedule.
        """
        logger.info("Loading schedule data from local files")
        with open(stations_path, "r", encoding="utf-8") as f:
            stations = parse_stations(f.read())
        with open(routes_path, "r", encoding="utf-8") as f:
            routes = parse_routes(f.read())
        for route in routes:
            path = schedule_paths.get(route.number)
            if path is None:
                logger.warning(f"No schedule file for route {route.number} ({route.abbr})")
                continue
            with open(path, "r", encoding="utf-8") as f:
                route.schedule = parse_route_schedule(f.read())
        self._index(stations, routes)

    def load(self, stations: List[Station], routes: List[Route]) -> None:
        """Load already-parsed stations and routes."""
        self._index(stations, routes)

    def _index(self, stations: List[Station], routes: List[Route]) -> None:
        self.stations = {station.abbr: station for station in stations}
        self.routes = list(routes)
        self.travel_times = TravelTimeModel.from_routes(self.routes)

        for route in self.routes:
            if not route.schedule.trains:
                logger.warning(f"Route {route.number} ({route.abbr}) has no scheduled trains today")
        logger.info(f"Loaded {len(self.stations)} stations and {len(self.routes)} routes")

    def get_station(self, abbr: str) -> Station:
        """Get station by abbreviation."""
        if abbr not in self.stations:
            raise ValueError(f"Station {abbr} not found")
        return self.stations[abbr]

    def find_stations_by_name(self, name: str) -> List[Station]:
        """Find stations by name (partial match)."""
        name_lower = name.lower()
        return [station for station in self.stations.values() if name_lower in station.name.lower()]

    def get_route(self, number: int) -> Route:
        for route in self.routes:
            if route.number == number:
                return route
        raise ValueError(f"Route {number} not found")
