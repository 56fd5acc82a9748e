"""BART legacy XML API fetcher and parser."""

import logging
import os
import xml.etree.ElementTree as ET
from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, List, Optional, TypeVar

import requests

from .errors import UpstreamFetchError
from .models import (
    LEAVING,
    Estimate,
    Route,
    RouteSchedule,
    ScheduledStop,
    ScheduledTrain,
    Station,
    StationEtd,
)

logger = logging.getLogger(__name__)

BART_BASE_URL = "https://api.bart.gov/api"

# BART's public key; set BART_API_KEY to use your own
BART_API_KEY = os.environ.get("BART_API_KEY", "MW9S-E7SL-26DU-VV8V")

REQUEST_TIMEOUT = 10  # seconds

# Times before this belong to the previous service day
# https://api.bart.gov/docs/overview/barttime.aspx
BART_SERVICE_END = time(2, 27)

T = TypeVar("T")


def _text(element: ET.Element, tag: str, default: str = "") -> str:
    child = element.find(tag)
    if child is None or child.text is None:
        return default
    return child.text.strip()


def parse_bart_time(value: str, service_date: date) -> datetime:
    """
    Parse a schedule time like "4:52 AM" on the given service day.

    Times before BART_SERVICE_END roll over to the next calendar day.
    """
    parsed = datetime.strptime(value.strip(), "%I:%M %p").time()
    result = datetime.combine(service_date, parsed)
    if parsed < BART_SERVICE_END:
        result += timedelta(days=1)
    return result


def parse_minutes(value: str) -> int:
    """Estimate minutes, with "Leaving" mapped to LEAVING."""
    value = value.strip()
    if value.lower() == "leaving":
        return LEAVING
    return int(value)


def parse_stations(xml_text) -> List[Station]:
    root = ET.fromstring(xml_text)
    stations: List[Station] = []
    for element in root.iter("station"):
        stations.append(Station(
            abbr=_text(element, "abbr"),
            name=_text(element, "name"),
            latitude=float(_text(element, "gtfs_latitude")),
            longitude=float(_text(element, "gtfs_longitude")),
            address=_text(element, "address"),
            city=_text(element, "city"),
            zipcode=_text(element, "zipcode"),
            county=_text(element, "county"),
        ))
    return stations


def parse_routes(xml_text) -> List[Route]:
    root = ET.fromstring(xml_text)
    routes: List[Route] = []
    for element in root.iter("route"):
        routes.append(Route(
            number=int(_text(element, "number")),
            name=_text(element, "name"),
            abbr=_text(element, "abbr"),
            color=_text(element, "color"),
        ))
    return routes


def parse_route_schedule(xml_text, today: Optional[date] = None) -> RouteSchedule:
    """
    Parse a routesched response.

    Stops without an origTime are skipped; the train passes through without
    stopping. A route that does not run on the requested day has no trains.
    """
    root = ET.fromstring(xml_text)

    date_text = _text(root, "date")
    schedule_date = datetime.strptime(date_text, "%m/%d/%Y") if date_text else None
    service_date = schedule_date.date() if schedule_date else (today or date.today())

    sched_num = _text(root, "sched_num")

    trains: List[ScheduledTrain] = []
    for element in root.iter("train"):
        stops = [
            ScheduledStop(
                station=stop.get("station", ""),
                time=parse_bart_time(stop.get("origTime"), service_date),
                load=int(stop.get("load") or 0),
                bike=stop.get("bikeflag") == "1",
                level=stop.get("level", ""),
            )
            for stop in element.iter("stop")
            if stop.get("origTime")
        ]
        trains.append(ScheduledTrain(
            train_id=element.get("trainId", ""),
            train_index=int(element.get("trainIdx") or 0),
            stops=stops,
        ))

    return RouteSchedule(
        trains=trains,
        date=schedule_date,
        schedule_number=int(sched_num) if sched_num else None,
    )


def parse_etds(xml_text) -> Dict[str, List[StationEtd]]:
    """
    Parse an etd response into {origin_abbr: [StationEtd, ...]}.

    Estimates within a line are sorted ascending, leaving first.
    """
    root = ET.fromstring(xml_text)
    result: Dict[str, List[StationEtd]] = {}

    for station in root.iter("station"):
        lines: List[StationEtd] = []
        for etd in station.findall("etd"):
            estimates = [
                Estimate(
                    minutes=parse_minutes(_text(estimate, "minutes")),
                    cars=int(_text(estimate, "length", "0") or 0),
                    bike=_text(estimate, "bikeflag") == "1",
                    platform=int(_text(estimate, "platform", "0") or 0),
                )
                for estimate in etd.findall("estimate")
            ]
            estimates.sort(key=lambda e: (not e.is_leaving, e.minutes))
            lines.append(StationEtd(
                destination_abbr=_text(etd, "abbreviation"),
                destination=_text(etd, "destination"),
                estimates=estimates,
            ))
        result[_text(station, "abbr")] = lines

    return result


class BARTClient:
    """Fetches and parses data from the BART API."""

    def __init__(
        self,
        api_key: str = BART_API_KEY,
        base_url: str = BART_BASE_URL,
        timeout: float = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the BART client.

        Args:
            api_key: BART API key.
            base_url: API root, without a trailing slash.
            timeout: Per-request timeout in seconds.
            session: Optional requests session to reuse.
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch_stations(self) -> List[Station]:
        return self._get("stn.aspx", {"cmd": "stns"}, parse_stations)

    def fetch_routes(self) -> List[Route]:
        return self._get("route.aspx", {"cmd": "routes"}, parse_routes)

    def fetch_route_schedule(self, route_number: int) -> RouteSchedule:
        """
        Fetch today's schedule for one route.

        If the route does not run on this day, the schedule is empty.
        """
        return self._get("sched.aspx", {"cmd": "routesched", "route": route_number}, parse_route_schedule)

    def fetch_routes_with_schedules(self) -> List[Route]:
        routes = self.fetch_routes()
        for route in routes:
            route.schedule = self.fetch_route_schedule(route.number)
        return routes

    def fetch_etds(self) -> Dict[str, List[StationEtd]]:
        """
        Fetch real-time estimates for every station.

        Returns:
            {origin_abbr: [StationEtd, ...]}

        Raises:
            UpstreamFetchError: If the request fails or the response is malformed.
        """
        logger.debug(f"[{datetime.now().isoformat()}] fetching...")
        etds = self._get("etd.aspx", {"cmd": "etd", "orig": "all"}, parse_etds)
        logger.debug(f"[{datetime.now().isoformat()}] done")
        return etds

    def _get(self, path: str, params: dict, parse: Callable[[bytes], T]) -> T:
        url = f"{self.base_url}/{path}"
        query = dict(params, key=self.api_key)

        logger.debug(f"Fetching {url} {params}")
        try:
            response = self.session.get(url, params=query, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise UpstreamFetchError(f"Failed to fetch {url}: {e}") from e

        try:
            return parse(response.content)
        except (ET.ParseError, ValueError, TypeError) as e:
            raise UpstreamFetchError(f"Malformed response from {url}: {e}") from e
