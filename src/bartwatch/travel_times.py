"""Average travel times between adjacent stations, from the static schedule."""

import logging
from typing import Dict, Iterable, List, Optional

import pandas as pd

from .models import Route, ScheduledTrain

logger = logging.getLogger(__name__)


def segment_key(origin_abbr: str, destination_abbr: str) -> str:
    """Composite key for the directed hop origin -> destination."""
    return f"{origin_abbr}-{destination_abbr}"


def _elapsed_rows(trains: Iterable[ScheduledTrain]) -> List[tuple]:
    rows = []
    for train in trains:
        for previous, stop in zip(train.stops, train.stops[1:]):
            # Whole minutes, truncated like a clock diff
            elapsed = int((stop.time - previous.time).total_seconds() / 60)
            rows.append((segment_key(previous.station, stop.station), elapsed))
    return rows


def compute_average_travel_times(routes: Iterable[Route]) -> Dict[int, Dict[str, float]]:
    """
    Compute the mean travel time of every adjacent-station segment per route.

    Args:
        routes: Routes with their schedules loaded.

    Returns:
        {route_number: {"ORIG-NEXT": average_minutes}}. Routes without
        scheduled trains map to an empty dict.
    """
    result: Dict[int, Dict[str, float]] = {}

    for route in routes:
        rows = _elapsed_rows(route.schedule.trains)
        if not rows:
            logger.debug(f"Route {route.number} has no scheduled trains")
            result[route.number] = {}
            continue

        frame = pd.DataFrame(rows, columns=["segment", "minutes"])
        means = frame.groupby("segment", sort=False)["minutes"].mean()
        result[route.number] = {key: float(value) for key, value in means.items()}

    return result


class TravelTimeModel:
    """Lookup table of average segment travel times per route."""

    def __init__(self, table: Optional[Dict[int, Dict[str, float]]] = None):
        self._table: Dict[int, Dict[str, float]] = table or {}

    @classmethod
    def from_routes(cls, routes: Iterable[Route]) -> "TravelTimeModel":
        routes = list(routes)
        model = cls(compute_average_travel_times(routes))
        logger.info(f"Computed travel times for {len(routes)} routes")
        return model

    def average_minutes(self, route_number: int, key: str) -> Optional[float]:
        """Average minutes for a segment on a route, or None if never scheduled."""
        return self._table.get(route_number, {}).get(key)

    def segments(self, route_number: int) -> Dict[str, float]:
        return dict(self._table.get(route_number, {}))

    def as_dict(self) -> Dict[int, Dict[str, float]]:
        return {number: dict(segments) for number, segments in self._table.items()}
