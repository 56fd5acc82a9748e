"""Maps raw station estimates onto directed track segments."""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import DataIntegrityError
from .models import Estimate, ResolvedEstimate, Route, ScheduledTrain, StationEtd
from .travel_times import TravelTimeModel, segment_key

logger = logging.getLogger(__name__)


def estimate_sort_key(resolved: ResolvedEstimate) -> tuple:
    """Leaving trains first, then ascending minutes."""
    return (not resolved.estimate.is_leaving, resolved.minutes)


class SegmentResolver:
    """
    Resolves (origin, destination) pairs to the segment a train is on.

    The first route, and on it the first scheduled train, that visits the
    origin before the destination defines the segment. Branches or variants
    of the same route are not told apart.
    """

    def __init__(self, routes: Iterable[Route], travel_times: TravelTimeModel):
        self.routes: List[Route] = list(routes)
        self.travel_times = travel_times
        self._cache: Dict[Tuple[str, str], Tuple[str, int, float]] = {}

    def _first_matching_train(self, route: Route, origin_abbr: str, destination_abbr: str) -> Optional[ScheduledTrain]:
        for train in route.schedule.trains:
            if train.runs_between(origin_abbr, destination_abbr):
                return train
        return None

    def resolve(self, origin_abbr: str, destination_abbr: str) -> Tuple[str, int, float]:
        """
        Find the segment leaving origin_abbr towards destination_abbr.

        Returns:
            (segment_key, route_number, average_minutes)

        Raises:
            DataIntegrityError: If no scheduled train runs from origin to
                destination, or the segment has no known travel time.
        """
        cached = self._cache.get((origin_abbr, destination_abbr))
        if cached is not None:
            return cached

        candidates = [
            route for route in self.routes
            if self._first_matching_train(route, origin_abbr, destination_abbr) is not None
        ]
        if not candidates:
            raise DataIntegrityError(
                origin_abbr, destination_abbr,
                f"Could not find candidate route for train from {origin_abbr} to {destination_abbr}",
            )

        route = candidates[0]
        train = self._first_matching_train(route, origin_abbr, destination_abbr)
        next_index = train.stop_index(origin_abbr) + 1
        if next_index >= len(train.stops):
            raise DataIntegrityError(
                origin_abbr, destination_abbr,
                f"Could not find next stop from {origin_abbr} on route {route.abbr}",
            )

        key = segment_key(origin_abbr, train.stops[next_index].station)
        average = self.travel_times.average_minutes(route.number, key)
        if average is None:
            raise DataIntegrityError(
                origin_abbr, destination_abbr,
                f"No average travel time for {key} on route {route.abbr}",
            )

        resolved = (key, route.number, average)
        self._cache[(origin_abbr, destination_abbr)] = resolved
        return resolved

    def resolve_line(self, origin_abbr: str, line: StationEtd) -> List[ResolvedEstimate]:
        """
        Resolve one destination line at a station.

        Estimates at or beyond the average travel time are probably still
        further down the line and are dropped. Leaving trains always pass.
        """
        key, route_number, average = self.resolve(origin_abbr, line.destination_abbr)
        return [
            ResolvedEstimate(key, route_number, estimate, average)
            for estimate in line.estimates
            if self._is_on_segment(estimate, average)
        ]

    @staticmethod
    def _is_on_segment(estimate: Estimate, average_minutes: float) -> bool:
        return estimate.is_leaving or estimate.minutes < average_minutes

    def resolve_all(self, station_etds: Mapping[str, List[StationEtd]]) -> Dict[str, List[ResolvedEstimate]]:
        """
        Resolve every station's estimates into per-segment ordered lists.

        Args:
            station_etds: {origin_abbr: [StationEtd, ...]} from the feed.

        Returns:
            {segment_key: [ResolvedEstimate, ...]} sorted leaving-first, then
            by ascending minutes.
        """
        segments: Dict[str, List[ResolvedEstimate]] = {}

        for origin_abbr, lines in station_etds.items():
            for line in lines:
                try:
                    resolved = self.resolve_line(origin_abbr, line)
                except DataIntegrityError as e:
                    logger.warning(f"Dropping estimates from {origin_abbr} to {line.destination_abbr}: {e}")
                    continue

                for item in resolved:
                    segments.setdefault(item.segment_key, []).append(item)

        for key in segments:
            segments[key].sort(key=estimate_sort_key)

        logger.debug(f"Resolved estimates onto {len(segments)} segments")
        return segments
