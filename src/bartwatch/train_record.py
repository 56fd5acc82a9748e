"""Per-train update history and position interpolation."""

import logging
import math
from datetime import datetime
from typing import List, Optional

from .models import LEAVING, Station, TrainPosition, TrainSnapshot, TrainUpdate

logger = logging.getLogger(__name__)


class TrainRecord:
    """
    History of one tracked train on one segment.

    Updates are appended only when the minutes value changes. Once retired,
    the record no longer accepts updates.
    """

    def __init__(
        self,
        train_id: int,
        segment_key: str,
        minutes: int,
        average_minutes: float,
        cars: int = 0,
        now: Optional[datetime] = None,
    ):
        self.id = train_id
        self.segment_key = segment_key
        self.average_minutes = average_minutes
        self.cars = cars
        self.created_at = now or datetime.now()
        self.retired_at: Optional[datetime] = None
        self.updates: List[TrainUpdate] = []

        self.update(minutes, now=self.created_at)

    @property
    def origin_abbr(self) -> str:
        return self.segment_key.split("-")[0]

    @property
    def destination_abbr(self) -> str:
        return self.segment_key.split("-")[1]

    @property
    def latest_minutes(self) -> int:
        return self.updates[-1].minutes

    @property
    def retired(self) -> bool:
        return self.retired_at is not None

    def update(self, minutes: int, now: Optional[datetime] = None) -> bool:
        """
        Record a new sample.

        Returns:
            True if a sample was appended, False if minutes was unchanged.

        Raises:
            RuntimeError: If the record has been retired.
        """
        if self.retired:
            raise RuntimeError(f"Train {self.id} on {self.segment_key} is retired")

        if self.updates and self.updates[-1].minutes == minutes:
            return False

        self.updates.append(TrainUpdate(timestamp=now or datetime.now(), minutes=minutes))
        return True

    def retire(self, now: Optional[datetime] = None) -> None:
        if self.retired:
            return
        self.retired_at = now or datetime.now()

    def stats_lines(self) -> List[str]:
        """Render the history, flagging samples where the estimate went up."""
        lines = [f"stats for train {self.id} ({self.segment_key}):"]
        previous = None
        for update in self.updates:
            diff = ""
            if previous is not None:
                seconds = int((update.timestamp - previous.timestamp).total_seconds())
                diff = f" (diff: {seconds}s)"
            lines.append(f"[{update.timestamp.strftime('%m/%d@%H:%M:%S')}] {update.minutes}m{diff}")
            if previous is not None and update.minutes > previous.minutes:
                lines.append("!!! train time increased ^^^")
            previous = update
        return lines

    def snapshot(self) -> TrainSnapshot:
        return TrainSnapshot(
            id=self.id,
            origin_abbr=self.origin_abbr,
            destination_abbr=self.destination_abbr,
            updates=tuple(self.updates),
            average_minutes=self.average_minutes,
            cars=self.cars,
        )

    def __repr__(self) -> str:
        return f"TrainRecord(id={self.id}, segment={self.segment_key!r}, minutes={self.latest_minutes})"


def progress_for(minutes: int, average_minutes: float) -> float:
    """
    Fraction of the segment still ahead of the train.

    Not clamped: estimates above the average place the train behind the
    origin station.
    """
    if minutes == LEAVING:
        return 1.0
    return minutes / average_minutes


def interpolate_position(origin: Station, destination: Station, minutes: int, average_minutes: float) -> TrainPosition:
    """
    Linearly interpolate a train between two stations.

    Each axis is interpolated independently (planar, not geodesic).
    """
    progress = progress_for(minutes, average_minutes)
    latitude = destination.latitude - progress * (destination.latitude - origin.latitude)
    longitude = destination.longitude - progress * (destination.longitude - origin.longitude)
    heading = math.degrees(math.atan2(
        destination.longitude - origin.longitude,
        destination.latitude - origin.latitude,
    ))

    return TrainPosition(
        latitude=latitude,
        longitude=longitude,
        progress=progress,
        heading=heading,
    )
