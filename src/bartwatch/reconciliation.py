"""
Keeps train identities stable across polls of the unkeyed estimate feed.

The feed never names a train. Per segment, estimates are ordered leaving
first and then by minutes, and the position in that list stands in for
identity. This only holds while trains cannot pass each other on a segment,
which is not true everywhere (parts of BART have more than two tracks).
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .models import ResolvedEstimate, WatcherSnapshot
from .train_record import TrainRecord

logger = logging.getLogger(__name__)

# Number of retired trains kept around for inspection
ARCHIVE_SIZE = 500


def count_leaving(estimates: Sequence[ResolvedEstimate]) -> int:
    return sum(1 for item in estimates if item.estimate.is_leaving)


@dataclass
class SegmentReconciliation:
    """What one segment needs in order to move from the previous poll to the current one."""
    changed: bool
    departures: int = 0
    retired: List[int] = field(default_factory=list)
    updates: List[Tuple[int, ResolvedEstimate]] = field(default_factory=list)
    arrivals: List[ResolvedEstimate] = field(default_factory=list)
    survivors: List[int] = field(default_factory=list)


def reconcile_segment(
    previous: Sequence[ResolvedEstimate],
    current: Sequence[ResolvedEstimate],
    slot_queue: Sequence[int],
) -> SegmentReconciliation:
    """
    Diff two ordered estimate lists for one segment.

    Args:
        previous: Estimates from the last poll, in queue order.
        current: Estimates from this poll, leaving first then by minutes.
        slot_queue: Train ids aligned with previous.

    Returns:
        A SegmentReconciliation. The new queue is survivors followed by one
        new train per entry in arrivals.
    """
    if list(previous) == list(current):
        return SegmentReconciliation(changed=False, survivors=list(slot_queue))

    # Leaving trains sort to the front, so a drop in their count means the
    # front-most trains have left the segment.
    departures = max(0, count_leaving(previous) - count_leaving(current))
    departures = min(departures, len(slot_queue))

    retired = list(slot_queue[:departures])
    remaining = list(slot_queue[departures:])

    # Trains that vanished from the tail without leaving
    if len(remaining) > len(current):
        retired.extend(remaining[len(current):])
        remaining = remaining[:len(current)]

    arrivals = list(current[len(remaining):])
    updates = list(zip(remaining, current[:len(remaining)]))

    return SegmentReconciliation(
        changed=True,
        departures=departures,
        retired=retired,
        updates=updates,
        arrivals=arrivals,
        survivors=remaining,
    )


@dataclass
class CycleEvents:
    """Train ids touched by one reconciliation cycle."""
    created: List[int] = field(default_factory=list)
    updated: List[int] = field(default_factory=list)
    retired: List[int] = field(default_factory=list)

    @property
    def mutation_count(self) -> int:
        return len(self.created) + len(self.updated) + len(self.retired)


class ReconciliationEngine:
    """
    Owns every live TrainRecord and the per-segment slot queues.

    Train ids are integers from a counter and index into the live table.
    Retired records leave the table and go to a bounded archive.
    """

    def __init__(self, archive_size: int = ARCHIVE_SIZE):
        self._train_counter = 0
        self._trains: Dict[int, TrainRecord] = {}
        self._slot_queues: Dict[str, List[int]] = {}
        self._last_segments: Dict[str, List[ResolvedEstimate]] = {}
        self.archive: Deque[TrainRecord] = deque(maxlen=archive_size)

    def __len__(self) -> int:
        return len(self._trains)

    def __iter__(self) -> Iterator[TrainRecord]:
        for key in sorted(self._slot_queues):
            for train_id in self._slot_queues[key]:
                yield self._trains[train_id]

    def get_train(self, train_id: int) -> TrainRecord:
        """Get a live train by id."""
        if train_id not in self._trains:
            raise ValueError(f"Train {train_id} is not being tracked")
        return self._trains[train_id]

    def slot_queue(self, key: str) -> List[int]:
        return list(self._slot_queues.get(key, []))

    def last_estimates(self, key: str) -> List[ResolvedEstimate]:
        return list(self._last_segments.get(key, []))

    def apply(self, segments: Mapping[str, Sequence[ResolvedEstimate]], now: Optional[datetime] = None) -> CycleEvents:
        """
        Reconcile one poll's per-segment estimates against the stored state.

        Every segment is diffed before any record is touched. Segments are
        applied in key order, so new ids are handed out in the same order for
        the same input.

        If applying fails partway, every live train is retired with reset()
        and the exception is re-raised. The next cycle then starts from an
        empty engine instead of a mix of old and new segment state.
        """
        now = now or datetime.now()
        events = CycleEvents()

        plans: Dict[str, Tuple[SegmentReconciliation, List[ResolvedEstimate]]] = {}
        for key in sorted(set(segments) | set(self._last_segments)):
            current = list(segments.get(key, []))
            previous = self._last_segments.get(key, [])
            plan = reconcile_segment(previous, current, self._slot_queues.get(key, []))
            if plan.changed:
                logger.debug(f"{key}: {[e.minutes for e in previous]} -> {[e.minutes for e in current]}")
                plans[key] = (plan, current)

        try:
            for key, (plan, current) in plans.items():
                self._apply_plan(key, plan, current, now, events)
        except Exception as e:
            logger.error(f"Reconciliation failed, dropping {len(self._trains)} trains: {e}")
            self.reset(now)
            raise

        if events.mutation_count:
            logger.debug(
                f"Cycle: {len(events.created)} created, {len(events.updated)} updated, "
                f"{len(events.retired)} retired, {len(self._trains)} live"
            )
        return events

    def _apply_plan(
        self,
        key: str,
        plan: SegmentReconciliation,
        current: List[ResolvedEstimate],
        now: datetime,
        events: CycleEvents,
    ) -> None:
        for train_id in plan.retired:
            self._retire(train_id, now)
            events.retired.append(train_id)

        for train_id, resolved in plan.updates:
            if self._trains[train_id].update(resolved.minutes, now=now):
                events.updated.append(train_id)

        queue = list(plan.survivors)
        for resolved in plan.arrivals:
            train_id = self._add_train(key, resolved, now)
            queue.append(train_id)
            events.created.append(train_id)

        if current:
            self._slot_queues[key] = queue
            self._last_segments[key] = current
        else:
            self._slot_queues.pop(key, None)
            self._last_segments.pop(key, None)

    def reset(self, now: Optional[datetime] = None) -> None:
        """Retire every live train and forget all segments. Ids are not reused."""
        now = now or datetime.now()
        for train_id in list(self._trains):
            self._retire(train_id, now)
        self._slot_queues.clear()
        self._last_segments.clear()

    def snapshot(self, now: Optional[datetime] = None) -> WatcherSnapshot:
        """Immutable view of every live train, in segment and queue order."""
        return WatcherSnapshot(
            taken_at=now or datetime.now(),
            trains=tuple(record.snapshot() for record in self),
        )

    def _add_train(self, key: str, resolved: ResolvedEstimate, now: datetime) -> int:
        train_id = self._train_counter
        self._train_counter += 1
        self._trains[train_id] = TrainRecord(
            train_id,
            key,
            resolved.minutes,
            resolved.average_minutes,
            cars=resolved.estimate.cars,
            now=now,
        )
        return train_id

    def _retire(self, train_id: int, now: datetime) -> None:
        record = self._trains.pop(train_id)
        record.retire(now)
        logger.debug(f"invalidating train: {train_id} ({record.segment_key})")
        for line in record.stats_lines():
            logger.debug(line)
        self.archive.append(record)
