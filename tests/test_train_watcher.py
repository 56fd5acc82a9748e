"""Tests for TrainWatcher poll cycles."""

import unittest
from unittest.mock import MagicMock, patch
from datetime import datetime
import sys
from pathlib import Path

# Add src to path so we can import bartwatch
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from bartwatch.bart_client import BARTClient
from bartwatch.errors import UpstreamFetchError
from bartwatch.models import (
    Estimate,
    Route,
    RouteSchedule,
    ScheduledStop,
    ScheduledTrain,
    Station,
    StationEtd,
)
from bartwatch.schedule_loader import ScheduleLoader
from bartwatch.train_record import TrainRecord
from bartwatch.train_watcher import FAILURE_ALERT_THRESHOLD, TrainWatcher


def make_stations():
    return [
        Station(abbr="MONT", name="Montgomery St.", latitude=37.789405, longitude=-122.401066),
        Station(abbr="EMBR", name="Embarcadero", latitude=37.792874, longitude=-122.397020),
        Station(abbr="WOAK", name="West Oakland", latitude=37.804872, longitude=-122.295140),
    ]


def make_route(embr_minute=2):
    train = ScheduledTrain("1", 1, [
        ScheduledStop("MONT", datetime(2026, 10, 19, 8, 0)),
        ScheduledStop("EMBR", datetime(2026, 10, 19, 8, embr_minute)),
        ScheduledStop("WOAK", datetime(2026, 10, 19, 8, 9)),
    ])
    route = Route(number=1, name="SFIA - ANTC", abbr="SFIA-ANTC", color="YELLOW",
                  schedule=RouteSchedule(trains=[train]))
    return route


def make_loader():
    loader = ScheduleLoader()
    loader.load(make_stations(), [make_route()])
    return loader


def feed(*minutes):
    return {"MONT": [StationEtd("WOAK", "West Oakland", [Estimate(m, cars=10) for m in minutes])]}


class TestTrainWatcher(unittest.TestCase):
    """Test the poll cycle and the published snapshot."""

    def setUp(self):
        self.client = MagicMock(spec=BARTClient)
        self.watcher = TrainWatcher(client=self.client, loader=make_loader(), load_schedule=False)

    def test_initial_snapshot_is_empty(self):
        self.assertEqual(self.watcher.snapshot().trains, ())

    def test_poll_tracks_trains(self):
        """Test that a poll resolves estimates and publishes trains."""
        self.client.fetch_etds.return_value = feed(-1, 1, 5)

        events = self.watcher.poll_once()

        # 5 minutes is past the 2 minute average for MONT-EMBR
        self.assertEqual(len(events.created), 2)
        trains = self.watcher.snapshot().trains
        self.assertEqual([t.latest_minutes for t in trains], [-1, 1])
        self.assertTrue(all(t.origin_abbr == "MONT" for t in trains))
        self.assertTrue(all(t.destination_abbr == "EMBR" for t in trains))
        self.assertEqual(trains[0].average_minutes, 2.0)

    def test_identity_survives_polls(self):
        """Test that a train keeps its id while it approaches."""
        self.client.fetch_etds.return_value = feed(-1, 1)
        self.watcher.poll_once()
        following = self.watcher.snapshot().trains[1]

        self.client.fetch_etds.return_value = feed(0)
        events = self.watcher.poll_once()

        self.assertEqual(len(events.retired), 1)
        trains = self.watcher.snapshot().trains
        self.assertEqual(len(trains), 1)
        self.assertEqual(trains[0].id, following.id)
        self.assertEqual([u.minutes for u in trains[0].updates], [1, 0])

    def test_fetch_failure_keeps_state(self):
        """Test that a failed fetch leaves the published snapshot untouched."""
        self.client.fetch_etds.return_value = feed(1)
        self.watcher.poll_once()
        before = self.watcher.snapshot()

        self.client.fetch_etds.side_effect = UpstreamFetchError("timeout")
        with self.assertLogs("bartwatch.train_watcher", level="WARNING"):
            result = self.watcher.poll_once()

        self.assertIsNone(result)
        self.assertIs(self.watcher.snapshot(), before)
        self.assertEqual(self.watcher.consecutive_failures, 1)

    def test_repeated_failures_escalate(self):
        """Test that repeated failures are logged as errors, then reset."""
        self.client.fetch_etds.side_effect = UpstreamFetchError("timeout")
        for _ in range(FAILURE_ALERT_THRESHOLD - 1):
            self.watcher.poll_once()

        with self.assertLogs("bartwatch.train_watcher", level="ERROR"):
            self.watcher.poll_once()

        self.client.fetch_etds.side_effect = None
        self.client.fetch_etds.return_value = feed(1)
        self.watcher.poll_once()
        self.assertEqual(self.watcher.consecutive_failures, 0)

    def test_unknown_destination_is_skipped(self):
        """Test that an unmatched line does not abort the cycle."""
        etds = feed(1)
        etds["MONT"].append(StationEtd("NOPE", "Nowhere", [Estimate(1)]))
        self.client.fetch_etds.return_value = etds

        with self.assertLogs("bartwatch.segment_resolver", level="WARNING"):
            events = self.watcher.poll_once()

        self.assertEqual(len(events.created), 1)

    def test_positions(self):
        """Test positions are interpolated between the segment stations."""
        self.client.fetch_etds.return_value = feed(-1, 1)
        self.watcher.poll_once()

        positions = self.watcher.positions()

        self.assertEqual(len(positions), 2)
        _, leaving = positions[0]
        self.assertAlmostEqual(leaving.latitude, 37.789405)
        self.assertAlmostEqual(leaving.longitude, -122.401066)
        _, halfway = positions[1]
        self.assertAlmostEqual(halfway.progress, 0.5)
        self.assertAlmostEqual(halfway.latitude, (37.789405 + 37.792874) / 2)

    def test_reload_schedule_rebuilds_travel_times(self):
        """Test that a reload feeds new averages to new trains only."""
        self.client.fetch_etds.return_value = feed(-1, 1, 5)
        self.watcher.poll_once()
        before = [t.id for t in self.watcher.snapshot().trains]

        self.client.fetch_stations.return_value = make_stations()
        self.client.fetch_routes_with_schedules.return_value = [make_route(embr_minute=8)]
        self.watcher.reload_schedule()

        self.assertEqual(self.watcher.loader.travel_times.average_minutes(1, "MONT-EMBR"), 8.0)

        events = self.watcher.poll_once()

        trains = self.watcher.snapshot().trains
        self.assertEqual([t.id for t in trains[:2]], before)
        self.assertEqual([t.average_minutes for t in trains[:2]], [2.0, 2.0])
        self.assertEqual(events.created, [trains[2].id])
        self.assertEqual(trains[2].latest_minutes, 5)
        self.assertEqual(trains[2].average_minutes, 8.0)

    def test_failed_reconcile_is_not_published(self):
        """Test that an error while reconciling leaves the snapshot alone."""
        self.client.fetch_etds.return_value = feed(1)
        self.watcher.poll_once()
        before = self.watcher.snapshot()

        self.client.fetch_etds.return_value = feed(0)
        with patch.object(TrainRecord, "update", side_effect=RuntimeError("boom")):
            with self.assertRaises(RuntimeError):
                self.watcher.poll_once()

        self.assertIs(self.watcher.snapshot(), before)
        self.assertEqual(len(self.watcher.engine), 0)

        events = self.watcher.poll_once()
        self.assertEqual(len(events.created), 1)
        self.assertEqual(self.watcher.snapshot().trains[0].latest_minutes, 0)

    def test_start_and_stop(self):
        """Test that the background thread polls and shuts down."""
        self.client.fetch_etds.return_value = feed(1)
        self.watcher.update_interval = 0.01

        self.watcher.start()
        self.watcher.stop(timeout=2)

        self.assertTrue(self.client.fetch_etds.called)


if __name__ == "__main__":
    unittest.main()
