"""Print live BART train positions every poll cycle."""

import logging
import sys
import time
from pathlib import Path

# Add src to path so we can import bartwatch
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from bartwatch.models import LEAVING
from bartwatch.train_watcher import TrainWatcher

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def print_positions(watcher: TrainWatcher, station_filter: str = ""):
    """
    Print every tracked train, optionally only those touching one station.

    Args:
        watcher: A started TrainWatcher.
        station_filter: Station abbreviation (e.g., "MONT"), or "" for all.
    """
    snapshot = watcher.snapshot()
    print(f"\n{'='*70}")
    print(f"{len(snapshot.trains)} trains at {snapshot.taken_at.strftime('%H:%M:%S')}")
    print(f"{'='*70}")

    for train, position in watcher.positions():
        if station_filter and station_filter not in (train.origin_abbr, train.destination_abbr):
            continue
        minutes = "leaving" if train.latest_minutes == LEAVING else f"{train.latest_minutes} min"
        print(
            f"  #{train.id:<5} {train.origin_abbr}-{train.destination_abbr:<5} {minutes:>8} "
            f"(avg: {train.average_minutes:.2f} min) "
            f"@ {position.latitude:.5f}, {position.longitude:.5f}"
        )


if __name__ == "__main__":
    station = sys.argv[1].upper() if len(sys.argv) > 1 else ""

    try:
        print("Loading stations and schedules...")
        watcher = TrainWatcher(load_schedule=True)
    except Exception as e:
        logger.error(f"Failed to load schedule data: {e}", exc_info=True)
        sys.exit(1)

    watcher.start()
    try:
        while True:
            time.sleep(watcher.update_interval)
            print_positions(watcher, station)
    except KeyboardInterrupt:
        print("\nGoodbye!")
    finally:
        watcher.stop(timeout=5)
