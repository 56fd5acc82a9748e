"""Exceptions raised by bartwatch."""


class BartWatchError(Exception):
    """Base class for bartwatch errors."""


class DataIntegrityError(BartWatchError):
    """
    A live estimate does not match the static schedule.

    Carries the origin and destination station abbreviations so the record
    can be correlated against the schedule. Only the one estimate is lost.
    """

    def __init__(self, origin_abbr: str, destination_abbr: str, message: str):
        super().__init__(f"{message} (origin={origin_abbr}, destination={destination_abbr})")
        self.origin_abbr = origin_abbr
        self.destination_abbr = destination_abbr


class UpstreamFetchError(BartWatchError):
    """The BART API could not be reached or returned unusable data."""
