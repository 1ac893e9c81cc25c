"""Error hierarchy for the replay engine.

Structural errors abort a run. Per-bar and per-signal problems are absorbed
by the replay loop and only show up in the event log and report counters.
"""


class ReplayError(Exception):
    """Base exception for replay_core."""


class ConfigError(ReplayError):
    """Parameters are missing, out of range, or inconsistent."""


class DataFormatError(ReplayError):
    """Bar input is malformed. Raised at load time, before any replay."""


class InsufficientDataError(ReplayError):
    """More bar history was requested than the series holds."""

    def __init__(self, needed: int, available: int, context: str = "history"):
        self.needed = needed
        self.available = available
        super().__init__(f"insufficient {context}: need {needed}, have {available}")


class StrategyError(ReplayError):
    """Strategy could not produce signals for the current bar."""
