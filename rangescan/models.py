from __future__ import annotations
from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional


class Outcome(Enum):
    """Result of probing a single target. Values are the ledger spelling."""
    SUCCESS = "OK"
    FAILURE = "Failure"

    @classmethod
    def from_record(cls, value: str) -> "Outcome":
        """Maps a ledger outcome field back to an Outcome."""
        for outcome in cls:
            if outcome.value == value:
                return outcome
        raise ValueError(f"Unknown outcome '{value}'")


class SlotState(Enum):
    """Represents what a scheduler slot is currently doing."""
    IDLE = auto()
    BUSY = auto()
    DRAINING = auto()


@dataclass(frozen=True)
class ScanResult:
    """Represents the outcome of one probe attempt, as handed to result sinks."""
    target: str
    outcome: Outcome
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS


@dataclass
class ScanSummary:
    """Counters for a single scan run."""
    probed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    invalid: int = 0
