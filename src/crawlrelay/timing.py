"""Timing ledger for crawl jobs.

Every lifecycle stage appends a timestamped event to the job's ledger. The
ledger is flushed to the diagnostics sink once the job reaches a terminal
state.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Tuple


class TimingEvent(str, Enum):
    """Lifecycle events recorded on a job."""
    BEFORE_QUEUE_ADD = "before queue add"
    RUN_TASK = "internal run task"
    PRE_NAVIGATION = "pre-navigation hook"
    REQUEST_HANDLER = "internal request handler"
    ERROR = "error"


@dataclass(frozen=True)
class TimeMeasure:
    """A single ledger entry. ``time`` is in epoch milliseconds."""
    event: TimingEvent
    time: int

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.event.value, "time": self.time}


def now_ms() -> int:
    return int(time.time() * 1000)


class TimingLedger:
    """Append-only, chronologically ordered list of ``TimeMeasure``.

    Wall-clock time can step backwards (NTP adjustments), so each new
    timestamp is clamped to the previous one to keep the ledger
    non-decreasing.
    """

    def __init__(self) -> None:
        self._entries: List[TimeMeasure] = []

    def push(self, event: TimingEvent) -> TimeMeasure:
        stamp = now_ms()
        if self._entries and stamp < self._entries[-1].time:
            stamp = self._entries[-1].time
        measure = TimeMeasure(event=TimingEvent(event), time=stamp)
        self._entries.append(measure)
        return measure

    @property
    def entries(self) -> Tuple[TimeMeasure, ...]:
        return tuple(self._entries)

    @property
    def events(self) -> List[TimingEvent]:
        return [m.event for m in self._entries]

    def durations(self) -> List[Tuple[str, int]]:
        """Milliseconds elapsed between each event and the one before it."""
        spans = []
        for previous, current in zip(self._entries, self._entries[1:]):
            spans.append((current.event.value, current.time - previous.time))
        return spans

    def total_ms(self) -> int:
        if not self._entries:
            return 0
        return self._entries[-1].time - self._entries[0].time

    def to_list(self) -> List[Dict[str, Any]]:
        return [m.to_dict() for m in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self.entries)
