"""
Event log for realtime protocol traffic.

This module provides the EventLog class, an append-only record of every event
sent to or received from the Realtime API. Raw events are kept exactly as they
arrived; consecutive events of the same type and source are folded into one
entry with a ``count`` for presentation.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

logger = logging.getLogger(__name__)


class EventSource(Enum):
    """Which side of the connection produced an event."""

    LOCAL = "client"
    REMOTE = "server"


@dataclass(frozen=True)
class RealtimeEvent:
    """A single protocol event as logged."""

    time: datetime
    source: EventSource
    payload: Dict[str, Any] = field(default_factory=dict)
    count: int = 1

    @property
    def event_type(self) -> str:
        return str(self.payload.get("type", ""))

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        return {
            "time": self.time.isoformat(),
            "source": self.source.value,
            "count": self.count,
            "event": self.payload,
        }


class _EntryView:
    """Restartable iterable over a fixed list of entries."""

    def __init__(self, entries: List[RealtimeEvent]):
        self._entries = entries

    def __iter__(self) -> Iterator[RealtimeEvent]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


class EventLog:
    """
    Append-only, order-preserving log of realtime protocol events.

    Two views are kept in step:
    - raw events, one per append and never modified
    - aggregated entries, where a run of consecutive events with the same
      source and type collapses into its first event with ``count`` set to
      the run length

    Only the last aggregated entry is ever replaced; once an event with a
    different type or source follows it, an entry is closed for good.
    """

    def __init__(self):
        self._raw: List[RealtimeEvent] = []
        self._entries: List[RealtimeEvent] = []
        self.start_time: datetime = datetime.now()

        self._stats: Dict[str, int] = {source.value: 0 for source in EventSource}
        self._listeners: List[Callable[[RealtimeEvent], None]] = []

    def append(self, event: RealtimeEvent) -> RealtimeEvent:
        """Record ``event`` and return the aggregated entry it landed in."""
        self._raw.append(event)
        self._stats[event.source.value] += 1

        last = self._entries[-1] if self._entries else None
        if (
            last is not None
            and last.source is event.source
            and last.event_type == event.event_type
        ):
            entry = replace(last, count=last.count + event.count)
            self._entries[-1] = entry
        else:
            entry = event
            self._entries.append(entry)

        for listener in self._listeners:
            try:
                listener(entry)
            except Exception as e:
                logger.error(f"[EVENTS] Error in event listener: {e}")

        return entry

    def record(
        self,
        payload: Dict[str, Any],
        source: EventSource,
        time: Optional[datetime] = None,
    ) -> RealtimeEvent:
        """Build a RealtimeEvent for ``payload`` and append it."""
        return self.append(RealtimeEvent(time=time or datetime.now(), source=source, payload=payload))

    def entries(self) -> Iterable[RealtimeEvent]:
        """Aggregated entries in order, as of now."""
        return _EntryView(list(self._entries))

    def raw_events(self) -> Iterable[RealtimeEvent]:
        """Every appended event in order, without aggregation."""
        return _EntryView(list(self._raw))

    def __len__(self) -> int:
        return len(self._entries)

    def add_listener(self, listener: Callable[[RealtimeEvent], None]) -> None:
        """Call ``listener`` with the affected entry after every append."""
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[RealtimeEvent], None]) -> bool:
        if listener in self._listeners:
            self._listeners.remove(listener)
            return True
        return False

    def stats(self) -> Dict[str, int]:
        """Raw event counts per source."""
        return dict(self._stats)

    def format_time(self, event: RealtimeEvent) -> str:
        """Elapsed time since the log started, as ``mm:ss.hh``."""
        delta_ms = max(0, int((event.time - self.start_time).total_seconds() * 1000))
        hundredths = (delta_ms // 10) % 100
        seconds = (delta_ms // 1000) % 60
        minutes = (delta_ms // 60_000) % 60
        return f"{minutes:02d}:{seconds:02d}.{hundredths:02d}"

    def clear(self) -> None:
        """Drop all events and restart the clock."""
        self._raw.clear()
        self._entries.clear()
        self._stats = {source.value: 0 for source in EventSource}
        self.start_time = datetime.now()
