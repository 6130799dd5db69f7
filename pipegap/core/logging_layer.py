# pipegap/core/logging_layer.py
# Event-sourced logging for the analysis phases.
#
# Scope: records the synchronous checkpoints of an analysis session
# (SCAN, ANALYZE, DELIBERATE, APPLY, VERIFY) as hash-chained events.
# Zero tolerance for lost events. No file IO. No global mutable state.
# All timestamps are caller-supplied. All hashes are deterministic.
#
# Canonical import:
#   from pipegap.core.logging_layer import EventLogger, Event, EventFilter
#
# Dependencies: pipegap.core.integrity_layer
# Prohibited: datetime.now(), uuid, random, file IO, global mutable state

# ===========================================================================
# SECTION 1 -- IMPORTS
# ===========================================================================

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from pipegap.core.integrity_layer import GENESIS_HASH, ChainLink, IntegrityLayer

# ===========================================================================
# SECTION 2 -- CONSTANTS
# ===========================================================================

# Sentinels logged in place of non-finite floats. The event is never dropped.
_NAN_SENTINEL: str = "NaN_DETECTED"
_INF_SENTINEL: str = "Inf_DETECTED"


class Phase(str, Enum):
    """Synchronous checkpoints of an analysis session, in order."""
    SCAN       = "SCAN"
    ANALYZE    = "ANALYZE"
    DELIBERATE = "DELIBERATE"
    APPLY      = "APPLY"
    VERIFY     = "VERIFY"


# ===========================================================================
# SECTION 3 -- DATACLASSES: Event, EventFilter
# ===========================================================================

@dataclass(frozen=True)
class Event:
    """
    Immutable record of a single session event.

    Fields
    ------
    id            : "EVT-{counter:016d}", derived from the logger's counter.
    type          : Category string (e.g. PHASE_COMPLETE, FIX_FLAGGED).
    timestamp     : Caller-supplied datetime. Never generated internally.
    data          : Sanitized key-value payload.
    previous_hash : Hash of the preceding event, or the genesis hash.
    hash          : Chain hash over (previous_hash, type, data).
    """
    id:            str
    type:          str
    timestamp:     datetime
    data:          Dict[str, Any]
    previous_hash: str
    hash:          str


@dataclass
class EventFilter:
    """
    Filter specification for EventLogger.query_events().

    All fields are optional. Omitted fields apply no constraint.
    """
    event_type: Optional[str] = None
    phase:      Optional[Phase] = None
    start_time: Optional[datetime] = None
    end_time:   Optional[datetime] = None
    limit:      Optional[int] = None


# ===========================================================================
# SECTION 4 -- INTERNAL HELPERS
# ===========================================================================

def _sanitize_value(value: Any) -> Any:
    """Replace NaN/Inf with sentinels and enum members with their value."""
    if isinstance(value, float):
        if math.isnan(value):
            return _NAN_SENTINEL
        if math.isinf(value):
            return _INF_SENTINEL
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_sanitize_value(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _sanitize_value(v) for k, v in value.items()}
    return value


def _make_event_id(counter: int) -> str:
    return "EVT-{:016d}".format(counter)


# ===========================================================================
# SECTION 5 -- EventLogger
# ===========================================================================

class EventLogger:
    """
    Event-sourced logger with a deterministic hash chain.

    Each instance is fully independent; events live in an instance list.
    log_event() raises LoggingError instead of silently discarding an event.
    """

    def __init__(self) -> None:
        self._store: List[Event] = []
        self._links: List[ChainLink] = []
        self._counter: int = 0
        self._integrity: IntegrityLayer = IntegrityLayer()

    # -----------------------------------------------------------------------
    # SECTION 5.1 -- log_event
    # -----------------------------------------------------------------------

    def log_event(self, event_type: str, data: Dict[str, Any], timestamp: datetime) -> str:
        """
        Record one event atomically. Return the assigned event ID.

        Raises
        ------
        LoggingError : If event_type is empty, timestamp is not a datetime,
                       or the payload cannot be canonically encoded.
        """
        if not event_type:
            raise LoggingError("event_type must be a non-empty string")
        if timestamp is None:
            raise LoggingError("timestamp must be caller-supplied; None is not permitted")
        if not isinstance(timestamp, datetime):
            raise LoggingError(
                "timestamp must be a datetime instance; got: {}".format(type(timestamp))
            )
        if data is None:
            data = {}

        sanitized: Dict[str, Any] = _sanitize_value(dict(data))
        previous_hash = self._links[-1].current_hash if self._links else GENESIS_HASH
        try:
            link = self._integrity.link(event_type, sanitized, previous_hash)
        except (TypeError, ValueError) as exc:
            raise LoggingError(
                "event payload is not JSON-encodable: {}".format(exc)
            ) from exc

        self._counter += 1
        event = Event(
            id=_make_event_id(self._counter),
            type=event_type,
            timestamp=timestamp,
            data=sanitized,
            previous_hash=previous_hash,
            hash=link.current_hash,
        )
        self._links.append(link)
        self._store.append(event)
        return event.id

    def log_phase(self, phase: Phase, data: Dict[str, Any], timestamp: datetime) -> str:
        """Record completion of a phase checkpoint."""
        if not isinstance(phase, Phase):
            raise LoggingError("phase must be a Phase member; got: {!r}".format(phase))
        payload = dict(data or {})
        payload["phase"] = phase.value
        return self.log_event("PHASE_COMPLETE", payload, timestamp)

    # -----------------------------------------------------------------------
    # SECTION 5.2 -- queries
    # -----------------------------------------------------------------------

    def query_events(self, filter: EventFilter) -> List[Event]:
        """
        Events matching the filter, oldest first.

        Order of application: event_type, phase, start_time, end_time, limit.
        """
        if filter is None:
            raise LoggingError("filter must not be None")

        results: List[Event] = []
        for event in self._store:
            if filter.event_type is not None and event.type != filter.event_type:
                continue
            if filter.phase is not None and event.data.get("phase") != filter.phase.value:
                continue
            if filter.start_time is not None and event.timestamp < filter.start_time:
                continue
            if filter.end_time is not None and event.timestamp > filter.end_time:
                continue
            results.append(event)

        if filter.limit is not None:
            results = results[: filter.limit]
        return results

    def get_event_stream(self, start_time: datetime) -> Iterator[Event]:
        if not isinstance(start_time, datetime):
            raise LoggingError(
                "start_time must be a datetime instance; got: {}".format(type(start_time))
            )
        for event in self._store:
            if event.timestamp >= start_time:
                yield event

    def event_count(self) -> int:
        return len(self._store)

    def verify_chain(self) -> List[str]:
        """Recompute the hash chain. Empty list means intact."""
        return self._integrity.verify_chain(self._links)


# ===========================================================================
# SECTION 6 -- EXCEPTIONS
# ===========================================================================

class LoggingError(Exception):
    """
    Raised by EventLogger when an invariant is violated.

    Never silently swallowed: every caller of log_event() either handles
    LoggingError or lets it propagate.
    """


__all__ = [
    "Phase",
    "Event",
    "EventFilter",
    "EventLogger",
    "LoggingError",
]
