"""Stage observers used to report timing and outcomes of pipeline steps."""

from __future__ import annotations

import json
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Mapping, Protocol

__all__ = [
    "LoggingObserver",
    "NullObserver",
    "RecordingObserver",
    "StageEvent",
    "StageObserver",
    "timed_stage",
]

TELEMETRY_LOGGER = logging.getLogger("contentpatch.telemetry")


class StageObserver(Protocol):
    """Receives one callback per completed pipeline stage."""

    def on_stage_complete(self, stage: str, duration_ms: float, outcome: str, **details: Any) -> None:
        ...


def _serialise_event_value(value: Any) -> Any:
    """Convert telemetry payload values into JSON-friendly representations."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, (list, tuple, set)):
        return [_serialise_event_value(item) for item in value]
    if isinstance(value, Mapping):
        return {str(key): _serialise_event_value(child) for key, child in value.items()}
    return str(value)


class LoggingObserver:
    """Emit each stage as a compact JSON line on the telemetry logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or TELEMETRY_LOGGER

    def on_stage_complete(self, stage: str, duration_ms: float, outcome: str, **details: Any) -> None:
        payload: dict[str, Any] = {
            "event": stage,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "duration_ms": round(duration_ms, 2),
            "outcome": _serialise_event_value(outcome),
        }
        for key, value in details.items():
            payload[key] = _serialise_event_value(value)
        self._logger.info(json.dumps(payload, separators=(",", ":"), ensure_ascii=True))


class NullObserver:
    """Discard every event."""

    def on_stage_complete(self, stage: str, duration_ms: float, outcome: str, **details: Any) -> None:
        return None


@dataclass(slots=True)
class StageEvent:
    stage: str
    duration_ms: float
    outcome: str
    details: dict[str, Any] = field(default_factory=dict)


class RecordingObserver:
    """Keep events in memory, mostly for tests and CLI summaries."""

    def __init__(self) -> None:
        self.events: list[StageEvent] = []

    def on_stage_complete(self, stage: str, duration_ms: float, outcome: str, **details: Any) -> None:
        self.events.append(StageEvent(stage, duration_ms, str(_serialise_event_value(outcome)), dict(details)))

    def outcomes(self, stage: str) -> list[str]:
        return [event.outcome for event in self.events if event.stage == stage]


@contextmanager
def timed_stage(observer: StageObserver, stage: str, **details: Any) -> Iterator[dict[str, Any]]:
    """Time a block and report it; the block sets ``state["outcome"]``.

    Exceptions escaping the block are reported with outcome ``error`` and
    re-raised.
    """
    state: dict[str, Any] = {"outcome": "ok"}
    started = time.perf_counter()
    try:
        yield state
    except Exception as error:
        state["outcome"] = "error"
        state["error"] = str(error)
        raise
    finally:
        elapsed = (time.perf_counter() - started) * 1000.0
        extra = {**details, **{key: value for key, value in state.items() if key != "outcome"}}
        observer.on_stage_complete(stage, elapsed, state["outcome"], **extra)
