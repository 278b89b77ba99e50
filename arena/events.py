"""Event stream emitted while a suite runs.

Workers call an event sink (any callable taking a ``RunEvent``) that is
injected at construction. Sinks observe progress only; they never influence
control flow. Events from one model arrive in order; events from different
models interleave arbitrarily.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

logger = logging.getLogger(__name__)

EVENT_TYPES = ("run_start", "step_start", "step_complete", "run_complete", "error", "worker_idle")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class RunEvent:
    """One progress event. Only the fields relevant to ``type`` are set."""
    type: str
    model_id: str
    timestamp: str = field(default_factory=_now_iso)
    puzzle_id: Optional[str] = None
    run_id: Optional[str] = None
    step_index: Optional[int] = None
    total_steps: Optional[int] = None
    status: Optional[str] = None
    tokens: Optional[int] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    cost: Optional[float] = None
    latency_ms: Optional[float] = None
    error: Optional[str] = None

    def __post_init__(self):
        if self.type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {self.type!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


EventSink = Callable[[RunEvent], None]


def null_sink(event: RunEvent) -> None:
    pass


def fan_out(*sinks: Optional[EventSink]) -> EventSink:
    """Combine sinks into one that calls each in order. ``None`` entries are skipped."""
    active = [s for s in sinks if s is not None]

    def _emit(event: RunEvent) -> None:
        for sink in active:
            sink(event)

    return _emit


class EventLog:
    """Sink appending each event as one JSON line to ``events.jsonl``."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self.path, "a", encoding="utf-8")

    def __call__(self, event: RunEvent) -> None:
        self._file.write(json.dumps(event.to_dict()) + "\n")
        self._file.flush()

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()

    def __enter__(self) -> "EventLog":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
