"""
Probe Job Models
================
State of one concurrent PIN search. A job is mutated only by its own batch loop;
callers read it through ``snapshot()``.
"""

import asyncio
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, Optional


class ProbeStatus(Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FOUND = "found"


ACTIVE_PROBE_STATUSES = frozenset({ProbeStatus.RUNNING, ProbeStatus.STOPPING})


@dataclass(frozen=True)
class FoundPin:
    pin: str
    play_id: Optional[str]
    raw_response: Any

    def to_dict(self) -> Dict[str, Any]:
        return {"pin": self.pin, "play_id": self.play_id, "raw_response": self.raw_response}


@dataclass
class ProbeJob:
    start_value: int
    owner: str
    log_max_entries: int = 100
    job_id: str = field(default_factory=lambda: f"probe_{uuid.uuid4().hex[:12]}")
    current_value: int = 0
    last_candidate: Optional[str] = None
    status: ProbeStatus = ProbeStatus.IDLE
    found: Optional[FoundPin] = None
    batches_completed: int = 0
    candidates_checked: int = 0
    created_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    log: Deque[str] = field(init=False)
    stop_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    def __post_init__(self):
        self.current_value = self.start_value
        self.log = deque(maxlen=self.log_max_entries)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_PROBE_STATUSES

    @property
    def stop_requested(self) -> bool:
        return self.stop_event.is_set()

    def append_log(self, entry: str) -> None:
        self.log.append(entry)

    def request_stop(self) -> bool:
        """Flag the job for cancellation. Returns False if it was not running."""
        if self.status != ProbeStatus.RUNNING:
            return False
        self.status = ProbeStatus.STOPPING
        self.stop_event.set()
        return True

    def finish(self, status: ProbeStatus) -> None:
        self.status = status
        self.finished_at = time.time()

    def snapshot(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "owner": self.owner,
            "status": self.status.value,
            "start_value": self.start_value,
            "current_value": self.current_value,
            "last_candidate": self.last_candidate,
            "found": self.found.to_dict() if self.found else None,
            "batches_completed": self.batches_completed,
            "candidates_checked": self.candidates_checked,
            "created_at": self.created_at,
            "finished_at": self.finished_at,
            "log": list(self.log),
        }
