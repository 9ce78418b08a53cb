from concurrent.futures import Future
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from threading import Event
from typing import List, Optional

from callscrub.core.common.enums import FailureCategory, RecordingState
from callscrub.core.jobs.cancellation import CancellationToken
from callscrub.core.shared_types import TimeRange

def utc_now():
    return datetime.now(timezone.utc)

# The only legal forward path; FAILED is reachable from any non-terminal state.
PIPELINE_ORDER = (
    RecordingState.QUEUED,
    RecordingState.TRANSCRIBING,
    RecordingState.DETECTING,
    RecordingState.REDACTING,
    RecordingState.DONE,
)

class InvalidTransitionError(ValueError):
    pass

@dataclass(frozen=True)
class StateChange:
    state: RecordingState
    at: datetime
    detail: Optional[str] = None

@dataclass(frozen=True)
class StatusEvent:
    """
    One entry of the log feed: a recording entered a state.
    """
    recording_id: str
    job_id: str
    state: RecordingState
    at: datetime
    detail: Optional[str] = None

@dataclass
class Recording:
    """
    Processing state of one uploaded recording.
    Only the JobCoordinator mutates it, through the JobStateStore.
    """
    recording_id: str
    original_filename: Optional[str] = None
    duration_seconds: Optional[float] = None
    state: RecordingState = RecordingState.QUEUED
    error_category: Optional[FailureCategory] = None
    error_detail: Optional[str] = None
    failed_stage: Optional[str] = None
    sensitive_span_count: int = 0
    saved: bool = False
    created_at: datetime = field(default_factory=utc_now)
    updated_at: Optional[datetime] = None
    history: List[StateChange] = field(default_factory=list)

    def __post_init__(self):
        if not self.recording_id or not str(self.recording_id).strip():
            raise ValueError("Recording id cannot be empty.")
        if not self.history:
            self.history.append(StateChange(self.state, self.created_at))
        if self.updated_at is None:
            self.updated_at = self.created_at

    def advance(self, new_state: RecordingState, detail: Optional[str] = None) -> StateChange:
        """Moves exactly one step along PIPELINE_ORDER."""
        if self.state.is_terminal:
            raise InvalidTransitionError(f"{self.recording_id} is already {self.state.value}.")
        expected = PIPELINE_ORDER[PIPELINE_ORDER.index(self.state) + 1]
        if new_state != expected:
            raise InvalidTransitionError(
                f"{self.recording_id}: cannot go from {self.state.value} to {new_state.value} (next is {expected.value})."
            )
        return self._enter(new_state, detail)

    def fail(self, category: FailureCategory, detail: str, stage: Optional[str] = None) -> StateChange:
        if self.state.is_terminal:
            raise InvalidTransitionError(f"{self.recording_id} is already {self.state.value}.")
        self.failed_stage = stage or self.state.value
        self.error_category = category
        self.error_detail = detail
        return self._enter(RecordingState.FAILED, f"{category.value}: {detail}")

    def snapshot(self) -> "Recording":
        """Detached copy safe to hand to other threads."""
        return replace(self, history=list(self.history))

    def _enter(self, state: RecordingState, detail: Optional[str]) -> StateChange:
        change = StateChange(state, utc_now(), detail)
        self.state = state
        self.updated_at = change.at
        self.history.append(change)
        return change

    @property
    def states(self) -> List[RecordingState]:
        return [c.state for c in self.history]

@dataclass
class RedactionJob:
    """
    In-flight unit of work for one recording.
    Owned by the coordinator; temp_dir exists only while the pipeline runs.
    """
    job_id: str
    recording: Recording
    source_path: Path
    token: CancellationToken = field(default_factory=CancellationToken)
    finished: Event = field(default_factory=Event)
    future: Optional[Future] = None
    temp_dir: Optional[Path] = None
    spans: list = field(default_factory=list)
    time_ranges: List[TimeRange] = field(default_factory=list)
    persistence_failures: List[str] = field(default_factory=list)
    artifacts_saved: bool = False
    # Set by whichever thread publishes the terminal state first
    completed: bool = False

    @property
    def recording_id(self) -> str:
        return self.recording.recording_id
