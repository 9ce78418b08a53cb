import logging
from collections import OrderedDict, deque
from threading import RLock
from typing import Dict, List, Optional

from callscrub.core.common.enums import RecordingState
from callscrub.core.config.settings import settings
from ..domain.models import RedactionJob, Recording, StatusEvent

logger = logging.getLogger(__name__)

class JobStateStore:
    """
    Owned replacement for ambient job/log lists.
    Jobs live in `active` from submit until their terminal state, then
    their final Recording moves to a bounded archive.
    """

    def __init__(self, history_limit: Optional[int] = None):
        self.history_limit = settings.STATUS_HISTORY_LIMIT if history_limit is None else history_limit
        if self.history_limit < 1:
            raise ValueError("history_limit must be at least 1.")
        self._lock = RLock()
        self._active: Dict[str, RedactionJob] = {}
        self._archive: "OrderedDict[str, Recording]" = OrderedDict()
        self._events = deque(maxlen=self.history_limit * 8)

    def add(self, job: RedactionJob) -> Recording:
        with self._lock:
            if job.recording_id in self._active:
                raise ValueError(f"Recording {job.recording_id} is already being processed.")
            # A resubmitted id replaces its archived result
            self._archive.pop(job.recording_id, None)
            self._active[job.recording_id] = job
            self._record(job, job.recording.history[-1].detail)
            return job.recording.snapshot()

    def get_job(self, recording_id: str) -> Optional[RedactionJob]:
        with self._lock:
            return self._active.get(recording_id)

    def active_jobs(self) -> List[RedactionJob]:
        with self._lock:
            return list(self._active.values())

    def advance(self, recording_id: str, state: RecordingState, detail: Optional[str] = None) -> Recording:
        with self._lock:
            job = self._active[recording_id]
            job.recording.advance(state, detail)
            self._record(job, detail)
            return job.recording.snapshot()

    def update(self, recording_id: str, **fields) -> Recording:
        """Sets non-state attributes (duration, span count, saved flag)."""
        with self._lock:
            recording = self._active[recording_id].recording
            for name, value in fields.items():
                if name in ("state", "history"):
                    raise ValueError(f"Use advance/finish to change {name}.")
                setattr(recording, name, value)
            return recording.snapshot()

    def snapshot(self, recording_id: str) -> Recording:
        with self._lock:
            return self._active[recording_id].recording.snapshot()

    def finish(self, recording_id: str, terminal: Recording) -> Recording:
        """
        Installs the terminal Recording and archives it in one step, so no
        observer sees the job both terminal and active.
        """
        if not terminal.state.is_terminal:
            raise ValueError(f"{terminal.state.value} is not a terminal state.")
        with self._lock:
            job = self._active.pop(recording_id)
            job.recording = terminal
            self._archive[recording_id] = terminal
            while len(self._archive) > self.history_limit:
                self._archive.popitem(last=False)
            self._record(job, terminal.history[-1].detail)
            return terminal.snapshot()

    def get(self, recording_id: str) -> Optional[Recording]:
        with self._lock:
            job = self._active.get(recording_id)
            if job is not None:
                return job.recording.snapshot()
            archived = self._archive.get(recording_id)
            return archived.snapshot() if archived else None

    def list_recordings(self) -> List[Recording]:
        with self._lock:
            recordings = [r.snapshot() for r in self._archive.values()]
            recordings += [j.recording.snapshot() for j in self._active.values()]
        return sorted(recordings, key=lambda r: r.created_at)

    def recent_events(self, limit: Optional[int] = None) -> List[StatusEvent]:
        with self._lock:
            events = list(self._events)
        return events[-limit:] if limit else events

    def _record(self, job: RedactionJob, detail: Optional[str]) -> None:
        recording = job.recording
        self._events.append(StatusEvent(
            recording_id=recording.recording_id,
            job_id=job.job_id,
            state=recording.state,
            at=recording.updated_at,
            detail=detail
        ))
        logger.info(f"[{job.job_id[:8]}] {recording.recording_id} -> {recording.state.value}"
                    + (f" ({detail})" if detail else ""))
