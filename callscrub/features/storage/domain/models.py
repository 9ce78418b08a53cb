from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from callscrub.core.common.enums import RecordingState

@dataclass(frozen=True)
class StoredAudio:
    """
    Audio artifact as held by the gateway: raw bytes plus content-type.
    """
    data: bytes
    content_type: str

    @property
    def size_bytes(self) -> int:
        return len(self.data)

@dataclass(frozen=True)
class StoredRecording:
    """
    Persisted metadata of a recording (terminal state, counts, error).
    """
    recording_id: str
    original_filename: Optional[str]
    duration_seconds: Optional[float]
    state: RecordingState
    error_category: Optional[str]
    error_message: Optional[str]
    sensitive_span_count: int
    saved: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
