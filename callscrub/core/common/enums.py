# File: callscrub/core/common/enums.py

from enum import Enum, unique

@unique
class RecordingState(str, Enum):
    QUEUED = "queued"
    TRANSCRIBING = "transcribing"
    DETECTING = "detecting"
    REDACTING = "redacting"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RecordingState.DONE, RecordingState.FAILED)

@unique
class FailureCategory(str, Enum):
    CAPACITY = "capacity"
    TRANSCRIPTION = "transcription"
    DETECTION = "detection"
    ENGINE = "engine"
    PERSISTENCE = "persistence"
    CANCELLED = "cancelled"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"

@unique
class ArtifactKind(str, Enum):
    ORIGINAL = "original"
    REDACTED = "redacted"
