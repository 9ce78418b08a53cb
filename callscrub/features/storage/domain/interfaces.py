from abc import ABC, abstractmethod
from typing import Optional
from .models import StoredAudio, StoredRecording

class IPersistenceGateway(ABC):
    """
    Stores and retrieves recording artifacts keyed by recording id.
    A missing artifact is a normal result (None), never an error.
    Storage failures raise PersistenceError.
    """

    @abstractmethod
    def store_original(self, recording_id: str, data: bytes, content_type: str) -> None:
        pass

    @abstractmethod
    def store_redacted(self, recording_id: str, data: bytes, content_type: str) -> None:
        pass

    @abstractmethod
    def store_transcript(self, recording_id: str, text: str) -> None:
        pass

    @abstractmethod
    def store_redaction_result(self, recording_id: str, audio: bytes, content_type: str, transcript: str) -> None:
        """Redacted audio and transcript in one transaction: both are written or neither."""
        pass

    @abstractmethod
    def get_original(self, recording_id: str) -> Optional[StoredAudio]:
        pass

    @abstractmethod
    def get_redacted(self, recording_id: str) -> Optional[StoredAudio]:
        pass

    @abstractmethod
    def get_transcript(self, recording_id: str) -> Optional[str]:
        pass

    @abstractmethod
    def save_recording(self, recording) -> None:
        """Upserts recording metadata from a Recording snapshot."""
        pass

    @abstractmethod
    def get_recording(self, recording_id: str) -> Optional[StoredRecording]:
        pass
