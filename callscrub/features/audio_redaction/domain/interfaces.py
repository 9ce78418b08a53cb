from abc import ABC, abstractmethod
from pathlib import Path
from .models import RedactionOutcome, RedactionRequest

class IAudioRedactor(ABC):
    """
    Contract for the audio redaction engine.
    Abstracts away the underlying tool (FFmpeg) from the business logic.
    """

    @abstractmethod
    def redact(self, request: RedactionRequest, cancel_token=None) -> RedactionOutcome:
        """
        Silences every time range of the request, keeping total duration.
        Out-of-bounds ranges are clamped to [0, duration].

        Raises:
            EngineError: If the tool fails or produces no output (partial output removed).
            JobCancelledError: If cancel_token fires while the tool runs.
        """
        pass

class IDurationProbe(ABC):
    @abstractmethod
    def probe_duration(self, audio_path: Path) -> float:
        """Returns the audio duration in seconds."""
        pass
