from abc import ABC, abstractmethod
from pathlib import Path
from .models import Transcript

class ITranscriptionClient(ABC):
    """
    Contract for any speech-to-text provider.
    Allows us to swap Deepgram for a local Whisper model or any other backend.
    """
    @abstractmethod
    def transcribe(self, audio_path: Path) -> Transcript:
        """
        Transcribes the audio file at the given path.

        Args:
            audio_path: Path to the audio file.

        Returns:
            Transcript with word-level timings and character offsets.

        Raises:
            TranscriptionError: transient=True for network/service hiccups,
                                transient=False when the input is rejected.
        """
        pass
