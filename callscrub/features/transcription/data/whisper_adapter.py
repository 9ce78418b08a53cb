# File: callscrub/features/transcription/data/whisper_adapter.py
import logging
from pathlib import Path
from threading import Lock
from typing import Optional

import whisper

from callscrub.core.config.settings import settings
from callscrub.core.exceptions import TranscriptionError
from ..domain.interfaces import ITranscriptionClient
from ..domain.models import Transcript

logger = logging.getLogger(__name__)


class WhisperAdapter(ITranscriptionClient):
    """
    Local transcription with openai-whisper.
    The loaded model is shared per process; only one model size is kept in memory.
    """
    _lock = Lock()
    _loaded_name: Optional[str] = None
    _loaded_model = None

    def __init__(self, model_size: Optional[str] = None, device: Optional[str] = None):
        self.model_size = model_size or settings.WHISPER_MODEL_NAME
        self.device = device or settings.WHISPER_DEVICE

    def _request_model(self):
        cls = type(self)
        with cls._lock:
            if cls._loaded_name == self.model_size and cls._loaded_model is not None:
                return cls._loaded_model

            logger.info(f"Loading Whisper {self.model_size} on {self.device}...")
            cls._loaded_model = whisper.load_model(self.model_size, device=self.device)
            cls._loaded_name = self.model_size
            return cls._loaded_model

    def transcribe(self, audio_path: Path) -> Transcript:
        logger.info(f"Requesting Whisper ({self.model_size}) for {audio_path}...")

        model = self._request_model()
        try:
            result_raw = model.transcribe(
                str(audio_path),
                fp16=(self.device == "cuda"),
                word_timestamps=True
            )
        except RuntimeError as e:
            # Whisper surfaces undecodable input as a RuntimeError from ffmpeg loading
            raise TranscriptionError(f"Whisper could not transcribe {audio_path}: {e}", transient=False, cause=e) from e

        tokens = []
        for seg in result_raw.get("segments", []):
            for w in seg.get("words", []):
                tokens.append((w["word"], w["start"], w["end"], w.get("probability", 1.0)))

        return Transcript.from_tokens(
            tokens,
            language=result_raw.get("language", "unknown"),
            # Segment ends stop at the last speech, not the end of the file;
            # leave duration unknown so the audio engine probes it.
            duration_seconds=None,
            provider=f"whisper-{self.model_size}"
        )
