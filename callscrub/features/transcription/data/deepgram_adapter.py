# File: callscrub/features/transcription/data/deepgram_adapter.py
import logging
import mimetypes
from pathlib import Path
from typing import Optional

import requests

from callscrub.core.config.settings import settings
from callscrub.core.exceptions import ConfigurationError, TranscriptionError
from ..domain.interfaces import ITranscriptionClient
from ..domain.models import Transcript

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = {408, 429}


class DeepgramAdapter(ITranscriptionClient):
    """
    Pre-recorded transcription through the Deepgram REST API.
    """

    def __init__(self,
                 api_key: Optional[str] = None,
                 url: Optional[str] = None,
                 model: Optional[str] = None,
                 timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.api_key = api_key or settings.DEEPGRAM_API_KEY
        self.url = url or settings.DEEPGRAM_URL
        self.model = model or settings.DEEPGRAM_MODEL
        self.timeout = settings.TRANSCRIPTION_TIMEOUT_SECONDS if timeout is None else timeout
        if self.timeout <= 0:
            raise ConfigurationError(f"Deepgram timeout must be positive, got {self.timeout}")
        self.session = session or requests.Session()

    def transcribe(self, audio_path: Path) -> Transcript:
        if not self.api_key:
            raise TranscriptionError("DEEPGRAM_API_KEY is not configured.", transient=False)

        audio_path = Path(audio_path)
        content_type = mimetypes.guess_type(str(audio_path))[0] or "application/octet-stream"
        params = {
            "model": self.model,
            "punctuate": "true",
            "smart_format": "true",
        }
        headers = {
            "Authorization": f"Token {self.api_key}",
            "Content-Type": content_type,
        }

        logger.info(f"Requesting Deepgram ({self.model}) for {audio_path.name}...")

        try:
            with open(audio_path, "rb") as audio:
                response = self.session.post(
                    self.url,
                    params=params,
                    headers=headers,
                    data=audio,
                    timeout=self.timeout
                )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TranscriptionError(f"Deepgram unreachable: {e}", transient=True, cause=e) from e
        except OSError as e:
            raise TranscriptionError(f"Cannot read audio file: {e}", transient=False, cause=e) from e

        status = response.status_code
        if status >= 400:
            transient = status in TRANSIENT_STATUS_CODES or status >= 500
            raise TranscriptionError(
                f"Deepgram returned HTTP {status}: {response.text[:500]}",
                transient=transient,
                status_code=status
            )

        try:
            return self._parse(response.json())
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise TranscriptionError(f"Unexpected Deepgram response: {e}", transient=False, cause=e) from e

    def _parse(self, payload: dict) -> Transcript:
        alternative = payload["results"]["channels"][0]["alternatives"][0]

        tokens = [
            (
                w.get("punctuated_word") or w["word"],
                w["start"],
                w["end"],
                w.get("confidence", 1.0)
            )
            for w in alternative.get("words", [])
        ]

        metadata = payload.get("metadata") or {}
        duration = metadata.get("duration")

        transcript = Transcript.from_tokens(
            tokens,
            language=payload["results"]["channels"][0].get("detected_language", "en"),
            duration_seconds=float(duration) if duration is not None else None,
            provider="deepgram"
        )
        logger.info(f"Deepgram transcript received: {len(transcript.words)} words")
        return transcript
