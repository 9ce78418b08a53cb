import logging
import time
from pathlib import Path
from threading import Event, Thread
from typing import Optional

from callscrub.core.config.settings import settings
from callscrub.core.exceptions import ConfigurationError, JobCancelledError, TranscriptionError
from ..domain.interfaces import ITranscriptionClient
from ..domain.models import Transcript

logger = logging.getLogger(__name__)

# How often a cancel is noticed while a provider call is in flight
CANCEL_POLL_SECONDS = 0.1


def get_transcription_client(backend: Optional[str] = None) -> ITranscriptionClient:
    """
    Returns the configured speech-to-text adapter.
    Uses lazy imports so the whisper dependency is only needed when selected.
    """
    backend = (backend or settings.TRANSCRIPTION_BACKEND).lower()

    if backend == "deepgram":
        from ..data.deepgram_adapter import DeepgramAdapter
        return DeepgramAdapter()

    elif backend == "whisper":
        from ..data.whisper_adapter import WhisperAdapter
        return WhisperAdapter()

    raise ConfigurationError(f"Unknown transcription backend: {backend}")


def transcribe_with_retry(client: ITranscriptionClient,
                          audio_path: Path,
                          cancel_token=None,
                          max_attempts: Optional[int] = None,
                          backoff_seconds: Optional[float] = None) -> Transcript:
    """
    Calls the provider, retrying transient failures with exponential backoff.
    Permanent failures (format rejected, bad credentials) are raised immediately.
    With a cancel_token, both the provider call and the backoff waits end early on cancel.
    """
    max_attempts = settings.TRANSCRIPTION_MAX_ATTEMPTS if max_attempts is None else max_attempts
    if max_attempts < 1:
        raise ConfigurationError(f"max_attempts must be at least 1, got {max_attempts}")
    delay = settings.TRANSCRIPTION_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds

    attempt = 1
    while True:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        try:
            if cancel_token is None:
                return client.transcribe(audio_path)
            return _transcribe_cancellable(client, audio_path, cancel_token)
        except TranscriptionError as e:
            if not e.transient or attempt >= max_attempts:
                if e.transient:
                    logger.error(f"Transcription failed after {attempt} attempts: {e}")
                    e.message = f"{e.message} (after {attempt} attempts)"
                raise

            logger.warning(f"Transcription attempt {attempt}/{max_attempts} failed: {e}. Retrying in {delay:.1f}s")
            if cancel_token is not None:
                if cancel_token.wait(delay):
                    raise JobCancelledError("Cancelled while waiting to retry transcription.") from e
            else:
                time.sleep(delay)

            attempt += 1
            delay *= 2


def _transcribe_cancellable(client: ITranscriptionClient, audio_path: Path, cancel_token) -> Transcript:
    """
    Runs one provider call on a helper thread and waits for either its result or the cancel.
    A cancelled call is abandoned: it finishes in the background and its result is dropped.
    """
    done = Event()
    outcome = {}

    def _call():
        try:
            outcome["transcript"] = client.transcribe(audio_path)
        except Exception as e:
            outcome["error"] = e
        finally:
            done.set()

    Thread(target=_call, name=f"transcribe-{Path(audio_path).stem}", daemon=True).start()

    while not done.wait(CANCEL_POLL_SECONDS):
        if cancel_token.cancelled:
            logger.info(f"Abandoning in-flight transcription of {Path(audio_path).name}")
            raise JobCancelledError("Cancelled while waiting for transcription.")

    if "error" in outcome:
        raise outcome["error"]
    return outcome["transcript"]
