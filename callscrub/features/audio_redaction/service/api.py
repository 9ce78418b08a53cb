import logging
from pathlib import Path
from typing import Optional, Sequence

from callscrub.core.exceptions import EngineError
from callscrub.core.shared_types import MediaFile, TimeRange
from ..data.ffmpeg_adapter import FFmpegRedactionAdapter
from ..domain.models import RedactionOutcome, RedactionRequest

logger = logging.getLogger(__name__)


def redact_audio(source_path: str,
                 time_ranges: Sequence[TimeRange],
                 dest_path: str,
                 duration_seconds: Optional[float] = None) -> RedactionOutcome:
    """
    Public Service API: silence the given intervals of an audio file.
    Does NOT interact with the database.

    Returns a failed outcome (with reason) instead of raising on engine errors.
    """
    request = RedactionRequest(
        source_audio=MediaFile(Path(source_path), validate_exists=True),
        output_audio=MediaFile(Path(dest_path)),
        time_ranges=list(time_ranges),
        duration_seconds=duration_seconds
    )

    try:
        return FFmpegRedactionAdapter().redact(request)
    except EngineError as e:
        logger.error(f"Audio redaction failed for {source_path}: {e}")
        return RedactionOutcome(success=False, reason=str(e))
