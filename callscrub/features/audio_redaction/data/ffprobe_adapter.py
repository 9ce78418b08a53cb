import logging
import subprocess
from pathlib import Path
from typing import Optional

from callscrub.core.config.settings import settings
from callscrub.core.exceptions import EngineError
from ..domain.interfaces import IDurationProbe

logger = logging.getLogger(__name__)

class FFprobeAdapter(IDurationProbe):
    def __init__(self, ffprobe_binary: Optional[str] = None):
        self.ffprobe_binary = ffprobe_binary or settings.FFPROBE_BINARY

    def probe_duration(self, audio_path: Path) -> float:
        cmd = [
            self.ffprobe_binary,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(audio_path)
        ]

        try:
            result = subprocess.run(cmd, check=True, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise EngineError(f"ffprobe not found at {self.ffprobe_binary}", cause=e) from e
        except subprocess.CalledProcessError as e:
            error_message = e.stderr if e.stderr else "Unknown ffprobe error"
            logger.error(f"FFprobe Failed. STDERR: {error_message}")
            raise EngineError(f"Could not read duration of {audio_path.name}: {error_message}", stderr=error_message) from e

        try:
            return float(result.stdout.strip())
        except ValueError as e:
            raise EngineError(f"ffprobe returned no duration for {audio_path.name}", stderr=result.stderr) from e
