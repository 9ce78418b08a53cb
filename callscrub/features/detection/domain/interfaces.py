from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from callscrub.features.transcription.domain.models import TranscriptWord
from .models import SensitiveSpan

class IPatternDetector(ABC):
    """
    Contract for locating sensitive information in transcript text.
    """
    @abstractmethod
    def detect(self, text: str, words: Optional[Sequence[TranscriptWord]] = None) -> List[SensitiveSpan]:
        """
        Scans the text and returns candidate spans ordered by character offset.
        Overlapping matches from different categories are all returned.

        Raises:
            DetectionError: If the transcript input is malformed.
        """
        pass
