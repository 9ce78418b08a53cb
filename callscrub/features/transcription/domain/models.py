# File: callscrub/features/transcription/domain/models.py
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

@dataclass(frozen=True)
class TranscriptWord:
    """
    Atomic unit of a spoken word.
    char_start/char_end index into the owning Transcript.text (end exclusive).
    """
    text: str
    start: float
    end: float
    confidence: float
    char_start: int
    char_end: int

@dataclass(frozen=True)
class Transcript:
    """
    The complete output of the speech-to-text provider.
    """
    text: str
    words: List[TranscriptWord] = field(default_factory=list)
    language: str = "unknown"
    duration_seconds: Optional[float] = None
    provider: str = "unknown"

    @classmethod
    def from_tokens(cls,
                    tokens: Iterable[Tuple[str, float, float, float]],
                    **kwargs) -> "Transcript":
        """
        Builds the transcript text by joining (text, start, end, confidence)
        tokens with single spaces, recording each word's character offsets.
        """
        parts: List[str] = []
        words: List[TranscriptWord] = []
        cursor = 0
        for text, start, end, confidence in tokens:
            text = text.strip()
            if not text:
                continue
            if parts:
                parts.append(" ")
                cursor += 1
            parts.append(text)
            words.append(TranscriptWord(
                text=text,
                start=float(start),
                end=float(end),
                confidence=float(confidence),
                char_start=cursor,
                char_end=cursor + len(text)
            ))
            cursor += len(text)

        return cls(text="".join(parts), words=words, **kwargs)
