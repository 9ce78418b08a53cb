from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from callscrub.core.shared_types import MediaFile, TimeRange

@dataclass(frozen=True)
class RedactionRequest:
    """
    Domain entity describing the intent to silence intervals of a recording.
    """
    source_audio: MediaFile
    output_audio: MediaFile
    time_ranges: List[TimeRange] = field(default_factory=list)
    # Known duration (e.g. from the transcript); probed when missing
    duration_seconds: Optional[float] = None

    def __post_init__(self):
        if not self.source_audio.exists():
            raise FileNotFoundError(f"Source audio missing: {self.source_audio.path}")
        if self.source_audio.path.resolve() == self.output_audio.path.resolve():
            raise ValueError("Output audio must not overwrite the source.")

@dataclass
class RedactionOutcome:
    """
    success=True with the produced file, or success=False with a reason.
    """
    success: bool
    output_path: Optional[Path] = None
    applied_ranges: List[TimeRange] = field(default_factory=list)
    duration_seconds: Optional[float] = None
    reason: Optional[str] = None
