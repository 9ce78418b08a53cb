from dataclasses import dataclass
from pathlib import Path
from typing import Optional

@dataclass(frozen=True)
class TimeRange:
    """
    Value Object representing a valid span of audio time, in seconds.
    Enforces that start_seconds is strictly before end_seconds.
    """
    start_seconds: float
    end_seconds: float

    def __post_init__(self):
        if self.start_seconds < 0 or self.end_seconds < 0:
            raise ValueError("Timestamps cannot be negative.")
        if self.start_seconds >= self.end_seconds:
            raise ValueError(f"Start time ({self.start_seconds}) must be before end time ({self.end_seconds}).")

    @property
    def duration(self) -> float:
        return self.end_seconds - self.start_seconds

    def clamp(self, duration: float) -> Optional["TimeRange"]:
        """
        Restricts the range to [0, duration].
        Returns None if nothing of the range is left inside the audio.
        """
        start = max(0.0, self.start_seconds)
        end = min(duration, self.end_seconds)
        if start >= end:
            return None
        if start == self.start_seconds and end == self.end_seconds:
            return self
        return TimeRange(start, end)

@dataclass(frozen=True)
class MediaFile:
    """
    Entity representing a media file on the filesystem.
    Encapsulates path validation and directory creation.
    """
    path: Path
    validate_exists: bool = False

    def __post_init__(self):
        if str(self.path).strip() == "." or str(self.path).strip() == "":
            raise ValueError("File path cannot be empty.")
        if self.validate_exists:
            if not self.path.exists():
                raise FileNotFoundError(f"Media file not found: {self.path}")
            if not self.path.is_file():
                raise ValueError(f"Path is not a file: {self.path}")

    def exists(self) -> bool:
        return self.path.exists()

    def size_bytes(self) -> int:
        return self.path.stat().st_size

    def ensure_parent_dir(self) -> None:
        """Creates the directory structure for this file if it doesn't exist."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def remove(self) -> None:
        """Deletes the file if present (partial outputs, temp copies)."""
        self.path.unlink(missing_ok=True)
