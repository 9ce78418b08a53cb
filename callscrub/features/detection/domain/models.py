import re
from dataclasses import dataclass, field, replace
from typing import List, Optional

from callscrub.core.shared_types import TimeRange

@dataclass(frozen=True)
class PatternRule:
    """
    One category-specific textual pattern, loaded from the rule file.
    """
    category: str
    regex: re.Pattern
    validator: Optional[str] = None
    description: str = ""

@dataclass(frozen=True)
class RuleSet:
    """
    Versioned, data-driven redaction configuration.
    """
    version: str
    rules: List[PatternRule] = field(default_factory=list)
    min_confidence: float = 0.0
    mask_template: str = "[REDACTED {label}]"

    @property
    def categories(self) -> List[str]:
        return [r.category for r in self.rules]

@dataclass(frozen=True)
class SensitiveSpan:
    """
    A character-offset range [char_start, char_end) flagged as sensitive.
    time_range is filled in by the TimeRangeMapper.
    """
    category: str
    char_start: int
    char_end: int
    time_range: Optional[TimeRange] = None

    def __post_init__(self):
        if self.char_start < 0 or self.char_end <= self.char_start:
            raise ValueError(f"Invalid span offsets: {self.char_start}-{self.char_end}")

    def with_time_range(self, time_range: TimeRange) -> "SensitiveSpan":
        return replace(self, time_range=time_range)
