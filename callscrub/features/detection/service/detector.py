import logging
import re
from typing import List, Optional, Sequence, Tuple

from callscrub.core.config.logging import mask_digits
from callscrub.core.config.settings import settings
from callscrub.core.exceptions import DetectionError
from callscrub.features.transcription.domain.models import TranscriptWord
from ..data.rule_loader import load_rule_set
from ..data.validators import VALIDATORS
from ..domain.interfaces import IPatternDetector
from ..domain.models import RuleSet, SensitiveSpan

logger = logging.getLogger(__name__)

# Already-redacted markers, bracketed annotations ([inaudible]) and symbol noise.
NOISE_PATTERN = re.compile(r"\[[^\]]*\]|<[^>]*>|[*#]{2,}")


class PatternDetector(IPatternDetector):
    """
    Applies every rule of the RuleSet to the transcript text.
    Does not merge overlaps; that happens once time ranges are known.
    """

    def __init__(self, rule_set: Optional[RuleSet] = None, min_confidence: Optional[float] = None):
        self.rule_set = rule_set or load_rule_set()
        if min_confidence is not None:
            self.min_confidence = min_confidence
        elif settings.MIN_WORD_CONFIDENCE is not None:
            self.min_confidence = settings.MIN_WORD_CONFIDENCE
        else:
            self.min_confidence = self.rule_set.min_confidence

    def detect(self, text: str, words: Optional[Sequence[TranscriptWord]] = None) -> List[SensitiveSpan]:
        self._validate(text, words)

        noise = [(m.start(), m.end()) for m in NOISE_PATTERN.finditer(text)]
        spans: List[SensitiveSpan] = []

        for rule in self.rule_set.rules:
            check = VALIDATORS.get(rule.validator) if rule.validator else None

            for match in rule.regex.finditer(text):
                start, end = match.start(), match.end()
                if start == end:
                    continue
                if self._touches_noise(start, end, noise):
                    continue
                if check is not None and not check(match.group()):
                    continue

                if words and not self._confident(start, end, words):
                    logger.debug(f"Dropped low-confidence {rule.category} match '{mask_digits(match.group())}'")
                    continue

                spans.append(SensitiveSpan(category=rule.category, char_start=start, char_end=end))

        spans.sort(key=lambda s: (s.char_start, s.char_end, s.category))

        if spans:
            logger.info(f"Detected {len(spans)} sensitive spans ({', '.join(sorted({s.category for s in spans}))})")
        return spans

    @staticmethod
    def _touches_noise(start: int, end: int, noise: List[Tuple[int, int]]) -> bool:
        # Adjacent counts: "##123-45-6789" is one noise token
        return any(n_start <= end and start <= n_end for n_start, n_end in noise)

    def _confident(self, start: int, end: int, words: Sequence[TranscriptWord]) -> bool:
        """
        Mean confidence of the words covering [start, end).
        Spans with no covering word are kept; the mapper reports them.
        """
        covering = [w.confidence for w in words if w.char_start < end and start < w.char_end]
        if not covering:
            return True
        return (sum(covering) / len(covering)) >= self.min_confidence

    @staticmethod
    def _validate(text: str, words: Optional[Sequence[TranscriptWord]]) -> None:
        if not isinstance(text, str):
            raise DetectionError(f"Transcript text must be a string, got {type(text).__name__}.")

        for i, w in enumerate(words or []):
            if not (0 <= w.char_start <= w.char_end <= len(text)):
                raise DetectionError(
                    f"Word #{i} offsets {w.char_start}-{w.char_end} fall outside transcript of length {len(text)}."
                )
            if w.start < 0 or w.end < w.start:
                raise DetectionError(f"Word #{i} has invalid timing {w.start}-{w.end}.")
