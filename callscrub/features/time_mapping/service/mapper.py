import bisect
import logging
from typing import List, Optional, Sequence

from callscrub.core.config.settings import settings
from callscrub.core.shared_types import TimeRange
from callscrub.features.detection.domain.models import SensitiveSpan
from callscrub.features.transcription.domain.models import TranscriptWord

logger = logging.getLogger(__name__)

# Rounding to microseconds drops float noise like 3.0500000000000003
_PRECISION = 6


class TimeRangeMapper:
    """
    Converts character-offset spans into padded, merged audio time ranges.

    Word confidence plays no part here: every word covering a span contributes
    its timing. Confidence gating happens in the detector.
    """

    def __init__(self, guard_interval: Optional[float] = None, min_gap: Optional[float] = None):
        self.guard_interval = settings.GUARD_INTERVAL_SECONDS if guard_interval is None else guard_interval
        self.min_gap = settings.MIN_GAP_SECONDS if min_gap is None else min_gap
        if self.guard_interval < 0 or self.min_gap < 0:
            raise ValueError("guard_interval and min_gap must be non-negative.")

    def map_spans(self,
                  words: Sequence[TranscriptWord],
                  spans: Sequence[SensitiveSpan],
                  duration: Optional[float] = None) -> List[SensitiveSpan]:
        """
        Attaches a padded time range to every span that has at least one covering word.
        Spans without a covering word are logged and left out.
        """
        ordered_words = sorted(words, key=lambda w: w.char_end)
        ends = [w.char_end for w in ordered_words]

        mapped: List[SensitiveSpan] = []
        for span in spans:
            # First word whose char_end is past the span start; scan forward from there
            idx = bisect.bisect_right(ends, span.char_start)
            covering = [
                w for w in ordered_words[idx:]
                if w.char_start < span.char_end and span.char_start < w.char_end
            ]

            if not covering:
                logger.warning(
                    f"No transcript word covers {span.category} span at chars {span.char_start}-{span.char_end}; "
                    f"skipping audio redaction for it."
                )
                continue

            time_range = self._padded(
                min(w.start for w in covering),
                max(w.end for w in covering),
                duration
            )
            if time_range is None:
                logger.warning(f"{span.category} span at chars {span.char_start}-{span.char_end} lies outside the audio.")
                continue

            mapped.append(span.with_time_range(time_range))

        mapped.sort(key=lambda s: (s.time_range.start_seconds, s.char_start))
        return mapped

    def merge(self, ranges: Sequence[TimeRange]) -> List[TimeRange]:
        """
        Collapses ranges that overlap or sit closer than min_gap.
        Applying merge to its own output returns the same list.
        """
        merged: List[TimeRange] = []
        for current in sorted(ranges, key=lambda r: (r.start_seconds, r.end_seconds)):
            if merged and current.start_seconds - merged[-1].end_seconds < self.min_gap:
                last = merged[-1]
                if current.end_seconds > last.end_seconds:
                    merged[-1] = TimeRange(last.start_seconds, current.end_seconds)
            else:
                merged.append(current)

        if len(merged) < len(ranges):
            logger.info(f"Reduced from {len(ranges)} to {len(merged)} time ranges after merging")
        return merged

    def resolve(self,
                words: Sequence[TranscriptWord],
                spans: Sequence[SensitiveSpan],
                duration: Optional[float] = None) -> List[TimeRange]:
        """map_spans + merge: the final set of intervals to silence."""
        mapped = self.map_spans(words, spans, duration)
        return self.merge([s.time_range for s in mapped])

    def _padded(self, start: float, end: float, duration: Optional[float]) -> Optional[TimeRange]:
        padded_start = round(max(0.0, start - self.guard_interval), _PRECISION)
        padded_end = round(end + self.guard_interval, _PRECISION)
        if duration is not None:
            padded_end = min(padded_end, round(duration, _PRECISION))
        if padded_start >= padded_end:
            return None
        return TimeRange(padded_start, padded_end)
