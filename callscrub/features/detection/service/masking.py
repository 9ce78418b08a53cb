from typing import List, Sequence

from ..domain.models import SensitiveSpan

DEFAULT_MASK_TEMPLATE = "[REDACTED {label}]"


def mask_transcript(text: str,
                    spans: Sequence[SensitiveSpan],
                    template: str = DEFAULT_MASK_TEMPLATE) -> str:
    """
    Replaces every sensitive span with a marker such as "[REDACTED SSN]".
    Overlapping spans collapse into one marker labelled by the earliest span.
    """
    if not spans:
        return text

    ordered = sorted(spans, key=lambda s: (s.char_start, -s.char_end))

    # Union of overlapping spans, keeping the first span's category as the label
    merged: List[List] = []
    for span in ordered:
        if merged and span.char_start < merged[-1][1]:
            merged[-1][1] = max(merged[-1][1], span.char_end)
        else:
            merged.append([span.char_start, span.char_end, span.category])

    pieces = []
    cursor = 0
    for start, end, category in merged:
        pieces.append(text[cursor:start])
        pieces.append(template.format(label=category.upper()))
        cursor = end
    pieces.append(text[cursor:])
    return "".join(pieces)
