from callscrub.features.detection.domain.models import SensitiveSpan
from callscrub.features.detection.service.masking import mask_transcript


def test_mask_single_span():
    text = "my ssn is 123-45-6789 thanks"
    masked = mask_transcript(text, [SensitiveSpan("ssn", 10, 21)])
    assert masked == "my ssn is [REDACTED SSN] thanks"


def test_overlapping_spans_use_earliest_label():
    text = "number 011000015 end"
    spans = [SensitiveSpan("ssn", 7, 16), SensitiveSpan("routingNumber", 7, 16)]
    masked = mask_transcript(text, sorted(spans, key=lambda s: s.category))
    assert masked.count("[REDACTED") == 1
    assert "011000015" not in masked


def test_no_spans_returns_text_unchanged():
    assert mask_transcript("nothing here", []) == "nothing here"


def test_custom_template():
    masked = mask_transcript("call 5551234567", [SensitiveSpan("phone", 5, 15)], template="<{label}>")
    assert masked == "call <PHONE>"
