import queue
from pathlib import Path

import redact_run
from callscrub.core.common.enums import RecordingState
from callscrub.core.jobs.domain.models import Recording
from callscrub.features.storage.domain.models import StoredAudio


def finished(recording_id: str) -> Recording:
    recording = Recording(recording_id=recording_id, original_filename=f"{recording_id}.wav")
    for state in (RecordingState.TRANSCRIBING, RecordingState.DETECTING,
                  RecordingState.REDACTING, RecordingState.DONE):
        recording.advance(state)
    recording.saved = True
    recording.sensitive_span_count = 1
    return recording


class StubGateway:
    def get_redacted(self, recording_id):
        return StoredAudio(b"RIFF-redacted", "audio/wav")

    def get_transcript(self, recording_id):
        return "my ssn is [REDACTED SSN]"


class StubCoordinator:
    """Accepts uploads like JobCoordinator and finishes them instantly."""

    def __init__(self):
        self.gateway = StubGateway()
        self.completions = queue.Queue()
        self.submitted = []

    def submit(self, recording_id, source_path, original_filename=None):
        if not Path(source_path).exists():
            raise FileNotFoundError(f"File not found: {source_path}")
        self.submitted.append(recording_id)
        self.completions.put(finished(recording_id))


def test_wav_export_keeps_wav_suffix(tmp_path):
    upload = tmp_path / "call-1.wav"
    upload.write_bytes(b"RIFF")
    out = tmp_path / "out"

    assert redact_run.run(StubCoordinator(), [upload], out) == 0

    assert (out / "call-1.redacted.wav").read_bytes() == b"RIFF-redacted"
    assert (out / "call-1.redacted.txt").read_text(encoding="utf-8") == "my ssn is [REDACTED SSN]"
    assert not list(out.glob("*.bin"))


def test_bad_inputs_are_counted_not_fatal(tmp_path):
    (tmp_path / "a").mkdir()
    (tmp_path / "b").mkdir()
    first = tmp_path / "a" / "call.wav"
    same_stem = tmp_path / "b" / "call.wav"
    other = tmp_path / "other.wav"
    for path in (first, same_stem, other):
        path.write_bytes(b"RIFF")
    missing = tmp_path / "missing.wav"

    coordinator = StubCoordinator()
    failed = redact_run.run(coordinator, [first, missing, same_stem, other])

    assert failed == 2
    assert coordinator.submitted == ["call", "other"]
