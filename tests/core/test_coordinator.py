import stat
import sys
import threading
import time
import pytest
from pathlib import Path

from callscrub.core.common.enums import FailureCategory, RecordingState
from callscrub.core.exceptions import EngineError, PersistenceError, TranscriptionError
from callscrub.core.jobs.service.coordinator import JobCoordinator
from callscrub.core.shared_types import TimeRange
from callscrub.features.audio_redaction.data.ffmpeg_adapter import FFmpegRedactionAdapter
from callscrub.features.audio_redaction.domain.interfaces import IAudioRedactor
from callscrub.features.audio_redaction.domain.models import RedactionOutcome
from callscrub.features.detection.service.detector import PatternDetector
from callscrub.features.disk_space.domain.interfaces import IDiskUsageProbe
from callscrub.features.disk_space.domain.models import DiskUsage
from callscrub.features.disk_space.service.guard import DiskSpaceGuard
from callscrub.features.storage.data.repository import SqlPersistenceGateway
from callscrub.features.storage.domain.interfaces import IPersistenceGateway
from callscrub.features.storage.domain.models import StoredAudio
from callscrub.features.transcription.domain.interfaces import ITranscriptionClient
from callscrub.features.transcription.domain.models import Transcript

PIPELINE = [
    RecordingState.QUEUED,
    RecordingState.TRANSCRIBING,
    RecordingState.DETECTING,
    RecordingState.REDACTING,
    RecordingState.DONE,
]


# --- Fakes ---

class ScriptedTranscriber(ITranscriptionClient):
    """Returns the SSN call for every file; files named fail-* are rejected."""

    def transcribe(self, audio_path: Path) -> Transcript:
        if Path(audio_path).stem.startswith("fail"):
            raise TranscriptionError("Unsupported audio format", transient=False)
        return Transcript.from_tokens([
            ("my", 2.40, 2.60, 0.98),
            ("ssn", 2.60, 2.90, 0.97),
            ("is", 2.90, 3.10, 0.99),
            ("123-45-6789", 3.20, 4.10, 0.91),
            ("thanks", 4.50, 4.90, 0.99),
        ], duration_seconds=10.0, provider="scripted")


class HangingTranscriber(ITranscriptionClient):
    """Never answers until released, like a stalled HTTP request."""

    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()

    def transcribe(self, audio_path: Path) -> Transcript:
        self.started.set()
        self.release.wait(30)
        return ScriptedTranscriber().transcribe(audio_path)


class RecordingEngine(IAudioRedactor):
    """Writes a fake artifact and tracks how many redactions overlap in time."""

    def __init__(self, delay: float = 0.0, failures=None, slow_prefix: str = None, slow_delay: float = 0.0):
        self.delay = delay
        self.failures = list(failures or [])
        self.slow_prefix = slow_prefix
        self.slow_delay = slow_delay
        self.calls = []
        self.active = 0
        self.max_active = 0
        self.intervals = []
        self._lock = threading.Lock()

    def redact(self, request, cancel_token=None) -> RedactionOutcome:
        with self._lock:
            self.calls.append(request)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            failure = self.failures.pop(0) if self.failures else None
        started = time.monotonic()
        try:
            delay = self.delay
            if self.slow_prefix and request.source_audio.path.stem.startswith(self.slow_prefix):
                delay = self.slow_delay
            time.sleep(delay)
            if failure is not None:
                raise failure
            request.output_audio.path.write_bytes(b"silenced:" + request.source_audio.path.read_bytes())
            return RedactionOutcome(
                success=True,
                output_path=request.output_audio.path,
                applied_ranges=list(request.time_ranges),
                duration_seconds=request.duration_seconds
            )
        finally:
            with self._lock:
                self.active -= 1
                self.intervals.append((started, time.monotonic()))


class MemoryGateway(IPersistenceGateway):
    def __init__(self, fail_results: bool = False, fail_metadata: bool = False):
        self.fail_results = fail_results
        self.fail_metadata = fail_metadata
        self.audio = {}
        self.transcripts = {}
        self.recordings = {}
        self._lock = threading.Lock()

    def store_original(self, recording_id, data, content_type):
        with self._lock:
            self.audio[(recording_id, "original")] = StoredAudio(data, content_type)

    def store_redacted(self, recording_id, data, content_type):
        with self._lock:
            self.audio[(recording_id, "redacted")] = StoredAudio(data, content_type)

    def store_transcript(self, recording_id, text):
        with self._lock:
            self.transcripts[recording_id] = text

    def store_redaction_result(self, recording_id, audio, content_type, transcript):
        if self.fail_results:
            raise PersistenceError("database unavailable")
        self.store_redacted(recording_id, audio, content_type)
        self.store_transcript(recording_id, transcript)

    def get_original(self, recording_id):
        return self.audio.get((recording_id, "original"))

    def get_redacted(self, recording_id):
        return self.audio.get((recording_id, "redacted"))

    def get_transcript(self, recording_id):
        return self.transcripts.get(recording_id)

    def save_recording(self, recording):
        if self.fail_metadata:
            raise PersistenceError("database unavailable")
        with self._lock:
            self.recordings[recording.recording_id] = recording

    def get_recording(self, recording_id):
        return self.recordings.get(recording_id)


class FixedProbe(IDiskUsageProbe):
    def __init__(self, free_bytes: int):
        self.free_bytes = free_bytes

    def usage(self, directory: Path) -> DiskUsage:
        return DiskUsage(total_bytes=10 ** 12, used_bytes=10 ** 12 - self.free_bytes, free_bytes=self.free_bytes)


# --- Fixtures ---

@pytest.fixture
def make_upload(tmp_path):
    uploads = tmp_path / "uploads"
    uploads.mkdir()

    def _make(name: str, size: int = 4000) -> Path:
        path = uploads / f"{name}.wav"
        path.write_bytes(b"R" * size)
        return path

    return _make


@pytest.fixture
def build(work_dir):
    created = []

    def _build(**overrides) -> JobCoordinator:
        params = dict(
            transcriber=ScriptedTranscriber(),
            detector=PatternDetector(),
            guard=DiskSpaceGuard(probe=FixedProbe(10 ** 9)),
            engine=RecordingEngine(),
            gateway=MemoryGateway(),
            max_workers=2,
            work_dir=work_dir,
        )
        params.update(overrides)
        coordinator = JobCoordinator(**params)
        created.append(coordinator)
        return coordinator

    yield _build

    for coordinator in created:
        coordinator.shutdown(wait=True, cancel_pending=True)


# --- Tests ---

def test_single_job_runs_every_stage_in_order(build, make_upload, work_dir):
    engine = RecordingEngine()
    gateway = MemoryGateway()
    coordinator = build(engine=engine, gateway=gateway)
    upload = make_upload("call-1")

    queued = coordinator.submit("call-1", upload)
    assert queued.state == RecordingState.QUEUED

    final = coordinator.wait("call-1", timeout=10)

    assert final.state == RecordingState.DONE
    assert final.states == PIPELINE
    assert final.saved is True
    assert final.sensitive_span_count == 1
    assert final.duration_seconds == 10.0

    assert engine.calls[0].time_ranges == [TimeRange(3.05, 4.25)]
    assert gateway.get_transcript("call-1") == "my ssn is [REDACTED SSN] thanks"
    assert gateway.get_redacted("call-1").data.startswith(b"silenced:")
    assert gateway.get_original("call-1").data == upload.read_bytes()
    assert gateway.get_recording("call-1").state == RecordingState.DONE

    # Job temp space is gone by the time the state is terminal
    assert list(work_dir.iterdir()) == []


def test_at_most_n_jobs_redact_concurrently(build, make_upload):
    engine = RecordingEngine(delay=0.2)
    coordinator = build(engine=engine, max_workers=2)

    ids = [f"call-{i}" for i in range(6)]
    for rid in ids:
        coordinator.submit(rid, make_upload(rid))
    for rid in ids:
        assert coordinator.wait(rid, timeout=10).state == RecordingState.DONE

    assert engine.max_active <= 2
    # Re-check from the start/end timestamps
    events = sorted([(s, 1) for s, _ in engine.intervals] + [(e, -1) for _, e in engine.intervals])
    running = peak = 0
    for _, delta in events:
        running += delta
        peak = max(peak, running)
    assert peak <= 2


def test_failure_stays_local_to_its_job(build, make_upload):
    coordinator = build()
    coordinator.submit("good-1", make_upload("good-1"))
    coordinator.submit("fail-1", make_upload("fail-1"))
    coordinator.submit("good-2", make_upload("good-2"))

    failed = coordinator.wait("fail-1", timeout=10)
    assert failed.state == RecordingState.FAILED
    assert failed.error_category == FailureCategory.TRANSCRIPTION
    assert failed.failed_stage == "transcribing"
    assert "Unsupported audio format" in failed.error_detail
    assert failed.states == [RecordingState.QUEUED, RecordingState.TRANSCRIBING, RecordingState.FAILED]

    assert coordinator.wait("good-1", timeout=10).state == RecordingState.DONE
    assert coordinator.wait("good-2", timeout=10).state == RecordingState.DONE


def test_capacity_failure_never_starts_the_engine(build, make_upload, work_dir):
    engine = RecordingEngine()
    coordinator = build(engine=engine, guard=DiskSpaceGuard(probe=FixedProbe(free_bytes=10), multiplier=3))

    coordinator.submit("big", make_upload("big", size=4000))
    final = coordinator.wait("big", timeout=10)

    assert final.state == RecordingState.FAILED
    assert final.error_category == FailureCategory.CAPACITY
    assert final.failed_stage == "redacting"
    assert engine.calls == []
    assert list(work_dir.iterdir()) == []


def test_persistence_failure_keeps_job_done_but_unsaved(build, make_upload):
    coordinator = build(gateway=MemoryGateway(fail_results=True))
    coordinator.submit("call-p", make_upload("call-p"))

    final = coordinator.wait("call-p", timeout=10)

    assert final.state == RecordingState.DONE
    assert final.saved is False
    assert final.error_category == FailureCategory.PERSISTENCE


def test_metadata_save_failure_flags_unsaved(build, make_upload):
    coordinator = build(gateway=MemoryGateway(fail_metadata=True))
    coordinator.submit("call-m", make_upload("call-m"))

    final = coordinator.wait("call-m", timeout=10)
    assert final.state == RecordingState.DONE
    assert final.saved is False


def test_transient_engine_error_retried_once(build, make_upload):
    engine = RecordingEngine(failures=[EngineError("Resource temporarily unavailable", transient=True)])
    coordinator = build(engine=engine)
    coordinator.submit("retry", make_upload("retry"))

    assert coordinator.wait("retry", timeout=10).state == RecordingState.DONE
    assert len(engine.calls) == 2


def test_permanent_engine_error_fails_without_retry(build, make_upload):
    engine = RecordingEngine(failures=[EngineError("Invalid data found", stderr="Invalid data found when processing input")])
    coordinator = build(engine=engine)
    coordinator.submit("broken", make_upload("broken"))

    final = coordinator.wait("broken", timeout=10)
    assert final.state == RecordingState.FAILED
    assert final.error_category == FailureCategory.ENGINE
    assert len(engine.calls) == 1


def test_each_completion_is_published_as_it_happens(build, make_upload):
    engine = RecordingEngine(slow_prefix="slow", slow_delay=1.0)
    coordinator = build(engine=engine, max_workers=2)

    seen = []
    coordinator.subscribe(lambda r: seen.append((r.recording_id, time.monotonic())))

    def exploding_subscriber(recording):
        raise RuntimeError("observer bug")
    coordinator.subscribe(exploding_subscriber)

    coordinator.submit("slow", make_upload("slow"))
    coordinator.submit("fast", make_upload("fast"))

    first = coordinator.completions.get(timeout=10)
    assert first.recording_id == "fast"
    assert first.state == RecordingState.DONE

    # The slow job is still running when the fast one is already visible
    assert coordinator.get_status("slow").state != RecordingState.DONE

    second = coordinator.completions.get(timeout=10)
    assert second.recording_id == "slow"
    assert [rid for rid, _ in seen] == ["fast", "slow"]


def test_status_feed_and_event_log(build, make_upload):
    coordinator = build()
    coordinator.submit("feed-1", make_upload("feed-1"))
    coordinator.wait("feed-1", timeout=10)

    feed = {r.recording_id: r for r in coordinator.list_recordings()}
    assert feed["feed-1"].state == RecordingState.DONE

    states = [e.state for e in coordinator.recent_events() if e.recording_id == "feed-1"]
    assert states == PIPELINE
    assert len(coordinator.recent_events(limit=2)) == 2


def test_submit_validation(build, make_upload, tmp_path):
    coordinator = build(engine=RecordingEngine(delay=0.5))
    upload = make_upload("dup")
    coordinator.submit("dup", upload)

    with pytest.raises(ValueError):
        coordinator.submit("dup", upload)
    with pytest.raises(FileNotFoundError):
        coordinator.submit("missing", tmp_path / "nope.wav")


def test_cancel_queued_job(build, make_upload):
    engine = RecordingEngine(delay=1.0)
    coordinator = build(engine=engine, max_workers=1)
    coordinator.submit("first", make_upload("first"))
    coordinator.submit("second", make_upload("second"))

    assert coordinator.cancel("second") is True
    cancelled = coordinator.get_status("second")
    assert cancelled.state == RecordingState.FAILED
    assert cancelled.error_category == FailureCategory.CANCELLED

    assert coordinator.wait("first", timeout=10).state == RecordingState.DONE
    assert len(engine.calls) == 1
    assert coordinator.cancel("first") is False


def test_cancel_during_transcription_is_acknowledged_promptly(build, make_upload, work_dir):
    transcriber = HangingTranscriber()
    engine = RecordingEngine()
    coordinator = build(transcriber=transcriber, engine=engine, max_workers=1)
    coordinator.submit("stuck", make_upload("stuck"))
    assert transcriber.started.wait(10)

    try:
        started = time.monotonic()
        assert coordinator.cancel("stuck", timeout=2) is True
        assert time.monotonic() - started < 2

        final = coordinator.get_status("stuck")
        assert final.state == RecordingState.FAILED
        assert final.error_category == FailureCategory.CANCELLED
        assert final.failed_stage == "transcribing"
        assert list(work_dir.iterdir()) == []
    finally:
        transcriber.release.set()

    # The late transcript is dropped, nothing downstream runs
    time.sleep(0.3)
    assert engine.calls == []
    assert coordinator.get_status("stuck").state == RecordingState.FAILED


@pytest.mark.skipif(sys.platform.startswith("win"), reason="needs a POSIX shell")
def test_cancel_mid_redaction_kills_subprocess_and_cleans_up(build, make_upload, tmp_path, work_dir):
    # Stand-in audio tool: writes partial output, then hangs
    fake_tool = tmp_path / "hanging-ffmpeg"
    fake_tool.write_text('#!/bin/sh\nfor last; do :; done\necho partial > "$last"\nexec sleep 60\n')
    fake_tool.chmod(fake_tool.stat().st_mode | stat.S_IEXEC)

    coordinator = build(engine=FFmpegRedactionAdapter(ffmpeg_binary=str(fake_tool)), max_workers=1)
    coordinator.submit("hang", make_upload("hang"))

    deadline = time.monotonic() + 10
    while coordinator.get_status("hang").state != RecordingState.REDACTING:
        assert time.monotonic() < deadline
        time.sleep(0.05)
    time.sleep(0.3)

    started = time.monotonic()
    assert coordinator.cancel("hang", timeout=10) is True
    assert time.monotonic() - started < 10

    final = coordinator.get_status("hang")
    assert final.state == RecordingState.FAILED
    assert final.error_category == FailureCategory.CANCELLED
    assert list(work_dir.iterdir()) == []


def test_sql_gateway_end_to_end(build, make_upload):
    gateway = SqlPersistenceGateway()
    coordinator = build(gateway=gateway)
    coordinator.submit("sql-1", make_upload("sql-1"))

    assert coordinator.wait("sql-1", timeout=10).state == RecordingState.DONE
    assert gateway.get_transcript("sql-1") == "my ssn is [REDACTED SSN] thanks"
    stored = gateway.get_recording("sql-1")
    assert stored.state == RecordingState.DONE
    assert stored.sensitive_span_count == 1
    assert stored.saved is True


def test_explicit_zero_limits_are_rejected(build):
    with pytest.raises(ValueError):
        build(max_workers=0)
    with pytest.raises(ValueError):
        build(history_limit=0)
