import logging
import queue
import tempfile
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path
from threading import Lock
from typing import Callable, List, Optional

from callscrub.core.common.enums import FailureCategory, RecordingState
from callscrub.core.config.settings import settings
from callscrub.core.exceptions import (
    EngineError, JobCancelledError, PersistenceError, RedactionPipelineError
)
from callscrub.core.shared_types import MediaFile
from callscrub.features.audio_redaction.domain.interfaces import IAudioRedactor
from callscrub.features.audio_redaction.domain.models import RedactionOutcome, RedactionRequest
from callscrub.features.detection.domain.interfaces import IPatternDetector
from callscrub.features.detection.service.masking import DEFAULT_MASK_TEMPLATE, mask_transcript
from callscrub.features.disk_space.service.guard import DiskSpaceGuard
from callscrub.features.storage.domain.interfaces import IPersistenceGateway
from callscrub.features.storage.service.api import guess_content_type, store_original_file
from callscrub.features.time_mapping.service.mapper import TimeRangeMapper
from callscrub.features.transcription.domain.interfaces import ITranscriptionClient
from callscrub.features.transcription.service.api import transcribe_with_retry
from ..data.state_store import JobStateStore
from ..domain.models import RedactionJob, Recording

logger = logging.getLogger(__name__)

Subscriber = Callable[[Recording], None]


class JobCoordinator:
    """
    Runs the redaction pipeline for each uploaded recording:
    transcribe -> detect -> map -> capacity check -> silence -> persist.

    A bounded pool runs up to max_workers jobs at once; the rest wait in
    FIFO order. Every job publishes its terminal Recording as soon as it
    gets there, independently of its siblings.
    """

    def __init__(self,
                 transcriber: Optional[ITranscriptionClient] = None,
                 detector: Optional[IPatternDetector] = None,
                 mapper: Optional[TimeRangeMapper] = None,
                 guard: Optional[DiskSpaceGuard] = None,
                 engine: Optional[IAudioRedactor] = None,
                 gateway: Optional[IPersistenceGateway] = None,
                 max_workers: Optional[int] = None,
                 work_dir: Optional[Path] = None,
                 mask_template: Optional[str] = None,
                 history_limit: Optional[int] = None):
        # Defaults are imported lazily so tests can inject fakes without
        # pulling in HTTP clients or opening the database.
        if transcriber is None:
            from callscrub.features.transcription.service.api import get_transcription_client
            transcriber = get_transcription_client()
        if detector is None:
            from callscrub.features.detection.service.detector import PatternDetector
            detector = PatternDetector()
        if engine is None:
            from callscrub.features.audio_redaction.data.ffmpeg_adapter import FFmpegRedactionAdapter
            engine = FFmpegRedactionAdapter()
        if gateway is None:
            from callscrub.features.storage.service.api import storage
            gateway = storage

        self.transcriber = transcriber
        self.detector = detector
        self.mapper = mapper or TimeRangeMapper()
        self.guard = guard or DiskSpaceGuard()
        self.engine = engine
        self.gateway = gateway

        rule_set = getattr(detector, "rule_set", None)
        self.mask_template = mask_template or (rule_set.mask_template if rule_set else DEFAULT_MASK_TEMPLATE)

        self.max_workers = settings.MAX_CONCURRENT_JOBS if max_workers is None else max_workers
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1.")
        self.work_dir = Path(work_dir or settings.WORK_DIR)
        self.work_dir.mkdir(parents=True, exist_ok=True)

        self._store = JobStateStore(history_limit=history_limit)
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="redaction-worker")
        self._subscribers: List[Subscriber] = []
        self._subscribers_lock = Lock()
        self._complete_lock = Lock()
        self._closed = False

        # Terminal Recordings, in the order they finished
        self.completions: "queue.Queue[Recording]" = queue.Queue()

    # --- Public API ---

    def submit(self, recording_id: str, source_path, original_filename: Optional[str] = None) -> Recording:
        """
        Upload intake: queues one recording and returns its queued snapshot.
        """
        if self._closed:
            raise RuntimeError("Coordinator is shut down.")

        source = MediaFile(Path(source_path), validate_exists=True)
        job = RedactionJob(
            job_id=uuid.uuid4().hex,
            recording=Recording(
                recording_id=recording_id,
                original_filename=original_filename or source.path.name
            ),
            source_path=source.path
        )

        snapshot = self._store.add(job)
        job.future = self._executor.submit(self._run_job, job)
        logger.info(f"Queued {recording_id} ({source.path.name}) as job {job.job_id[:8]}")
        return snapshot

    def cancel(self, recording_id: str, timeout: Optional[float] = None) -> bool:
        """
        Cancels a queued or running job. Returns True once the job is terminal
        (its subprocess terminated and temp files released), False if the
        recording is unknown/already finished or did not stop within timeout.
        """
        job = self._store.get_job(recording_id)
        if job is None:
            return False

        logger.info(f"Cancelling {recording_id} (job {job.job_id[:8]})")
        job.token.cancel()

        if job.future is not None and job.future.cancel():
            # Never started: nothing to clean up on disk
            self._complete(job, JobCancelledError("Cancelled while waiting for a worker.", stage="queued"))
            return True

        timeout = settings.CANCEL_TIMEOUT_SECONDS if timeout is None else timeout
        if not job.finished.wait(timeout):
            logger.warning(f"Job {job.job_id[:8]} did not stop within {timeout:.1f}s of cancellation")
            return False
        return True

    def wait(self, recording_id: str, timeout: Optional[float] = None) -> Optional[Recording]:
        """Blocks until the recording is terminal (or timeout) and returns its state."""
        job = self._store.get_job(recording_id)
        if job is not None:
            job.finished.wait(timeout)
        return self._store.get(recording_id)

    def get_status(self, recording_id: str) -> Optional[Recording]:
        return self._store.get(recording_id)

    def list_recordings(self) -> List[Recording]:
        """Status feed: active and recently finished recordings."""
        return self._store.list_recordings()

    def recent_events(self, limit: Optional[int] = None):
        """Log feed: one StatusEvent per state transition."""
        return self._store.recent_events(limit)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Registers a completion callback. Returns a function that unsubscribes it."""
        with self._subscribers_lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._subscribers_lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def shutdown(self, wait: bool = True, cancel_pending: bool = False) -> None:
        self._closed = True
        if cancel_pending:
            for job in self._store.active_jobs():
                if job.future is not None and job.future.cancel():
                    job.token.cancel()
                    self._complete(job, JobCancelledError("Cancelled at shutdown.", stage="queued"))
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown(wait=True, cancel_pending=exc_type is not None)

    # --- Worker ---

    def _run_job(self, job: RedactionJob) -> None:
        error: Optional[RedactionPipelineError] = None
        try:
            # Temp space is scoped to the pipeline run and released before
            # the terminal state becomes visible.
            with tempfile.TemporaryDirectory(prefix=f"job-{job.job_id[:8]}-", dir=self.work_dir) as tmp:
                job.temp_dir = Path(tmp)
                self._execute(job, Path(tmp))
        except RedactionPipelineError as e:
            error = e.with_context(job.job_id, self._store.snapshot(job.recording_id).state.value)
        except Exception as e:
            # A bug in one job must not take down the worker or its siblings
            logger.exception(f"Unexpected error in job {job.job_id[:8]} ({job.recording_id})")
            error = RedactionPipelineError(
                f"Unexpected {type(e).__name__}: {e}",
                cause=e
            ).with_context(job.job_id, self._store.snapshot(job.recording_id).state.value)
        finally:
            job.temp_dir = None

        self._complete(job, error)

    def _execute(self, job: RedactionJob, work_dir: Path) -> None:
        token = job.token
        rid = job.recording_id

        token.raise_if_cancelled()
        self._store_original(job)

        # 1. Transcribe
        token.raise_if_cancelled()
        self._store.advance(rid, RecordingState.TRANSCRIBING)
        transcript = transcribe_with_retry(self.transcriber, job.source_path, cancel_token=token)
        self._store.update(rid, duration_seconds=transcript.duration_seconds)

        # 2. Detect and map to audio time
        token.raise_if_cancelled()
        self._store.advance(rid, RecordingState.DETECTING, f"{len(transcript.words)} words")
        spans = self.detector.detect(transcript.text, transcript.words)
        mapped = self.mapper.map_spans(transcript.words, spans, transcript.duration_seconds)
        job.spans = mapped
        job.time_ranges = self.mapper.merge([s.time_range for s in mapped])

        # Audio and text are redacted from the same span set
        redacted_text = mask_transcript(transcript.text, mapped, self.mask_template)
        self._store.update(rid, sensitive_span_count=len(mapped))

        # 3. Silence audio
        token.raise_if_cancelled()
        self._store.advance(rid, RecordingState.REDACTING, f"{len(job.time_ranges)} ranges")
        self.guard.ensure_capacity(work_dir, job.source_path)

        request = RedactionRequest(
            source_audio=MediaFile(job.source_path, validate_exists=True),
            output_audio=MediaFile(work_dir / f"redacted{job.source_path.suffix or '.wav'}"),
            time_ranges=job.time_ranges,
            duration_seconds=transcript.duration_seconds
        )
        outcome = self._redact(job, request)
        token.raise_if_cancelled()
        if transcript.duration_seconds is None and outcome.duration_seconds is not None:
            self._store.update(rid, duration_seconds=outcome.duration_seconds)

        # 4. Persist redacted artifacts together
        try:
            self.gateway.store_redaction_result(
                rid,
                outcome.output_path.read_bytes(),
                guess_content_type(outcome.output_path),
                redacted_text
            )
            job.artifacts_saved = True
        except PersistenceError as e:
            e.with_context(job.job_id, "persist")
            logger.error(f"[{job.job_id[:8]}] Redacted artifacts for {rid} were not saved: {e}")
            job.persistence_failures.append(str(e))

    def _store_original(self, job: RedactionJob) -> None:
        try:
            store_original_file(job.recording_id, job.source_path, self.gateway)
        except PersistenceError as e:
            logger.error(f"[{job.job_id[:8]}] Original audio for {job.recording_id} was not saved: {e}")
            job.persistence_failures.append(str(e))

    def _redact(self, job: RedactionJob, request: RedactionRequest) -> RedactionOutcome:
        """One retry, and only for failures classified as transient."""
        attempt = 1
        while True:
            try:
                outcome = self.engine.redact(request, cancel_token=job.token)
                if not outcome.success:
                    raise EngineError(outcome.reason or "Audio redaction failed.")
                return outcome
            except EngineError as e:
                if attempt == 1 and e.transient and not job.token.cancelled:
                    logger.warning(f"[{job.job_id[:8]}] Transient engine failure, retrying once: {e}")
                    attempt += 1
                    continue
                raise

    # --- Completion ---

    def _complete(self, job: RedactionJob, error: Optional[RedactionPipelineError]) -> None:
        with self._complete_lock:
            if job.completed:
                return
            job.completed = True

        terminal = self._store.snapshot(job.recording_id)

        if error is None:
            terminal.advance(RecordingState.DONE)
            terminal.saved = job.artifacts_saved and not job.persistence_failures
            if job.persistence_failures:
                terminal.error_category = FailureCategory.PERSISTENCE
                terminal.error_detail = "; ".join(job.persistence_failures)
        else:
            self._log_failure(job, error)
            terminal.fail(error.category, str(error), stage=error.stage)

        try:
            self.gateway.save_recording(terminal)
        except PersistenceError as e:
            logger.error(f"[{job.job_id[:8]}] Could not save status of {job.recording_id}: {e}")
            terminal = replace(terminal, saved=False, history=list(terminal.history))
            if terminal.error_category is None:
                terminal.error_category = FailureCategory.PERSISTENCE
                terminal.error_detail = str(e)

        final = self._store.finish(job.recording_id, terminal)
        job.finished.set()
        self._publish(final)

    def _publish(self, recording: Recording) -> None:
        self.completions.put(recording)
        with self._subscribers_lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(recording.snapshot())
            except Exception:
                logger.exception(f"Completion subscriber failed for {recording.recording_id}")

    @staticmethod
    def _log_failure(job: RedactionJob, error: RedactionPipelineError) -> None:
        context = f"job={job.job_id[:8]} recording={job.recording_id} stage={error.stage}"
        if isinstance(error, JobCancelledError):
            logger.info(f"Cancelled ({context})")
            return
        cause = f" | cause: {error.cause!r}" if error.cause is not None else ""
        detail = f" | stderr: {error.stderr.strip()[-500:]}" if isinstance(error, EngineError) and error.stderr else ""
        logger.error(f"{error.category.value} failure ({context}): {error}{cause}{detail}")
