import argparse
import logging
import sys
from pathlib import Path

from callscrub.core.common.enums import RecordingState
from callscrub.core.config.logging import configure_logging
from callscrub.core.config.settings import settings
from callscrub.core.jobs.service.coordinator import JobCoordinator
from callscrub.features.storage.service.api import extension_for_content_type

logger = logging.getLogger("redact_run")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Redact sensitive numbers from call recordings.")
    parser.add_argument("files", nargs="+", type=Path, help="Audio files to redact")
    parser.add_argument("--output-dir", type=Path, default=None,
                        help="Where to write redacted audio and transcripts (default: not written)")
    parser.add_argument("--workers", type=int, default=None,
                        help=f"Concurrent jobs (default {settings.MAX_CONCURRENT_JOBS})")
    parser.add_argument("--backend", choices=["deepgram", "whisper"], default=None,
                        help="Transcription backend (default from TRANSCRIPTION_BACKEND)")
    parser.add_argument("--method", choices=["silence", "beep"], default=None,
                        help="How sensitive sections are covered (default from REDACTION_METHOD)")
    parser.add_argument("--log-level", default=None, help="Overrides CALLSCRUB_LOG_LEVEL")
    return parser.parse_args(argv)


def export_artifacts(gateway, recording_id: str, output_dir: Path) -> None:
    output_dir.mkdir(parents=True, exist_ok=True)

    audio = gateway.get_redacted(recording_id)
    if audio is not None:
        suffix = extension_for_content_type(audio.content_type)
        (output_dir / f"{recording_id}.redacted{suffix}").write_bytes(audio.data)

    transcript = gateway.get_transcript(recording_id)
    if transcript is not None:
        (output_dir / f"{recording_id}.redacted.txt").write_text(transcript, encoding="utf-8")


def run(coordinator, files, output_dir: Path = None) -> int:
    """Submits every file, reports each recording as it finishes, returns the failure count."""
    failed = 0
    submitted = set()

    for path in files:
        recording_id = path.stem
        try:
            if recording_id in submitted:
                # Same id would overwrite the first file's artifacts
                raise ValueError(f"another input already uses the id '{recording_id}'")
            coordinator.submit(recording_id, path, original_filename=path.name)
            submitted.add(recording_id)
        except (ValueError, FileNotFoundError) as e:
            failed += 1
            logger.error(f"❌ {path}: not submitted - {e}")

    # Report each recording as soon as it finishes
    for _ in submitted:
        recording = coordinator.completions.get()
        if recording.state == RecordingState.DONE:
            flag = "" if recording.saved else f" (NOT SAVED: {recording.error_detail})"
            logger.info(f"✅ {recording.recording_id}: {recording.sensitive_span_count} spans redacted{flag}")
            if output_dir and recording.saved:
                export_artifacts(coordinator.gateway, recording.recording_id, output_dir)
        else:
            failed += 1
            logger.error(f"❌ {recording.recording_id}: {recording.error_category.value} - {recording.error_detail}")

    return failed


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    settings.ensure_dirs()

    from callscrub.features.audio_redaction.data.ffmpeg_adapter import FFmpegRedactionAdapter
    from callscrub.features.transcription.service.api import get_transcription_client

    with JobCoordinator(transcriber=get_transcription_client(args.backend),
                        engine=FFmpegRedactionAdapter(method=args.method),
                        max_workers=args.workers) as coordinator:
        failed = run(coordinator, args.files, args.output_dir)

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
