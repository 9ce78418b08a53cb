import logging
import shutil
import subprocess
from typing import List, Optional, Sequence

from callscrub.core.config.settings import settings
from callscrub.core.exceptions import ConfigurationError, EngineError, JobCancelledError
from callscrub.core.shared_types import TimeRange
from ..domain.interfaces import IAudioRedactor, IDurationProbe
from ..domain.models import RedactionOutcome, RedactionRequest
from .ffprobe_adapter import FFprobeAdapter

logger = logging.getLogger(__name__)

# Output codec per container; anything else falls back to ffmpeg's default for the extension
CODEC_ARGS = {
    ".wav": ["-c:a", "pcm_s16le"],
    ".mp3": ["-c:a", "libmp3lame", "-q:a", "2"],
    ".flac": ["-c:a", "flac"],
    ".ogg": ["-c:a", "libvorbis", "-q:a", "6"],
    ".m4a": ["-c:a", "aac", "-b:a", "192k"],
    ".aac": ["-c:a", "aac", "-b:a", "192k"],
}

TRANSIENT_MARKERS = (
    "Resource temporarily unavailable",
    "Device or resource busy",
    "Too many open files",
)

REDACTION_METHODS = ("silence", "beep")


def clamp_ranges(ranges: Sequence[TimeRange], duration: float) -> List[TimeRange]:
    clamped = []
    for r in ranges:
        inside = r.clamp(duration)
        if inside is None:
            logger.warning(f"Dropping range {r.start_seconds:.3f}-{r.end_seconds:.3f}s beyond duration {duration:.3f}s")
            continue
        clamped.append(inside)
    return clamped


def _windows(ranges: Sequence[TimeRange]) -> str:
    return "+".join(f"between(t,{r.start_seconds:.6f},{r.end_seconds:.6f})" for r in ranges)


def build_silence_filter(ranges: Sequence[TimeRange]) -> str:
    """
    One aeval filter muting every range in a single decode/encode pass.
    t is evaluated per sample (timeline `enable` only switches per frame),
    so range edges are sample-accurate and kept samples pass through unchanged.
    """
    return f"aeval='val(ch)*not({_windows(ranges)})':c=same"


def build_beep_filter(ranges: Sequence[TimeRange], frequency: float, volume: float) -> str:
    """
    Same single aeval pass, but the muted samples are replaced by a sine tone.
    Samples outside the ranges are untouched.
    """
    windows = _windows(ranges)
    tone = f"{volume:.4f}*sin(2*PI*{frequency:.2f}*t)"
    return f"aeval='val(ch)*not({windows})+{tone}*(1-not({windows}))':c=same"


class FFmpegRedactionAdapter(IAudioRedactor):
    """
    Concrete implementation of IAudioRedactor using FFmpeg.
    Silences or beeps over (never cuts) the requested intervals so duration is preserved.
    """

    def __init__(self,
                 ffmpeg_binary: Optional[str] = None,
                 prober: Optional[IDurationProbe] = None,
                 timeout: Optional[float] = None,
                 method: Optional[str] = None,
                 beep_frequency: Optional[float] = None,
                 beep_volume: Optional[float] = None):
        self.ffmpeg_binary = ffmpeg_binary or settings.FFMPEG_BINARY
        self.prober = prober or FFprobeAdapter()
        self.timeout = settings.FFMPEG_TIMEOUT_SECONDS if timeout is None else timeout
        if self.timeout <= 0:
            raise ConfigurationError(f"FFmpeg timeout must be positive, got {self.timeout}")

        self.method = (method or settings.REDACTION_METHOD).lower()
        if self.method not in REDACTION_METHODS:
            raise ConfigurationError(f"Unknown redaction method: {self.method}")
        self.beep_frequency = settings.BEEP_FREQUENCY_HZ if beep_frequency is None else beep_frequency
        self.beep_volume = settings.BEEP_VOLUME if beep_volume is None else beep_volume
        if not 0.0 <= self.beep_volume <= 1.0:
            raise ConfigurationError(f"Beep volume must be between 0 and 1, got {self.beep_volume}")

    def build_filter(self, ranges: Sequence[TimeRange]) -> str:
        if self.method == "beep":
            return build_beep_filter(ranges, self.beep_frequency, self.beep_volume)
        return build_silence_filter(ranges)

    def redact(self, request: RedactionRequest, cancel_token=None) -> RedactionOutcome:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        source = request.source_audio.path
        output = request.output_audio
        output.ensure_parent_dir()

        duration = request.duration_seconds
        if duration is None:
            duration = self.prober.probe_duration(source)

        ranges = clamp_ranges(request.time_ranges, duration)

        if not ranges:
            # Nothing to silence: the untouched bytes are the redacted artifact
            logger.info(f"No sensitive sections to redact, copying {source.name} directly")
            shutil.copyfile(source, output.path)
            return RedactionOutcome(success=True, output_path=output.path, duration_seconds=duration)

        cmd = [
            self.ffmpeg_binary,
            "-hide_banner",
            "-nostdin",
            "-y",
            "-i", str(source),
            "-vn",
            "-map_metadata", "0",
            "-af", self.build_filter(ranges),
            *CODEC_ARGS.get(output.path.suffix.lower(), []),
            str(output.path)
        ]

        logger.info(f"Executing FFmpeg Redaction ({self.method}): {len(ranges)} ranges on {source.name}")
        logger.debug(' '.join(cmd))

        self._run(cmd, request, cancel_token)

        if not output.exists() or output.size_bytes() == 0:
            output.remove()
            raise EngineError(f"FFmpeg produced no output for {source.name}")

        return RedactionOutcome(
            success=True,
            output_path=output.path,
            applied_ranges=ranges,
            duration_seconds=duration
        )

    def _run(self, cmd: List[str], request: RedactionRequest, cancel_token) -> None:
        output = request.output_audio

        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True
            )
        except OSError as e:
            raise EngineError(f"Cannot start ffmpeg ({self.ffmpeg_binary}): {e}", cause=e) from e

        if cancel_token is not None:
            cancel_token.attach(process)

        try:
            _, stderr = process.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            _, stderr = process.communicate()
            output.remove()
            raise EngineError(f"FFmpeg timed out after {self.timeout:.0f}s", stderr=stderr or "")
        finally:
            if cancel_token is not None:
                cancel_token.detach()

        if cancel_token is not None and cancel_token.cancelled:
            output.remove()
            raise JobCancelledError("Cancelled during audio redaction.")

        if process.returncode != 0:
            output.remove()
            stderr = stderr or ""
            logger.error(f"FFmpeg Redaction Failed. STDERR: {stderr.strip()}")
            raise EngineError(
                f"FFmpeg exited with code {process.returncode}: {stderr.strip()[-500:] or 'no stderr'}",
                stderr=stderr,
                transient=any(marker in stderr for marker in TRANSIENT_MARKERS)
            )
