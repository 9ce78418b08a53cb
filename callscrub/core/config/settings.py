# File: callscrub/core/config/settings.py

import os
import shutil
from pathlib import Path
from typing import Optional


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


class Settings:
    # --- Paths ---
    # callscrub/core/config/settings.py -> callscrub/core/config -> callscrub/core -> callscrub -> ROOT
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent.parent
    DATA_DIR: Path = Path(os.getenv("CALLSCRUB_DATA_DIR", str(BASE_DIR / "data")))
    WORK_DIR: Path = Path(os.getenv("CALLSCRUB_WORK_DIR", str(DATA_DIR / "work")))

    # --- Database ---
    POSTGRES_USER: str = os.getenv("POSTGRES_USER", "postgres")
    POSTGRES_PASSWORD: str = os.getenv("POSTGRES_PASSWORD", "password")
    POSTGRES_SERVER: str = os.getenv("POSTGRES_SERVER", "localhost")
    POSTGRES_PORT: str = os.getenv("POSTGRES_PORT", "5432")
    POSTGRES_DB: str = os.getenv("POSTGRES_DB", "callscrub_db")
    SQLITE_PATH: str = os.getenv("SQLITE_PATH", "./callscrub.db")

    @property
    def DATABASE_URL(self) -> str:
        # Only fall back to SQLite if explicitly requested.
        if os.getenv("USE_SQLITE", "false").lower() == "true":
            return f"sqlite:///{self.SQLITE_PATH}"

        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # --- External Tools ---
    FFMPEG_BINARY: str = os.getenv("FFMPEG_BINARY_PATH", shutil.which("ffmpeg") or "ffmpeg")
    FFPROBE_BINARY: str = os.getenv("FFPROBE_BINARY_PATH", shutil.which("ffprobe") or "ffprobe")
    FFMPEG_TIMEOUT_SECONDS: float = _env_float("FFMPEG_TIMEOUT_SECONDS", 300.0)
    SUBPROCESS_KILL_GRACE_SECONDS: float = _env_float("SUBPROCESS_KILL_GRACE_SECONDS", 3.0)

    # --- Transcription ---
    TRANSCRIPTION_BACKEND: str = os.getenv("TRANSCRIPTION_BACKEND", "deepgram")
    TRANSCRIPTION_TIMEOUT_SECONDS: float = _env_float("TRANSCRIPTION_TIMEOUT_SECONDS", 120.0)
    TRANSCRIPTION_MAX_ATTEMPTS: int = _env_int("TRANSCRIPTION_MAX_ATTEMPTS", 3)
    TRANSCRIPTION_BACKOFF_SECONDS: float = _env_float("TRANSCRIPTION_BACKOFF_SECONDS", 2.0)

    DEEPGRAM_API_KEY: Optional[str] = os.getenv("DEEPGRAM_API_KEY")
    DEEPGRAM_URL: str = os.getenv("DEEPGRAM_URL", "https://api.deepgram.com/v1/listen")
    DEEPGRAM_MODEL: str = os.getenv("DEEPGRAM_MODEL", "nova-2")

    WHISPER_MODEL_NAME: str = os.getenv("WHISPER_MODEL_NAME", "base")
    WHISPER_DEVICE: str = "cuda" if os.getenv("USE_CUDA", "false").lower() == "true" else "cpu"

    # --- Detection & Mapping ---
    REDACTION_RULES_PATH: Optional[str] = os.getenv("REDACTION_RULES_PATH")
    MIN_WORD_CONFIDENCE: Optional[float] = (
        float(os.environ["MIN_WORD_CONFIDENCE"]) if os.getenv("MIN_WORD_CONFIDENCE") else None
    )
    GUARD_INTERVAL_SECONDS: float = _env_float("GUARD_INTERVAL_SECONDS", 0.15)
    MIN_GAP_SECONDS: float = _env_float("MIN_GAP_SECONDS", 0.10)

    # --- Redaction ---
    # "silence" zeroes the ranges; "beep" replaces them with a sine tone
    REDACTION_METHOD: str = os.getenv("REDACTION_METHOD", "silence")
    BEEP_FREQUENCY_HZ: float = _env_float("BEEP_FREQUENCY_HZ", 1000.0)
    BEEP_VOLUME: float = _env_float("BEEP_VOLUME", 0.2)

    # --- Resources ---
    SCRATCH_SPACE_MULTIPLIER: float = _env_float("SCRATCH_SPACE_MULTIPLIER", 3.0)
    MAX_CONCURRENT_JOBS: int = _env_int("MAX_CONCURRENT_JOBS", os.cpu_count() or 2)
    CANCEL_TIMEOUT_SECONDS: float = _env_float("CANCEL_TIMEOUT_SECONDS", 10.0)
    STATUS_HISTORY_LIMIT: int = _env_int("STATUS_HISTORY_LIMIT", 500)

    def ensure_dirs(self):
        """Creates necessary data directories if they don't exist."""
        self.DATA_DIR.mkdir(parents=True, exist_ok=True)
        self.WORK_DIR.mkdir(parents=True, exist_ok=True)


settings = Settings()
