# File: tests/conftest.py

import pytest
import os
import sys
import shutil
import subprocess
import tempfile
import sqlalchemy
from pathlib import Path
from sqlalchemy import text

# 1. Add project root to path
sys.path.append(os.getcwd())

# 2. Default to a throwaway SQLite DB unless the caller points at Postgres
_TEST_DB_DIR = tempfile.mkdtemp(prefix="callscrub-tests-")
if "POSTGRES_SERVER" not in os.environ:
    os.environ.setdefault("USE_SQLITE", "true")
    os.environ.setdefault("SQLITE_PATH", os.path.join(_TEST_DB_DIR, "test.db"))
os.environ.setdefault("CALLSCRUB_WORK_DIR", os.path.join(_TEST_DB_DIR, "work"))

# 3. Import Settings (after env is prepared)
from sqlalchemy_utils import database_exists, create_database
from callscrub.core.database.connection import engine as TEST_ENGINE

HAS_FFMPEG = shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


@pytest.fixture(scope="session", autouse=True)
def global_setup():
    """
    Runs once per test session.
    Ensures DB exists and the schema is in place.
    """
    if not database_exists(TEST_ENGINE.url):
        create_database(TEST_ENGINE.url)

    # Import all models to ensure they are registered
    from callscrub.core.database.base import Base
    import callscrub.features.storage.data.sql_models  # noqa: F401

    Base.metadata.create_all(bind=TEST_ENGINE)

    yield

    shutil.rmtree(_TEST_DB_DIR, ignore_errors=True)


@pytest.fixture(scope="function", autouse=True)
def clean_db(global_setup):
    """
    Runs before EVERY test.
    Detects DB type and cleans tables appropriately.
    """
    with TEST_ENGINE.connect() as conn:
        trans = conn.begin()

        is_sqlite = "sqlite" in str(TEST_ENGINE.url)

        inspector = sqlalchemy.inspect(TEST_ENGINE)
        table_names = inspector.get_table_names()

        if table_names:
            if is_sqlite:
                conn.execute(text("PRAGMA foreign_keys = OFF;"))
                for table in table_names:
                    conn.execute(text(f'DELETE FROM "{table}";'))
                conn.execute(text("PRAGMA foreign_keys = ON;"))
            else:
                conn.execute(text("SET session_replication_role = 'replica';"))
                for table in table_names:
                    conn.execute(text(f'TRUNCATE TABLE "{table}" CASCADE;'))
                conn.execute(text("SET session_replication_role = 'origin';"))

        trans.commit()

    yield


@pytest.fixture
def work_dir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return path


def make_tone(path: Path, duration: float = 2.0, frequency: int = 440) -> Path:
    """Writes a mono 16 kHz sine wave with ffmpeg's lavfi source."""
    cmd = [
        "ffmpeg", "-y",
        "-f", "lavfi", "-i", f"sine=frequency={frequency}:duration={duration}:sample_rate=16000",
        "-ac", "1",
        str(path)
    ]
    subprocess.run(cmd, check=True, capture_output=True)
    return path


def probe_duration(path: Path) -> float:
    probe_cmd = [
        "ffprobe", "-v", "error", "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1", str(path)
    ]
    result = subprocess.run(probe_cmd, capture_output=True, text=True, check=True)
    return float(result.stdout.strip())


@pytest.fixture
def tone_factory(tmp_path):
    """Builds sine-wave fixtures on demand; skips when ffmpeg is missing."""
    if not HAS_FFMPEG:
        pytest.skip("ffmpeg/ffprobe not installed")

    def _make(name: str = "tone.wav", duration: float = 2.0, frequency: int = 440) -> Path:
        return make_tone(tmp_path / name, duration, frequency)

    return _make


@pytest.fixture
def tone_wav(tone_factory):
    return tone_factory("tone.wav", 2.0)


@pytest.fixture
def audio_duration():
    return probe_duration
