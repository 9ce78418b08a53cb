import mimetypes
from pathlib import Path
from typing import Optional

from ..data.repository import SqlPersistenceGateway
from ..domain.interfaces import IPersistenceGateway

# Containers the stdlib table misses or gets wrong on some platforms
_AUDIO_CONTENT_TYPES = {
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
    ".flac": "audio/flac",
    ".ogg": "audio/ogg",
    ".m4a": "audio/mp4",
    ".aac": "audio/aac",
}

def guess_content_type(path: Path) -> str:
    suffix = Path(path).suffix.lower()
    if suffix in _AUDIO_CONTENT_TYPES:
        return _AUDIO_CONTENT_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(str(path))
    return guessed or "application/octet-stream"

def extension_for_content_type(content_type: str) -> str:
    """Reverse of guess_content_type, used when exporting stored audio."""
    for suffix, known in _AUDIO_CONTENT_TYPES.items():
        if known == content_type:
            return suffix
    return mimetypes.guess_extension(content_type) or ".bin"

def store_original_file(recording_id: str, path: Path, gateway: Optional[IPersistenceGateway] = None) -> None:
    """Reads an upload from disk and hands it to the gateway."""
    gateway = gateway or storage
    gateway.store_original(recording_id, Path(path).read_bytes(), guess_content_type(path))

# Singleton Instance for easy import
storage = SqlPersistenceGateway()
