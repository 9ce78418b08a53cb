import logging
from contextlib import contextmanager
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from callscrub.core.common.enums import ArtifactKind
from callscrub.core.database.connection import SessionLocal
from callscrub.core.exceptions import PersistenceError
from .sql_models import AudioArtifactModel, RecordingModel, TranscriptArtifactModel
from ..domain.interfaces import IPersistenceGateway
from ..domain.models import StoredAudio, StoredRecording

logger = logging.getLogger(__name__)

class SqlPersistenceGateway(IPersistenceGateway):
    """
    SQLAlchemy-backed gateway (Postgres in production, SQLite in tests).
    Audio is kept as raw bytes in a LargeBinary column.
    """

    def __init__(self, session_factory=None):
        self.session_factory = session_factory or SessionLocal

    @contextmanager
    def _transaction(self, action: str):
        """Commits on success; rolls back and wraps any DB failure in PersistenceError."""
        with self.session_factory() as db:
            try:
                yield db
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Persistence failure while trying to {action}: {e}")
                raise PersistenceError(f"Failed to {action}: {e}", stage="persist", cause=e) from e

    # --- Writes ---

    def store_original(self, recording_id: str, data: bytes, content_type: str) -> None:
        with self._transaction(f"store original audio for {recording_id}") as db:
            self._put_audio(db, recording_id, ArtifactKind.ORIGINAL, data, content_type)

    def store_redacted(self, recording_id: str, data: bytes, content_type: str) -> None:
        with self._transaction(f"store redacted audio for {recording_id}") as db:
            self._put_audio(db, recording_id, ArtifactKind.REDACTED, data, content_type)

    def store_transcript(self, recording_id: str, text: str) -> None:
        with self._transaction(f"store transcript for {recording_id}") as db:
            self._put_transcript(db, recording_id, text)

    def store_redaction_result(self, recording_id: str, audio: bytes, content_type: str, transcript: str) -> None:
        with self._transaction(f"store redaction result for {recording_id}") as db:
            self._put_audio(db, recording_id, ArtifactKind.REDACTED, audio, content_type)
            self._put_transcript(db, recording_id, transcript)
        logger.info(f"Stored redacted audio ({len(audio)} bytes) and transcript for {recording_id}")

    def save_recording(self, recording) -> None:
        with self._transaction(f"save recording {recording.recording_id}") as db:
            row = self._ensure_recording(db, recording.recording_id)
            row.original_filename = recording.original_filename
            row.duration_seconds = recording.duration_seconds
            row.state = recording.state
            row.error_category = recording.error_category.value if recording.error_category else None
            row.error_message = recording.error_detail
            row.sensitive_span_count = recording.sensitive_span_count
            row.saved = recording.saved

    # --- Reads ---

    def get_original(self, recording_id: str) -> Optional[StoredAudio]:
        return self._get_audio(recording_id, ArtifactKind.ORIGINAL)

    def get_redacted(self, recording_id: str) -> Optional[StoredAudio]:
        return self._get_audio(recording_id, ArtifactKind.REDACTED)

    def get_transcript(self, recording_id: str) -> Optional[str]:
        with self._transaction(f"read transcript for {recording_id}") as db:
            row = db.get(TranscriptArtifactModel, recording_id)
            return row.text if row else None

    def get_recording(self, recording_id: str) -> Optional[StoredRecording]:
        with self._transaction(f"read recording {recording_id}") as db:
            row = db.get(RecordingModel, recording_id)
            if row is None:
                return None
            return StoredRecording(
                recording_id=row.id,
                original_filename=row.original_filename,
                duration_seconds=row.duration_seconds,
                state=row.state,
                error_category=row.error_category,
                error_message=row.error_message,
                sensitive_span_count=row.sensitive_span_count,
                saved=row.saved,
                created_at=row.created_at,
                updated_at=row.updated_at
            )

    # --- Helpers ---

    def _get_audio(self, recording_id: str, kind: ArtifactKind) -> Optional[StoredAudio]:
        with self._transaction(f"read {kind.value} audio for {recording_id}") as db:
            row = db.query(AudioArtifactModel).filter(
                AudioArtifactModel.recording_id == recording_id,
                AudioArtifactModel.kind == kind
            ).first()
            if row is None:
                return None
            return StoredAudio(data=bytes(row.data), content_type=row.content_type)

    def _ensure_recording(self, db: Session, recording_id: str) -> RecordingModel:
        """Artifacts may arrive before metadata; create a bare row to hang them on."""
        row = db.get(RecordingModel, recording_id)
        if row is None:
            row = RecordingModel(id=recording_id)
            db.add(row)
            db.flush()
        return row

    def _put_audio(self, db: Session, recording_id: str, kind: ArtifactKind, data: bytes, content_type: str) -> None:
        self._ensure_recording(db, recording_id)
        row = db.query(AudioArtifactModel).filter(
            AudioArtifactModel.recording_id == recording_id,
            AudioArtifactModel.kind == kind
        ).first()
        if row is None:
            row = AudioArtifactModel(recording_id=recording_id, kind=kind)
            db.add(row)
        row.data = data
        row.content_type = content_type
        row.size_bytes = len(data)

    def _put_transcript(self, db: Session, recording_id: str, text: str) -> None:
        self._ensure_recording(db, recording_id)
        row = db.get(TranscriptArtifactModel, recording_id)
        if row is None:
            row = TranscriptArtifactModel(recording_id=recording_id, text=text)
            db.add(row)
        else:
            row.text = text
