from datetime import datetime, timezone
from sqlalchemy import (
    Boolean, Column, DateTime, Enum as SQLEnum, Float, ForeignKey, Integer,
    LargeBinary, String, Text, UniqueConstraint
)
from sqlalchemy.orm import relationship
from callscrub.core.database.base import Base
from callscrub.core.common.enums import ArtifactKind, RecordingState

def utc_now():
    return datetime.now(timezone.utc)

class RecordingModel(Base):
    __tablename__ = "recordings"

    # Identity is assigned by the caller (upload intake), not generated here
    id = Column(String, primary_key=True)
    original_filename = Column(String, nullable=True)
    duration_seconds = Column(Float, nullable=True)
    state = Column(SQLEnum(RecordingState), nullable=False, default=RecordingState.QUEUED)
    error_category = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)
    sensitive_span_count = Column(Integer, nullable=False, default=0)
    saved = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    audio_artifacts = relationship(
        "AudioArtifactModel",
        back_populates="recording",
        cascade="all, delete-orphan"
    )
    transcript = relationship(
        "TranscriptArtifactModel",
        back_populates="recording",
        uselist=False,
        cascade="all, delete-orphan"
    )

class AudioArtifactModel(Base):
    __tablename__ = "audio_artifacts"
    __table_args__ = (
        UniqueConstraint("recording_id", "kind", name="uq_audio_artifact_recording_kind"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    recording_id = Column(String, ForeignKey("recordings.id"), nullable=False, index=True)
    kind = Column(SQLEnum(ArtifactKind), nullable=False)
    content_type = Column(String, nullable=False)
    data = Column(LargeBinary, nullable=False)
    size_bytes = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now)

    recording = relationship("RecordingModel", back_populates="audio_artifacts")

class TranscriptArtifactModel(Base):
    __tablename__ = "transcript_artifacts"

    recording_id = Column(String, ForeignKey("recordings.id"), primary_key=True)
    text = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now)

    recording = relationship("RecordingModel", back_populates="transcript")
