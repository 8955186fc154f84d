import enum
import uuid

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    TIMESTAMP,
    ForeignKey,
    Index,
    func,
    Boolean,
)
from sqlalchemy.orm import relationship
from .database import Base


def _uuid_str() -> str:
    return str(uuid.uuid4())


class DeletionJobStatus(str, enum.Enum):
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    failed = "failed"


class Tribe(Base):
    __tablename__ = "tribes"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    owner = Column(String(36), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    city = Column(String(255))
    cover_url = Column(String(1000))
    is_private = Column(Boolean, default=False, server_default="false", nullable=False)
    is_deleted = Column(Boolean, default=False, server_default="false", nullable=False, index=True)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    events = relationship("Event", back_populates="tribe")


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    tribe_id = Column(String(36), ForeignKey("tribes.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    banner_url = Column(String(1000))
    starts_at = Column(TIMESTAMP(timezone=True), nullable=True)
    location = Column(String(255))
    is_cancelled = Column(Boolean, default=False, server_default="false", nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    tribe = relationship("Tribe", back_populates="events")


class DeletionJob(Base):
    __tablename__ = "deletion_jobs"
    __table_args__ = (Index("ix_deletion_jobs_status_created_at", "status", "created_at"),)

    id = Column(Integer, primary_key=True, index=True)
    tribe_id = Column(String(36), nullable=False, index=True)
    event_id = Column(String(36), nullable=True)
    bucket = Column(String(255), nullable=False)
    object_path = Column(String(1000), nullable=False)
    status = Column(String(20), nullable=False, index=True, server_default=DeletionJobStatus.pending.value)
    attempts = Column(Integer, nullable=False, server_default="0")
    last_error = Column(Text, nullable=True)
    created_by = Column(String(36), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)
    claimed_at = Column(TIMESTAMP(timezone=True), nullable=True)
    claimed_by = Column(String(100), nullable=True)
    completed_at = Column(TIMESTAMP(timezone=True), nullable=True)
