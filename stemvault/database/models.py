"""
StemVault Database Models
SQLAlchemy ORM models for the audio version-control graph
"""

import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Any
from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DECIMAL,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship, Mapped, mapped_column

from .connection import Base

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utc_now() -> datetime:
    """Naive UTC timestamp, microsecond precision"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class StemType(str, enum.Enum):
    """Kinds of content a stem can carry"""
    AUDIO = "audio"
    MIDI = "midi"
    BOTH = "both"

    @property
    def has_audio(self) -> bool:
        return self in (StemType.AUDIO, StemType.BOTH)


class Repository(Base):
    """Version-control repository - one per creative project"""
    __tablename__ = "repositories"

    # Primary key
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Owning project (projects themselves live outside this service)
    project_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    project_name: Mapped[str] = mapped_column(String(255), nullable=False)

    default_branch: Mapped[str] = mapped_column(String(255), default="main", nullable=False)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    # Timestamp
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False, default=utc_now)

    # Relationships
    branches: Mapped[List["Branch"]] = relationship(
        "Branch",
        back_populates="repository",
        order_by="Branch.created_at"
    )

    __table_args__ = (
        UniqueConstraint("project_id", name="uq_repositories_project_id"),
    )

    def __repr__(self) -> str:
        return f"<Repository(id={self.id}, project='{self.project_name}', default_branch='{self.default_branch}')>"


class Branch(Base):
    """Named, mutable pointer to the latest commit of a linear history"""
    __tablename__ = "branches"

    # Primary key
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    repository_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("repositories.id", ondelete="CASCADE"),
        nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # The only mutable field in the graph; advanced by compare-and-set
    head_commit_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("commits.id", use_alter=True, name="fk_branches_head_commit_id"),
        nullable=True
    )
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    # Timestamp
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False, default=utc_now)

    # Relationships
    repository: Mapped["Repository"] = relationship("Repository", back_populates="branches")

    __table_args__ = (
        UniqueConstraint("repository_id", "name", name="uq_branches_repository_name"),
    )

    def __repr__(self) -> str:
        return f"<Branch(id={self.id}, name='{self.name}', head={self.head_commit_id})>"


class Commit(Base):
    """Immutable snapshot of a project's stems"""
    __tablename__ = "commits"

    # Primary key
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    repository_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("repositories.id", ondelete="CASCADE"),
        nullable=False
    )
    branch_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("branches.id", ondelete="CASCADE"),
        nullable=False
    )
    # Branch head at creation time; null for the first commit on a branch
    parent_commit_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("commits.id"),
        nullable=True
    )

    author_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    # Generation number: root = 1, child = parent + 1
    depth: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Timestamp (never earlier than the parent's)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False, default=utc_now)

    # Relationships
    stems: Mapped[List["Stem"]] = relationship(
        "Stem",
        back_populates="commit",
        order_by="Stem.track_index"
    )

    __table_args__ = (
        Index("ix_commits_branch_created", "branch_id", "created_at"),
        Index("ix_commits_repository_created", "repository_id", "created_at"),
        Index("ix_commits_parent", "parent_commit_id"),
    )

    def __repr__(self) -> str:
        return f"<Commit(id={self.id}, branch_id={self.branch_id}, parent={self.parent_commit_id})>"


class BlobRecord(Base):
    """Content-addressed storage entry for one unique binary payload"""
    __tablename__ = "blob_records"

    # Primary key
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # SHA-256 hex digest of the exact bytes
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    storage_path: Mapped[str] = mapped_column(Text, nullable=False)
    storage_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    format: Mapped[str] = mapped_column(String(16), nullable=False)
    mime_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    duration: Mapped[Optional[Decimal]] = mapped_column(DECIMAL(10, 3), nullable=True)  # seconds
    uploaded_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    # Number of stems pointing at this record
    reference_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Timestamp
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint("content_hash", name="uq_blob_records_content_hash"),
        CheckConstraint("reference_count >= 0", name="ck_blob_records_reference_count"),
    )

    def __repr__(self) -> str:
        return f"<BlobRecord(id={self.id}, hash='{self.content_hash[:12]}', refs={self.reference_count})>"


class Stem(Base):
    """One track's contribution within a single commit"""
    __tablename__ = "stems"

    # Primary key
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    commit_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("commits.id", ondelete="CASCADE"),
        nullable=False
    )

    # Track metadata
    track_name: Mapped[str] = mapped_column(String(255), nullable=False)
    track_index: Mapped[int] = mapped_column(Integer, nullable=False)
    track_color: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    stem_type: Mapped[str] = mapped_column(String(10), nullable=False)

    # Content
    audio_file_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("blob_records.id"),
        nullable=True
    )
    midi_data: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    fx_settings: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)  # eq, compressor, reverb

    duration: Mapped[Optional[Decimal]] = mapped_column(DECIMAL(10, 3), nullable=True)  # seconds
    waveform_summary: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)

    # Timestamp
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False, default=utc_now)

    # Relationships
    commit: Mapped["Commit"] = relationship("Commit", back_populates="stems")
    audio_file: Mapped[Optional["BlobRecord"]] = relationship("BlobRecord")

    __table_args__ = (
        Index("ix_stems_commit_id", "commit_id"),
        Index("ix_stems_audio_file_id", "audio_file_id"),
        CheckConstraint("stem_type IN ('audio', 'midi', 'both')", name="ck_stems_stem_type"),
    )

    def __repr__(self) -> str:
        return f"<Stem(id={self.id}, track='{self.track_name}', commit_id={self.commit_id})>"
