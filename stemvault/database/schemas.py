"""
StemVault Pydantic Schemas
Request/response models for API validation and serialization
"""

import uuid
from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from .models import StemType


# Base configuration for all schemas
class BaseSchema(BaseModel):
    """Base schema with common configuration"""
    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
        validate_assignment=True,
        arbitrary_types_allowed=True
    )


class CamelRequestSchema(BaseSchema):
    """Request schema accepting camelCase keys from web clients as well as snake_case"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True
    )


# FX Schemas
class EqSettings(BaseSchema):
    """Three-band EQ gains in dB"""
    low: float = Field(default=0.0, ge=-24.0, le=24.0)
    mid: float = Field(default=0.0, ge=-24.0, le=24.0)
    high: float = Field(default=0.0, ge=-24.0, le=24.0)


class CompressorSettings(BaseSchema):
    """Compressor parameters"""
    threshold: float = Field(default=-18.0, ge=-60.0, le=0.0, description="Threshold in dBFS")
    ratio: float = Field(default=3.0, ge=1.0, le=20.0)
    attack: float = Field(default=10.0, ge=0.0, le=1000.0, description="Attack in ms")
    release: float = Field(default=100.0, ge=0.0, le=5000.0, description="Release in ms")


class ReverbSettings(BaseSchema):
    """Reverb parameters"""
    decay: float = Field(default=1.5, ge=0.0, le=30.0, description="Decay in seconds")
    wet: float = Field(default=0.2, ge=0.0, le=1.0)


class FxSettings(BaseSchema):
    """Per-stem effect chain settings"""
    model_config = ConfigDict(extra="allow")

    eq: Optional[EqSettings] = None
    compressor: Optional[CompressorSettings] = None
    reverb: Optional[ReverbSettings] = None


# Stem Schemas
class StemDescriptor(CamelRequestSchema):
    """Stem metadata proposed as part of a commit"""
    track_name: str = Field(..., min_length=1, max_length=255, description="Track name")
    track_index: int = Field(..., ge=0, description="Track position")
    track_color: Optional[str] = Field(None, max_length=32, description="Track color")
    stem_type: StemType = Field(default=StemType.AUDIO, description="audio, midi or both")
    midi_data: Optional[Any] = Field(None, description="Structured MIDI payload")
    fx_settings: Optional[FxSettings] = Field(None, description="EQ / compressor / reverb parameters")
    duration: Optional[float] = Field(None, ge=0.0, description="Duration in seconds")
    waveform_summary: Optional[Any] = Field(None, alias="waveformData", description="Precomputed waveform peaks")


class BlobRecordResponse(BaseSchema):
    """Schema for blob record responses"""
    id: uuid.UUID
    content_hash: str
    storage_path: str
    storage_url: Optional[str] = None
    size_bytes: int
    format: str
    mime_type: Optional[str] = None
    duration: Optional[float] = None
    reference_count: int
    created_at: datetime


class StemResponse(BaseSchema):
    """Schema for stem responses"""
    id: uuid.UUID
    commit_id: uuid.UUID
    track_name: str
    track_index: int
    track_color: Optional[str] = None
    stem_type: str
    audio_file_id: Optional[uuid.UUID] = None
    midi_data: Optional[Any] = None
    fx_settings: Optional[Dict[str, Any]] = None
    duration: Optional[float] = None
    waveform_summary: Optional[Any] = None
    created_at: datetime


class StemDetail(StemResponse):
    """Schema for stem with its backing blob record"""
    audio_file: Optional[BlobRecordResponse] = None


class StemSummary(BaseSchema):
    """Compact stem view for history listings"""
    id: uuid.UUID
    track_name: str
    track_index: int
    track_color: Optional[str] = None
    stem_type: str
    duration: Optional[float] = None


class StemFailure(BaseSchema):
    """A stem that did not land in its commit"""
    stem_index: int
    track_name: str
    error: str = Field(..., description="Error code")
    detail: str
    retryable: bool = False


# Commit Schemas
class CommitResponse(BaseSchema):
    """Schema for commit responses"""
    id: uuid.UUID
    repository_id: uuid.UUID
    branch_id: uuid.UUID
    parent_commit_id: Optional[uuid.UUID] = None
    author_id: uuid.UUID
    message: str
    depth: int
    created_at: datetime


class CommitDetail(CommitResponse):
    """Schema for commit with stems and their blob records"""
    stems: List[StemDetail] = Field(default_factory=list)


class CommitSummary(CommitResponse):
    """Schema for commit with stem summaries"""
    stems: List[StemSummary] = Field(default_factory=list)


class CommitResult(BaseSchema):
    """Outcome of a commit-creation call"""
    commit: CommitResponse
    stems: List[StemResponse] = Field(default_factory=list)
    failures: List[StemFailure] = Field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return len(self.failures) > 0


# Branch Schemas
class BranchCreate(CamelRequestSchema):
    """Schema for creating a branch from an existing commit"""
    repository_id: uuid.UUID
    name: str = Field(..., min_length=1, max_length=255)
    source_commit_id: uuid.UUID

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Branch name must not be blank")
        return value


class BranchResponse(BaseSchema):
    """Schema for branch responses"""
    id: uuid.UUID
    repository_id: uuid.UUID
    name: str
    head_commit_id: Optional[uuid.UUID] = None
    created_at: datetime


class BranchHistory(BaseSchema):
    """Branch identity with its commits, newest first"""
    branch: BranchResponse
    commits: List[CommitSummary] = Field(default_factory=list)


# Repository Schemas
class RepositoryCreate(CamelRequestSchema):
    """Schema for initializing a project's repository"""
    project_id: uuid.UUID
    project_name: str = Field(..., min_length=1, max_length=255)
    default_branch: Optional[str] = Field(None, min_length=1, max_length=255)


class RepositoryResponse(BaseSchema):
    """Schema for repository responses"""
    id: uuid.UUID
    project_id: uuid.UUID
    project_name: str
    default_branch: str
    created_at: datetime


class RepositoryDetail(RepositoryResponse):
    """Schema for repository with its branches"""
    branches: List[BranchResponse] = Field(default_factory=list)


# Archive Manifest Schemas
class ManifestStem(BaseSchema):
    """Stem entry in an exported manifest; audio is referenced by content hash"""
    track_name: str
    track_index: int
    track_color: Optional[str] = None
    stem_type: str
    duration: Optional[float] = None
    fx_settings: Optional[Dict[str, Any]] = None
    midi_data: Optional[Any] = None
    content_hash: Optional[str] = None
    audio_file: Optional[str] = Field(None, description="Archive path of the stem's audio")


class ManifestCommit(BaseSchema):
    """Commit entry in an exported manifest"""
    id: uuid.UUID
    parent_commit_id: Optional[uuid.UUID] = None
    message: str
    author_id: uuid.UUID
    created_at: datetime
    depth: int
    stems: List[ManifestStem] = Field(default_factory=list)


class ManifestFile(BaseSchema):
    """One unique blob referenced by the exported history"""
    path: str
    content_hash: str
    size_bytes: int
    format: str
    mime_type: Optional[str] = None


class ManifestRepository(BaseSchema):
    id: uuid.UUID
    default_branch: str


class ManifestBranch(BaseSchema):
    id: uuid.UUID
    name: str
    head_commit_id: Optional[uuid.UUID] = None


class ArchiveManifest(BaseSchema):
    """The project.json document at the root of a clone archive"""
    format_version: int = 1
    project: Dict[str, Any]
    repository: ManifestRepository
    branch: ManifestBranch
    exported_at: datetime
    exported_by: uuid.UUID
    commits: List[ManifestCommit] = Field(default_factory=list)
    files: List[ManifestFile] = Field(default_factory=list)
    missing_files: List[str] = Field(default_factory=list)
    status: str = "complete"
