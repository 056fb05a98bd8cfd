"""
StemVault Repository Layer
Data access layer with async operations over the commit graph
"""

from .base import BaseRepository
from .repository_repository import RepositoryRepository
from .branch_repository import BranchRepository
from .commit_repository import CommitRepository
from .stem_repository import StemRepository
from .blob_record_repository import BlobRecordRepository

__all__ = [
    "BaseRepository",
    "RepositoryRepository",
    "BranchRepository",
    "CommitRepository",
    "StemRepository",
    "BlobRecordRepository"
]
