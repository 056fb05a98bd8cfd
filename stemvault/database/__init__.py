"""
StemVault Database Module
Exports database models, connection management, and Base
"""

from .connection import Base, DatabaseManager, database_manager
from .models import (
    Repository,
    Branch,
    Commit,
    Stem,
    BlobRecord,
    StemType
)

__all__ = [
    "Base",
    "DatabaseManager",
    "database_manager",
    "Repository",
    "Branch",
    "Commit",
    "Stem",
    "BlobRecord",
    "StemType"
]
