"""
Stem Repository
Data access for stems attached to commits
"""

import uuid
from typing import List
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Stem
from .base import BaseRepository, RepositoryError


class StemRepository(BaseRepository[Stem, dict]):
    """Repository for Stem operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(Stem, session)

    async def get_by_commit(self, commit_id: uuid.UUID) -> List[Stem]:
        """Get all stems of a commit, ordered by track_index"""
        try:
            result = await self.session.execute(
                select(self.model)
                .where(self.model.commit_id == commit_id)
                .order_by(self.model.track_index)
            )
            return list(result.scalars().all())
        except Exception as e:
            raise RepositoryError(f"Error getting commit stems: {str(e)}")

    async def count_by_blob(self, blob_id: uuid.UUID) -> int:
        """Count stems referencing a blob record"""
        try:
            result = await self.session.execute(
                select(func.count(self.model.id))
                .where(self.model.audio_file_id == blob_id)
            )
            return result.scalar()
        except Exception as e:
            raise RepositoryError(f"Error counting blob references: {str(e)}")
