"""
Repository Repository
Data access for version-control repositories (one per project)
"""

import uuid
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Repository
from ..schemas import RepositoryCreate
from .base import BaseRepository, RepositoryError


class RepositoryRepository(BaseRepository[Repository, RepositoryCreate]):
    """Repository for version-control Repository rows"""

    def __init__(self, session: AsyncSession):
        super().__init__(Repository, session)

    async def get_by_project(self, project_id: uuid.UUID) -> Optional[Repository]:
        """Get the repository owned by a project"""
        try:
            result = await self.session.execute(
                select(self.model).where(self.model.project_id == project_id)
            )
            return result.scalar_one_or_none()
        except Exception as e:
            raise RepositoryError(f"Error getting project repository: {str(e)}")
