"""
Branch Repository
Data access for branches, including the compare-and-set head update
"""

import uuid
from typing import List, Optional
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Branch
from ..schemas import BranchCreate
from .base import BaseRepository, RepositoryError, NotFoundError


class BranchRepository(BaseRepository[Branch, BranchCreate]):
    """Repository for Branch operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(Branch, session)

    async def get_in_repository(
        self,
        branch_id: uuid.UUID,
        repository_id: uuid.UUID
    ) -> Branch:
        """Get a branch, requiring it to belong to the given repository"""
        try:
            result = await self.session.execute(
                select(self.model).where(
                    (self.model.id == branch_id) &
                    (self.model.repository_id == repository_id)
                ).execution_options(populate_existing=True)
            )
            branch = result.scalar_one_or_none()
        except Exception as e:
            raise RepositoryError(f"Error getting repository branch: {str(e)}")

        if branch is None:
            raise NotFoundError(
                f"Branch {branch_id} not found in repository {repository_id}"
            )
        return branch

    async def get_by_name(
        self,
        repository_id: uuid.UUID,
        name: str
    ) -> Optional[Branch]:
        """Get a branch by exact (case-sensitive) name"""
        try:
            result = await self.session.execute(
                select(self.model).where(
                    (self.model.repository_id == repository_id) &
                    (self.model.name == name)
                ).execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except Exception as e:
            raise RepositoryError(f"Error getting branch by name: {str(e)}")

    async def list_by_repository(self, repository_id: uuid.UUID) -> List[Branch]:
        """Get all branches of a repository, oldest first"""
        return await self.get_multi(
            filters={"repository_id": repository_id},
            order_by="created_at",
            limit=1000
        )

    async def read_head(self, branch_id: uuid.UUID) -> Optional[uuid.UUID]:
        """Read the current head pointer, bypassing the identity map"""
        try:
            result = await self.session.execute(
                select(self.model.head_commit_id).where(self.model.id == branch_id)
            )
            return result.scalar_one_or_none()
        except Exception as e:
            raise RepositoryError(f"Error reading branch head: {str(e)}")

    async def compare_and_set_head(
        self,
        branch_id: uuid.UUID,
        expected_head: Optional[uuid.UUID],
        new_head: uuid.UUID
    ) -> bool:
        """Atomically move the head from expected_head to new_head

        Returns False when another writer moved the head first.
        """
        if expected_head is None:
            head_matches = self.model.head_commit_id.is_(None)
        else:
            head_matches = self.model.head_commit_id == expected_head

        try:
            result = await self.session.execute(
                update(self.model)
                .where((self.model.id == branch_id) & head_matches)
                .values(head_commit_id=new_head)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1
        except Exception as e:
            raise RepositoryError(f"Error updating branch head: {str(e)}")
