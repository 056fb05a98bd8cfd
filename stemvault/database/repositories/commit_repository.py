"""
Commit Repository
Data access for the append-only commit graph
"""

import uuid
from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..models import Commit, Stem
from .base import BaseRepository, RepositoryError, NotFoundError


class CommitRepository(BaseRepository[Commit, dict]):
    """Repository for Commit operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(Commit, session)

    async def get_in_repository(
        self,
        commit_id: uuid.UUID,
        repository_id: uuid.UUID
    ) -> Commit:
        """Get a commit, requiring it to belong to the given repository"""
        try:
            result = await self.session.execute(
                select(self.model).where(
                    (self.model.id == commit_id) &
                    (self.model.repository_id == repository_id)
                ).execution_options(populate_existing=True)
            )
            commit = result.scalar_one_or_none()
        except Exception as e:
            raise RepositoryError(f"Error getting repository commit: {str(e)}")

        if commit is None:
            raise NotFoundError(
                f"Commit {commit_id} not found in repository {repository_id}"
            )
        return commit

    async def get_position(self, commit_id: uuid.UUID) -> Tuple[datetime, int]:
        """Get (created_at, depth) of a commit"""
        try:
            result = await self.session.execute(
                select(self.model.created_at, self.model.depth)
                .where(self.model.id == commit_id)
            )
            row = result.one_or_none()
        except Exception as e:
            raise RepositoryError(f"Error getting commit position: {str(e)}")

        if row is None:
            raise NotFoundError(f"Commit with id {commit_id} not found")
        return row.created_at, row.depth

    async def get_detail(self, commit_id: uuid.UUID) -> Optional[Commit]:
        """Get commit with stems and their blob records loaded"""
        try:
            result = await self.session.execute(
                select(self.model)
                .where(self.model.id == commit_id)
                .options(
                    selectinload(self.model.stems).selectinload(Stem.audio_file)
                )
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except Exception as e:
            raise RepositoryError(f"Error getting commit detail: {str(e)}")

    async def get_history(
        self,
        repository_id: uuid.UUID,
        branch_id: Optional[uuid.UUID] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[Commit]:
        """Get repository commits newest first, optionally for one branch"""
        try:
            query = select(self.model).where(self.model.repository_id == repository_id)

            if branch_id:
                query = query.where(self.model.branch_id == branch_id)

            query = (
                query
                .options(selectinload(self.model.stems))
                .execution_options(populate_existing=True)
                .order_by(self.model.created_at.desc(), self.model.depth.desc())
                .offset(skip)
                .limit(limit)
            )

            result = await self.session.execute(query)
            return list(result.scalars().all())
        except Exception as e:
            raise RepositoryError(f"Error getting commit history: {str(e)}")

    async def get_branch_history(
        self,
        branch_id: uuid.UUID,
        skip: int = 0,
        limit: int = 100
    ) -> List[Commit]:
        """Get commits of a branch newest first, with stems loaded"""
        try:
            result = await self.session.execute(
                select(self.model)
                .where(self.model.branch_id == branch_id)
                .options(selectinload(self.model.stems))
                .execution_options(populate_existing=True)
                .order_by(self.model.created_at.desc(), self.model.depth.desc())
                .offset(skip)
                .limit(limit)
            )
            return list(result.scalars().all())
        except Exception as e:
            raise RepositoryError(f"Error getting branch history: {str(e)}")

    async def get_branch_commits_chronological(self, branch_id: uuid.UUID) -> List[Commit]:
        """Get every commit of a branch oldest first, with stems and blob records loaded"""
        try:
            result = await self.session.execute(
                select(self.model)
                .where(self.model.branch_id == branch_id)
                .options(
                    selectinload(self.model.stems).selectinload(Stem.audio_file)
                )
                .execution_options(populate_existing=True)
                .order_by(self.model.created_at.asc(), self.model.depth.asc())
            )
            return list(result.scalars().all())
        except Exception as e:
            raise RepositoryError(f"Error getting branch commits: {str(e)}")

    async def get_lineage(self, commit_id: uuid.UUID, limit: int = 10000) -> List[Commit]:
        """Walk parent links from a commit back to its root, newest first"""
        lineage: List[Commit] = []
        seen = set()
        current: Optional[uuid.UUID] = commit_id

        while current is not None and len(lineage) < limit:
            if current in seen:
                raise RepositoryError(f"Cycle detected in commit graph at {current}")
            seen.add(current)

            commit = await self.get(current)
            if commit is None:
                raise NotFoundError(f"Commit with id {current} not found")

            lineage.append(commit)
            current = commit.parent_commit_id

        return lineage
