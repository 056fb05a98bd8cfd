"""
StemVault Branch Manager
Repository initialization, branch creation and history browsing
"""

import uuid
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..core.errors import ConflictError, InvalidRequestError
from ..core.logging import vcs_logger
from ..database.repositories import (
    BranchRepository,
    CommitRepository,
    RepositoryRepository,
)
from ..database.schemas import (
    BranchCreate,
    BranchHistory,
    BranchResponse,
    CommitSummary,
    RepositoryCreate,
    RepositoryDetail,
    RepositoryResponse,
)
from .authorization import AllowAllAuthorizer, Authorizer, Permission


class BranchManager:
    """Creates and validates branches; the named pointers into the commit graph"""

    def __init__(self, session: AsyncSession, authorizer: Optional[Authorizer] = None):
        self.session = session
        self.authorizer = authorizer or AllowAllAuthorizer()

        self.repository_repo = RepositoryRepository(session)
        self.branch_repo = BranchRepository(session)
        self.commit_repo = CommitRepository(session)

    async def initialize_repository(
        self,
        request: RepositoryCreate,
        actor_id: uuid.UUID
    ) -> RepositoryDetail:
        """
        Create a project's repository together with its empty default branch.

        Raises:
            ConflictError: The project already has a repository
        """
        default_branch = request.default_branch or get_settings().DEFAULT_BRANCH_NAME

        if await self.repository_repo.get_by_project(request.project_id) is not None:
            raise ConflictError(f"Project {request.project_id} already has a repository")

        repository = await self.repository_repo.create(
            project_id=request.project_id,
            project_name=request.project_name,
            default_branch=default_branch,
            created_by=actor_id
        )
        branch = await self.branch_repo.create(
            repository_id=repository.id,
            name=default_branch,
            head_commit_id=None,
            created_by=actor_id
        )
        await self.session.commit()

        vcs_logger.log_repository_initialized(str(repository.id), str(request.project_id), default_branch)
        vcs_logger.log_branch_created(str(branch.id), str(repository.id), default_branch, None)

        return RepositoryDetail(
            **RepositoryResponse.model_validate(repository).model_dump(),
            branches=[BranchResponse.model_validate(branch)]
        )

    async def create_branch(self, request: BranchCreate, actor_id: uuid.UUID) -> BranchResponse:
        """
        Create a branch whose head is an existing commit of the same repository.

        Name uniqueness is enforced by the storage layer's unique constraint,
        so two concurrent creations with the same name cannot both succeed.

        Raises:
            UnauthorizedError: Actor may not write the repository
            NotFoundError: Repository or source commit missing / foreign
            ConflictError: Name already used in the repository
        """
        await self.authorizer.authorize(actor_id, request.repository_id, Permission.WRITE)

        await self.repository_repo.get_or_404(request.repository_id)
        await self.commit_repo.get_in_repository(request.source_commit_id, request.repository_id)

        if await self.branch_repo.get_by_name(request.repository_id, request.name) is not None:
            raise ConflictError(
                f"Branch '{request.name}' already exists in repository {request.repository_id}"
            )

        branch = await self.branch_repo.create(
            repository_id=request.repository_id,
            name=request.name,
            head_commit_id=request.source_commit_id,
            created_by=actor_id
        )
        await self.session.commit()

        vcs_logger.log_branch_created(
            str(branch.id), str(request.repository_id), request.name, str(request.source_commit_id)
        )
        return BranchResponse.model_validate(branch)

    async def list_branches(self, repository_id: uuid.UUID, actor_id: uuid.UUID) -> List[BranchResponse]:
        """List a repository's branches, oldest first"""
        await self.authorizer.authorize(actor_id, repository_id, Permission.READ)
        await self.repository_repo.get_or_404(repository_id)

        branches = await self.branch_repo.list_by_repository(repository_id)
        return [BranchResponse.model_validate(b) for b in branches]

    async def get_branch_history(
        self,
        branch_id: uuid.UUID,
        actor_id: uuid.UUID,
        skip: int = 0,
        limit: int = 100
    ) -> BranchHistory:
        """Get a branch with its commits, newest first"""
        branch = await self.branch_repo.get_or_404(branch_id)
        await self.authorizer.authorize(actor_id, branch.repository_id, Permission.READ, branch_id)

        commits = await self.commit_repo.get_branch_history(branch_id, skip=skip, limit=limit)
        return BranchHistory(
            branch=BranchResponse.model_validate(branch),
            commits=[CommitSummary.model_validate(c) for c in commits]
        )

    async def get_repository_history(
        self,
        repository_id: uuid.UUID,
        actor_id: uuid.UUID,
        branch_id: Optional[uuid.UUID] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[CommitSummary]:
        """Get a repository's commits newest first, optionally for one branch"""
        if skip < 0 or limit <= 0:
            raise InvalidRequestError("skip must be >= 0 and limit > 0")

        await self.authorizer.authorize(actor_id, repository_id, Permission.READ, branch_id)
        await self.repository_repo.get_or_404(repository_id)
        if branch_id is not None:
            await self.branch_repo.get_in_repository(branch_id, repository_id)

        commits = await self.commit_repo.get_history(repository_id, branch_id, skip=skip, limit=limit)
        return [CommitSummary.model_validate(c) for c in commits]
