"""
StemVault Repositories API Routes
REST endpoints for repository setup, history and clone export
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from ...database.schemas import (
    BranchResponse,
    CommitSummary,
    RepositoryCreate,
    RepositoryDetail,
)
from ...services.branch_manager import BranchManager
from ...services.clone_exporter import CloneExporter
from ..dependencies import get_actor_id, get_branch_manager, get_clone_exporter

router = APIRouter()


@router.post("", response_model=RepositoryDetail, status_code=201)
async def initialize_repository(
    request: RepositoryCreate,
    actor_id: uuid.UUID = Depends(get_actor_id),
    manager: BranchManager = Depends(get_branch_manager)
):
    """Create a project's repository and its empty default branch"""
    return await manager.initialize_repository(request, actor_id)


@router.get("/{repository_id}/branches", response_model=List[BranchResponse])
async def list_branches(
    repository_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_actor_id),
    manager: BranchManager = Depends(get_branch_manager)
):
    """List a repository's branches"""
    return await manager.list_branches(repository_id, actor_id)


@router.get("/{repository_id}/commits", response_model=List[CommitSummary])
async def get_repository_commits(
    repository_id: uuid.UUID,
    branch_id: Optional[uuid.UUID] = Query(None, alias="branchId"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, gt=0, le=1000),
    actor_id: uuid.UUID = Depends(get_actor_id),
    manager: BranchManager = Depends(get_branch_manager)
):
    """Get repository history newest first, optionally for one branch"""
    return await manager.get_repository_history(
        repository_id, actor_id, branch_id=branch_id, skip=skip, limit=limit
    )


@router.post("/{repository_id}/clone")
async def clone_repository(
    repository_id: uuid.UUID,
    branch_id: Optional[uuid.UUID] = Query(None, alias="branchId"),
    actor_id: uuid.UUID = Depends(get_actor_id),
    exporter: CloneExporter = Depends(get_clone_exporter)
):
    """
    Stream a zip archive of a branch's full history

    The archive holds project.json plus one stems/{hash}.{format} entry per
    unique blob. Archives with unretrievable blobs carry
    ``X-Archive-Status: ArchiveIncomplete``.
    """
    archive = await exporter.export(repository_id, actor_id, branch_id=branch_id)

    headers = {
        "Content-Disposition": f'attachment; filename="{archive.filename}"',
        "X-Archive-Status": archive.status,
    }
    if not archive.is_complete:
        headers["X-Archive-Missing-Files"] = str(len(archive.missing_files))

    return StreamingResponse(
        archive.iter_chunks(),
        media_type="application/zip",
        headers=headers
    )
