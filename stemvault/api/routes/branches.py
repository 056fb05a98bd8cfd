"""
StemVault Branches API Routes
REST endpoints for branch creation and branch history
"""

import uuid

from fastapi import APIRouter, Depends, Query

from ...database.schemas import BranchCreate, BranchHistory, BranchResponse
from ...services.branch_manager import BranchManager
from ..dependencies import get_actor_id, get_branch_manager

router = APIRouter()


@router.post("", response_model=BranchResponse, status_code=201)
async def create_branch(
    request: BranchCreate,
    actor_id: uuid.UUID = Depends(get_actor_id),
    manager: BranchManager = Depends(get_branch_manager)
):
    """Create a branch pointing at an existing commit"""
    return await manager.create_branch(request, actor_id)


@router.get("/{branch_id}/commits", response_model=BranchHistory)
async def get_branch_commits(
    branch_id: uuid.UUID,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, gt=0, le=1000),
    actor_id: uuid.UUID = Depends(get_actor_id),
    manager: BranchManager = Depends(get_branch_manager)
):
    """Get a branch's commits, newest first"""
    return await manager.get_branch_history(branch_id, actor_id, skip=skip, limit=limit)
