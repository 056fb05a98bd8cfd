"""
StemVault API Dependencies
Request-scoped sessions, collaborators and services for the routers
"""

import uuid
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.connection import database_manager
from ..services.authorization import AllowAllAuthorizer, Authorizer
from ..services.blob_store import BlobStore
from ..services.branch_manager import BranchManager
from ..services.clone_exporter import CloneExporter
from ..services.commit_engine import CommitGraphEngine

ACTOR_HEADER = "X-Actor-Id"


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """One database session per request"""
    async with database_manager.get_session() as session:
        yield session


def get_blob_store(request: Request) -> BlobStore:
    """Blob store created at startup"""
    return request.app.state.blob_store


def get_authorizer(request: Request) -> Authorizer:
    """Authorization collaborator; everything is allowed unless one is installed"""
    return getattr(request.app.state, "authorizer", None) or AllowAllAuthorizer()


async def get_actor_id(x_actor_id: Optional[str] = Header(None, alias=ACTOR_HEADER)) -> uuid.UUID:
    """Actor identity set by the upstream authentication layer"""
    if not x_actor_id:
        raise HTTPException(status_code=401, detail=f"Missing {ACTOR_HEADER} header")
    try:
        return uuid.UUID(x_actor_id)
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Invalid {ACTOR_HEADER} header")


def get_commit_engine(
    session: AsyncSession = Depends(get_db_session),
    blob_store: BlobStore = Depends(get_blob_store),
    authorizer: Authorizer = Depends(get_authorizer)
) -> CommitGraphEngine:
    return CommitGraphEngine(session, blob_store, authorizer)


def get_branch_manager(
    session: AsyncSession = Depends(get_db_session),
    authorizer: Authorizer = Depends(get_authorizer)
) -> BranchManager:
    return BranchManager(session, authorizer)


def get_clone_exporter(
    session: AsyncSession = Depends(get_db_session),
    blob_store: BlobStore = Depends(get_blob_store),
    authorizer: Authorizer = Depends(get_authorizer)
) -> CloneExporter:
    return CloneExporter(session, blob_store, authorizer)
