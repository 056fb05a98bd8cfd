"""
StemVault Commits API Routes
REST endpoints for creating and inspecting commits
"""

import json
import uuid
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.datastructures import UploadFile

from ...core.errors import InvalidRequestError, PartialStemFailure
from ...database.schemas import CommitDetail, CommitResponse, StemDescriptor
from ...services.commit_engine import CommitGraphEngine, StemUpload
from ...services.dedup_index import AudioPayload
from ..dependencies import get_actor_id, get_commit_engine

router = APIRouter()


def _parse_uuid(value: Any, field_name: str) -> uuid.UUID:
    if not isinstance(value, str) or not value:
        raise InvalidRequestError(f"{field_name} is required")
    try:
        return uuid.UUID(value)
    except ValueError:
        raise InvalidRequestError(f"{field_name} is not a valid id: {value}")


def _parse_stems(raw: Optional[Any]) -> List[StemDescriptor]:
    if raw is None or raw == "":
        return []
    if not isinstance(raw, str):
        raise InvalidRequestError("stemsData must be a JSON string")

    try:
        items = json.loads(raw)
    except ValueError as e:
        raise InvalidRequestError(f"stemsData is not valid JSON: {e}")

    if not isinstance(items, list):
        raise InvalidRequestError("stemsData must be a JSON array")

    try:
        return [StemDescriptor.model_validate(item) for item in items]
    except ValidationError as e:
        raise InvalidRequestError(f"Invalid stem descriptor: {e}")


@router.post("", status_code=201)
async def create_commit(
    request: Request,
    actor_id: uuid.UUID = Depends(get_actor_id),
    engine: CommitGraphEngine = Depends(get_commit_engine)
):
    """
    Create a commit from a multipart form

    Fields: repositoryId, branchId, message, stemsData (JSON array of stem
    descriptors) and an optional file part ``stem_{i}_audio`` per stem index.
    Returns 201 when every stem landed, 207 when some failed.
    """
    form = await request.form()
    try:
        repository_id = _parse_uuid(form.get("repositoryId"), "repositoryId")
        branch_id = _parse_uuid(form.get("branchId"), "branchId")
        message = form.get("message")
        if not isinstance(message, str):
            raise InvalidRequestError("message is required")
        descriptors = _parse_stems(form.get("stemsData"))

        uploads = []
        for index, descriptor in enumerate(descriptors):
            part = form.get(f"stem_{index}_audio")
            payload = None
            if isinstance(part, UploadFile):
                payload = AudioPayload(
                    data=await part.read(),
                    filename=part.filename,
                    content_type=part.content_type
                )
            uploads.append(StemUpload(descriptor=descriptor, payload=payload))
    finally:
        await form.close()

    result = await engine.create_commit(repository_id, branch_id, actor_id, message, uploads)
    content = {"success": True, **result.model_dump(mode="json")}

    if result.is_partial:
        content["error"] = PartialStemFailure.code
        return JSONResponse(status_code=PartialStemFailure.status_code, content=content)

    return JSONResponse(status_code=201, content=content)


@router.get("/{commit_id}", response_model=CommitDetail)
async def get_commit(
    commit_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_actor_id),
    engine: CommitGraphEngine = Depends(get_commit_engine)
):
    """Get a commit with its stems and their blob records"""
    return await engine.get_commit(commit_id, actor_id)


@router.get("/{commit_id}/lineage", response_model=List[CommitResponse])
async def get_commit_lineage(
    commit_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_actor_id),
    engine: CommitGraphEngine = Depends(get_commit_engine)
):
    """Get the parent chain of a commit back to its branch root"""
    return await engine.get_lineage(commit_id, actor_id)
