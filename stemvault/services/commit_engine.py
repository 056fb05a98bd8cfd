"""
StemVault Commit Graph Engine
Creates immutable commits, attaches stems and advances branch heads
"""

import asyncio
import time
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import StemVaultSettings, get_settings
from ..core.errors import (
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    RepositoryError,
    StorageUnavailableError,
    VersionControlError,
)
from ..core.logging import vcs_logger
from ..core.result import Result
from ..database.models import StemType, utc_now
from ..database.repositories import (
    BranchRepository,
    CommitRepository,
    RepositoryRepository,
    StemRepository,
)
from ..database.schemas import (
    CommitDetail,
    CommitResponse,
    CommitResult,
    StemDescriptor,
    StemFailure,
    StemResponse,
)
from .authorization import AllowAllAuthorizer, Authorizer, Permission
from .blob_store import BlobStore
from .dedup_index import AudioPayload, StemDeduplicationIndex, resolve_format


@dataclass
class StemUpload:
    """A proposed stem: its metadata plus the audio bytes, if any"""
    descriptor: StemDescriptor
    payload: Optional[AudioPayload] = None


class CommitGraphEngine:
    """
    Materializes commits on a branch.

    A commit lands in two phases. First the commit row is inserted with
    ``parent = branch.head`` and the head is moved to it by compare-and-set,
    in a single transaction that is retried with capped exponential backoff
    whenever another writer advanced the head in between. Then each stem is
    ingested and attached in its own transaction; a failing stem is recorded
    and skipped without touching the commit or its siblings.
    """

    def __init__(
        self,
        session: AsyncSession,
        blob_store: BlobStore,
        authorizer: Optional[Authorizer] = None,
        settings: Optional[StemVaultSettings] = None
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.authorizer = authorizer or AllowAllAuthorizer()

        self.repository_repo = RepositoryRepository(session)
        self.branch_repo = BranchRepository(session)
        self.commit_repo = CommitRepository(session)
        self.stem_repo = StemRepository(session)
        self.dedup_index = StemDeduplicationIndex(session, blob_store)

    async def create_commit(
        self,
        repository_id: uuid.UUID,
        branch_id: uuid.UUID,
        author_id: uuid.UUID,
        message: str,
        stems: Sequence[StemUpload] = ()
    ) -> CommitResult:
        """
        Create a commit on a branch and attach its stems.

        Args:
            repository_id: Repository owning the branch
            branch_id: Branch to extend
            author_id: Committing actor
            message: Commit message (non-empty)
            stems: Stem descriptors in submission order

        Returns:
            CommitResult with the landed commit, the attached stems and a
            failure entry for every stem that did not land

        Raises:
            InvalidRequestError: Empty message
            UnauthorizedError: Actor may not write the repository
            NotFoundError: Repository missing or branch not in repository
            ConflictError: Head kept moving after all CAS retries
        """
        if not message or not message.strip():
            raise InvalidRequestError("Commit message must not be empty")

        started = time.perf_counter()

        await self.authorizer.authorize(author_id, repository_id, Permission.WRITE, branch_id)

        repository = await self.repository_repo.get_or_404(repository_id)
        await self.branch_repo.get_in_repository(branch_id, repository_id)
        project_id = repository.project_id

        commit = await self._append_commit(repository_id, branch_id, author_id, message)

        attached: List[StemResponse] = []
        failures: List[StemFailure] = []

        for index, upload in enumerate(stems):
            outcome = await self._attach_stem(commit, project_id, index, upload)
            if outcome.is_ok():
                attached.append(outcome.unwrap())
                continue

            failure = StemFailure(
                stem_index=index,
                track_name=upload.descriptor.track_name,
                error=outcome.code or VersionControlError.code,
                detail=outcome.error or "Stem could not be attached",
                retryable=outcome.code == StorageUnavailableError.code
            )
            failures.append(failure)
            vcs_logger.log_stem_ingest_failed(
                str(commit.id), index, failure.track_name, failure.error, failure.detail
            )

        vcs_logger.log_commit_created(
            commit_id=str(commit.id),
            branch_id=str(branch_id),
            parent_commit_id=str(commit.parent_commit_id) if commit.parent_commit_id else None,
            stems_attached=len(attached),
            stems_failed=len(failures),
            duration_ms=(time.perf_counter() - started) * 1000
        )

        return CommitResult(commit=commit, stems=attached, failures=failures)

    async def _append_commit(
        self,
        repository_id: uuid.UUID,
        branch_id: uuid.UUID,
        author_id: uuid.UUID,
        message: str
    ) -> CommitResponse:
        """Insert a commit on top of the current head and CAS the head onto it"""
        commit_config = self.settings.get_commit_config()
        max_retries = commit_config["cas_max_retries"]

        for attempt in range(max_retries + 1):
            expected_head = await self.branch_repo.read_head(branch_id)

            created_at = utc_now()
            depth = 1
            if expected_head is not None:
                parent_created_at, parent_depth = await self.commit_repo.get_position(expected_head)
                created_at = max(created_at, parent_created_at)
                depth = parent_depth + 1

            commit = await self.commit_repo.create(
                repository_id=repository_id,
                branch_id=branch_id,
                parent_commit_id=expected_head,
                author_id=author_id,
                message=message,
                depth=depth,
                created_at=created_at
            )

            if await self.branch_repo.compare_and_set_head(branch_id, expected_head, commit.id):
                await self.session.commit()
                return CommitResponse.model_validate(commit)

            await self.session.rollback()

            if attempt == max_retries:
                break

            delay_ms = min(
                commit_config["cas_backoff_base_ms"] * (2 ** attempt),
                commit_config["cas_backoff_max_ms"]
            )
            vcs_logger.log_head_cas_retry(
                str(branch_id),
                str(expected_head) if expected_head else None,
                attempt + 1,
                delay_ms
            )
            await asyncio.sleep(delay_ms / 1000)

        raise ConflictError(
            f"Branch {branch_id} head moved concurrently; gave up after {max_retries + 1} attempts",
            branch_id=str(branch_id)
        )

    async def _attach_stem(
        self,
        commit: CommitResponse,
        project_id: uuid.UUID,
        index: int,
        upload: StemUpload
    ) -> Result[StemResponse]:
        """Ingest one stem's audio (if any) and persist the stem row"""
        descriptor = upload.descriptor
        stem_type = StemType(descriptor.stem_type)
        audio_file_id = None

        try:
            if stem_type.has_audio:
                payload = upload.payload
                if payload is None or not payload.data:
                    return Result.err(
                        f"Stem {index} ({descriptor.track_name}) has no audio payload",
                        code=InvalidRequestError.code
                    )
                if payload.size_bytes > self.settings.MAX_AUDIO_FILE_SIZE:
                    return Result.err(
                        f"Stem {index} audio exceeds {self.settings.MAX_AUDIO_FILE_SIZE} bytes",
                        code=InvalidRequestError.code
                    )
                file_format = resolve_format(payload.filename, payload.content_type)
                if not self.settings.validate_audio_format(file_format):
                    return Result.err(
                        f"Stem {index} audio format '{file_format}' is not supported",
                        code=InvalidRequestError.code
                    )

                ingest = await self.dedup_index.ingest(
                    payload,
                    namespace=f"projects/{project_id}/commits/{commit.id}",
                    duration=descriptor.duration,
                    uploaded_by=commit.author_id
                )
                if ingest.is_err():
                    await self.session.rollback()
                    await self.dedup_index.discard_uncommitted()
                    return Result.err(ingest.error, code=ingest.code)
                audio_file_id = ingest.unwrap().id

            stem = await self.stem_repo.create(
                commit_id=commit.id,
                track_name=descriptor.track_name,
                track_index=descriptor.track_index,
                track_color=descriptor.track_color,
                stem_type=stem_type.value,
                audio_file_id=audio_file_id,
                midi_data=descriptor.midi_data,
                fx_settings=(
                    descriptor.fx_settings.model_dump(exclude_none=True)
                    if descriptor.fx_settings else None
                ),
                duration=Decimal(str(round(descriptor.duration, 3))) if descriptor.duration is not None else None,
                waveform_summary=descriptor.waveform_summary
            )
            await self.session.commit()
            self.dedup_index.mark_committed()
            return Result.ok(StemResponse.model_validate(stem))

        except VersionControlError as e:
            await self.session.rollback()
            await self.dedup_index.discard_uncommitted()
            return Result.err(e.message, code=e.code)
        except SQLAlchemyError as e:
            await self.session.rollback()
            await self.dedup_index.discard_uncommitted()
            return Result.err(f"Failed to persist stem: {str(e)}", code=RepositoryError.code)

    async def get_commit(self, commit_id: uuid.UUID, actor_id: uuid.UUID) -> CommitDetail:
        """Get a commit with its stems and their blob records"""
        commit = await self.commit_repo.get_detail(commit_id)
        if commit is None:
            raise NotFoundError(f"Commit with id {commit_id} not found")

        await self.authorizer.authorize(actor_id, commit.repository_id, Permission.READ, commit.branch_id)
        return CommitDetail.model_validate(commit)

    async def get_lineage(self, commit_id: uuid.UUID, actor_id: uuid.UUID) -> List[CommitResponse]:
        """Get the parent chain of a commit, from the commit itself back to the root"""
        commit = await self.commit_repo.get_or_404(commit_id)
        await self.authorizer.authorize(actor_id, commit.repository_id, Permission.READ, commit.branch_id)

        lineage = await self.commit_repo.get_lineage(commit_id)
        return [CommitResponse.model_validate(c) for c in lineage]
