"""
StemVault Stem Deduplication Index
Content-addressed ingest of stem audio with reference counting
"""

import hashlib
import mimetypes
import uuid
from dataclasses import dataclass
from decimal import Decimal
from pathlib import PurePosixPath
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import (
    ConflictError,
    NotFoundError,
    RepositoryError,
    StorageUnavailableError,
)
from ..core.logging import storage_logger
from ..core.result import Result
from ..database.models import BlobRecord
from ..database.repositories.blob_record_repository import BlobRecordRepository
from ..database.repositories.stem_repository import StemRepository
from .blob_store import BlobStore


@dataclass
class AudioPayload:
    """Raw audio bytes uploaded for one stem"""
    data: bytes
    filename: Optional[str] = None
    content_type: Optional[str] = None

    @property
    def size_bytes(self) -> int:
        return len(self.data)


def compute_content_hash(data: bytes) -> str:
    """SHA-256 hex digest over the exact bytes"""
    return hashlib.sha256(data).hexdigest()


def resolve_format(filename: Optional[str], content_type: Optional[str]) -> str:
    """File format from the upload's extension, else its media type, else 'bin'"""
    if filename:
        suffix = PurePosixPath(filename).suffix.lstrip(".").lower()
        if suffix:
            return suffix

    if content_type:
        extension = mimetypes.guess_extension(content_type.split(";")[0].strip())
        if extension:
            return extension.lstrip(".").lower()

    return "bin"


class StemDeduplicationIndex:
    """
    Maps content hashes to blob records and decides store-vs-reuse.

    Duplicate content costs one atomic reference-count increment and zero
    blob store writes; novel content costs exactly one write.

    ``ingest`` leaves the transaction open so the caller can commit the blob
    reference together with the stem that uses it. Bytes written for a new
    record are tracked until the caller reports the outcome, with
    ``mark_committed`` after a commit or ``discard_uncommitted`` after a
    rollback. When two writers race to create the same record, the loser's
    transaction is rolled back, so each ingest must run at the start of its
    own unit of work.
    """

    def __init__(self, session: AsyncSession, blob_store: BlobStore):
        self.session = session
        self.blob_store = blob_store
        self.blob_repo = BlobRecordRepository(session)
        self.stem_repo = StemRepository(session)
        # Paths written for records not yet committed
        self._uncommitted: List[str] = []

    async def ingest(
        self,
        payload: AudioPayload,
        namespace: str,
        duration: Optional[float] = None,
        uploaded_by: Optional[uuid.UUID] = None
    ) -> Result[BlobRecord]:
        """
        Resolve a payload to a blob record, storing the bytes only if new.

        Args:
            payload: Uploaded bytes with their original filename / media type
            namespace: Storage prefix for novel content (e.g. project/commit)
            duration: Duration hint in seconds
            uploaded_by: Actor uploading the content

        Returns:
            Result wrapping the referenced BlobRecord, or an error tagged with
            the failure code when the stem must be skipped
        """
        content_hash = compute_content_hash(payload.data)

        try:
            existing = await self.blob_repo.increment_reference(content_hash)
        except RepositoryError as e:
            return Result.err(e.message, code=e.code)

        if existing is not None:
            storage_logger.log_blob_reused(content_hash, str(existing.id), existing.reference_count)
            return Result.ok(existing)

        file_format = resolve_format(payload.filename, payload.content_type)
        storage_path = f"{namespace.strip('/')}/{content_hash}.{file_format}"

        try:
            await self.blob_store.put(storage_path, payload.data, payload.content_type)
        except StorageUnavailableError as e:
            return Result.err(e.message, code=e.code)

        try:
            record = await self.blob_repo.create(
                content_hash=content_hash,
                storage_path=storage_path,
                storage_url=self.blob_store.public_url(storage_path),
                size_bytes=payload.size_bytes,
                format=file_format,
                mime_type=payload.content_type,
                duration=Decimal(str(round(duration, 3))) if duration is not None else None,
                uploaded_by=uploaded_by,
                reference_count=1
            )
        except ConflictError:
            # Another writer created the record first; reuse theirs
            await self._discard(storage_path)
            try:
                existing = await self.blob_repo.increment_reference(content_hash)
            except RepositoryError as e:
                return Result.err(e.message, code=e.code)
            if existing is None:
                return Result.err(
                    f"Blob record for {content_hash} vanished during ingest",
                    code=RepositoryError.code
                )
            storage_logger.log_blob_reused(content_hash, str(existing.id), existing.reference_count)
            return Result.ok(existing)
        except RepositoryError as e:
            await self._discard(storage_path)
            return Result.err(e.message, code=e.code)

        self._uncommitted.append(storage_path)
        storage_logger.log_blob_stored(content_hash, storage_path, payload.size_bytes)
        return Result.ok(record)

    def mark_committed(self) -> None:
        """Forget uploads whose records are now durable"""
        self._uncommitted.clear()

    async def discard_uncommitted(self) -> None:
        """Delete bytes uploaded for records a rollback has dropped"""
        paths, self._uncommitted = self._uncommitted, []
        for storage_path in paths:
            await self._discard(storage_path)

    async def release(self, blob_id: uuid.UUID) -> int:
        """
        Drop one reference to a blob record and commit.

        At zero references the record is deleted and its bytes removed from
        the blob store, unless stems still point at it; the record is then
        kept and the mismatch logged.

        Returns:
            The remaining reference count
        """
        remaining = await self.blob_repo.decrement_reference(blob_id)
        if remaining is None:
            raise NotFoundError(f"BlobRecord with id {blob_id} not found")

        storage_path = None
        if remaining == 0:
            referencing_stems = await self.stem_repo.count_by_blob(blob_id)
            if referencing_stems:
                storage_logger.logger.warning(
                    "Blob record released to zero while stems still reference it",
                    blob_id=str(blob_id),
                    referencing_stems=referencing_stems
                )
            else:
                record = await self.blob_repo.get(blob_id)
                storage_path = record.storage_path if record else None
                if not await self.blob_repo.delete_unreferenced(blob_id):
                    storage_path = None

        await self.session.commit()

        if storage_path:
            await self._discard(storage_path)

        storage_logger.log_blob_released(str(blob_id), remaining, reclaimed=storage_path is not None)
        return remaining

    async def _discard(self, storage_path: str) -> None:
        """Best-effort removal of bytes no record points at"""
        try:
            await self.blob_store.delete(storage_path)
        except StorageUnavailableError as e:
            storage_logger.logger.warning(
                "Failed to discard orphaned blob",
                storage_path=storage_path,
                error=e.message
            )
