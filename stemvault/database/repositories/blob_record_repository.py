"""
Blob Record Repository
Hash-keyed index over stored blobs with atomic reference counting
"""

import uuid
from typing import Optional
from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import BlobRecord
from .base import BaseRepository, RepositoryError


class BlobRecordRepository(BaseRepository[BlobRecord, dict]):
    """Repository for BlobRecord operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(BlobRecord, session)

    async def get_by_hash(self, content_hash: str) -> Optional[BlobRecord]:
        """Get the blob record for a content hash (fresh from the database)"""
        try:
            result = await self.session.execute(
                select(self.model)
                .where(self.model.content_hash == content_hash)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except Exception as e:
            raise RepositoryError(f"Error getting blob by hash: {str(e)}")

    async def increment_reference(self, content_hash: str) -> Optional[BlobRecord]:
        """Atomically add one reference to the record for content_hash

        Returns the updated record, or None when no record exists for the hash.
        """
        try:
            result = await self.session.execute(
                update(self.model)
                .where(self.model.content_hash == content_hash)
                .values(reference_count=self.model.reference_count + 1)
                .execution_options(synchronize_session=False)
            )
        except Exception as e:
            raise RepositoryError(f"Error incrementing blob reference: {str(e)}")

        if result.rowcount == 0:
            return None
        return await self.get_by_hash(content_hash)

    async def decrement_reference(self, blob_id: uuid.UUID) -> Optional[int]:
        """Atomically remove one reference, saturating at zero

        Returns the new count, or None when the record does not exist.
        """
        try:
            await self.session.execute(
                update(self.model)
                .where((self.model.id == blob_id) & (self.model.reference_count > 0))
                .values(reference_count=self.model.reference_count - 1)
                .execution_options(synchronize_session=False)
            )
            result = await self.session.execute(
                select(self.model.reference_count).where(self.model.id == blob_id)
            )
            return result.scalar_one_or_none()
        except Exception as e:
            raise RepositoryError(f"Error decrementing blob reference: {str(e)}")

    async def delete_unreferenced(self, blob_id: uuid.UUID) -> bool:
        """Delete the record only if nothing references it any more"""
        try:
            result = await self.session.execute(
                delete(self.model)
                .where((self.model.id == blob_id) & (self.model.reference_count == 0))
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1
        except Exception as e:
            raise RepositoryError(f"Error deleting blob record: {str(e)}")
