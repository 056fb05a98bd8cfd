"""
Base Repository
Common data-access operations for all entities
"""

import uuid
from typing import Generic, TypeVar, Type, Optional, List, Dict, Any
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from ...core.errors import RepositoryError, NotFoundError, ConflictError
from ..connection import Base

# Type variables for generic repository
ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType")


class BaseRepository(Generic[ModelType, CreateSchemaType]):
    """Base repository with common create/read operations

    Version-control rows are append-only, so there is no generic update or
    delete here; the few mutable columns get dedicated atomic statements.
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    async def create(self, obj_in: Optional[CreateSchemaType] = None, **kwargs) -> ModelType:
        """Create a new entity"""
        try:
            # Convert Pydantic model to dict
            if obj_in is None:
                obj_data: Dict[str, Any] = {}
            elif isinstance(obj_in, dict):
                obj_data = dict(obj_in)
            else:
                obj_data = obj_in.model_dump()

            # Add any additional kwargs
            obj_data.update(kwargs)

            db_obj = self.model(**obj_data)
            self.session.add(db_obj)
            await self.session.flush()
            return db_obj

        except IntegrityError as e:
            await self.session.rollback()
            raise ConflictError(f"Data conflict: {str(e.orig)}")

    async def get(self, id: uuid.UUID) -> Optional[ModelType]:
        """Get entity by ID"""
        try:
            result = await self.session.execute(
                select(self.model)
                .where(self.model.id == id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except Exception as e:
            raise RepositoryError(f"Error getting entity: {str(e)}")

    async def get_or_404(self, id: uuid.UUID) -> ModelType:
        """Get entity by ID or raise NotFoundError"""
        obj = await self.get(id)
        if obj is None:
            raise NotFoundError(f"{self.model.__name__} with id {id} not found")
        return obj

    async def get_multi(
        self,
        skip: int = 0,
        limit: int = 100,
        order_by: Optional[str] = None,
        filters: Optional[Dict[str, Any]] = None
    ) -> List[ModelType]:
        """Get multiple entities with pagination and filtering"""
        try:
            query = select(self.model)

            # Apply filters
            if filters:
                for field, value in filters.items():
                    if hasattr(self.model, field):
                        column = getattr(self.model, field)
                        if isinstance(value, list):
                            query = query.where(column.in_(value))
                        else:
                            query = query.where(column == value)

            # Apply ordering
            if order_by and hasattr(self.model, order_by):
                column = getattr(self.model, order_by)
                query = query.order_by(column)
            elif hasattr(self.model, 'created_at'):
                query = query.order_by(self.model.created_at.desc())

            query = query.offset(skip).limit(limit).execution_options(populate_existing=True)

            result = await self.session.execute(query)
            return list(result.scalars().all())

        except Exception as e:
            raise RepositoryError(f"Error getting entities: {str(e)}")

    async def exists(self, id: uuid.UUID) -> bool:
        """Check if entity exists"""
        try:
            result = await self.session.execute(
                select(func.count(self.model.id)).where(self.model.id == id)
            )
            return result.scalar() > 0
        except Exception as e:
            raise RepositoryError(f"Error checking entity existence: {str(e)}")

    async def count(self, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count entities with optional filters"""
        try:
            query = select(func.count(self.model.id))

            if filters:
                for field, value in filters.items():
                    if hasattr(self.model, field):
                        column = getattr(self.model, field)
                        if isinstance(value, list):
                            query = query.where(column.in_(value))
                        else:
                            query = query.where(column == value)

            result = await self.session.execute(query)
            return result.scalar()

        except Exception as e:
            raise RepositoryError(f"Error counting entities: {str(e)}")


__all__ = [
    "BaseRepository",
    "RepositoryError",
    "NotFoundError",
    "ConflictError",
]
