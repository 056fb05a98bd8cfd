"""
StemVault Authorization Collaborator
Yes/no access gate consulted before reads and mutations
"""

import enum
import uuid
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional, Set, Tuple

from ..core.errors import UnauthorizedError


class Permission(str, enum.Enum):
    """Access levels on a repository"""
    READ = "read"
    WRITE = "write"


class Authorizer(ABC):
    """Decides whether an actor may read or write a repository"""

    @abstractmethod
    async def is_allowed(
        self,
        actor_id: uuid.UUID,
        repository_id: uuid.UUID,
        permission: Permission,
        branch_id: Optional[uuid.UUID] = None
    ) -> bool:
        """Return True when the actor holds the permission"""

    async def authorize(
        self,
        actor_id: uuid.UUID,
        repository_id: uuid.UUID,
        permission: Permission,
        branch_id: Optional[uuid.UUID] = None
    ) -> None:
        """Raise UnauthorizedError unless the actor holds the permission"""
        if not await self.is_allowed(actor_id, repository_id, permission, branch_id):
            raise UnauthorizedError(
                f"Actor {actor_id} may not {permission.value} repository {repository_id}"
            )


class AllowAllAuthorizer(Authorizer):
    """Grants everything; membership checks happen upstream"""

    async def is_allowed(self, actor_id, repository_id, permission, branch_id=None) -> bool:
        return True


class StaticMembershipAuthorizer(Authorizer):
    """Membership table held in memory

    Write membership implies read access.
    """

    def __init__(self, grants: Optional[Iterable[Tuple[uuid.UUID, uuid.UUID, Permission]]] = None):
        self._grants: Dict[Tuple[uuid.UUID, uuid.UUID], Set[Permission]] = {}
        for actor_id, repository_id, permission in grants or []:
            self.grant(actor_id, repository_id, permission)

    def grant(self, actor_id: uuid.UUID, repository_id: uuid.UUID, permission: Permission) -> None:
        self._grants.setdefault((actor_id, repository_id), set()).add(permission)

    async def is_allowed(self, actor_id, repository_id, permission, branch_id=None) -> bool:
        held = self._grants.get((actor_id, repository_id), set())
        if permission == Permission.READ:
            return bool(held)
        return Permission.WRITE in held
