"""
Access Scope Resolution

Turns a request identity into the set of branches the request may see.
Administrators see every branch; everyone else sees exactly their assigned
branch, and a caller with no assigned branch sees nothing. Report handlers only
ever receive an already-resolved scope.
"""

import logging
from dataclasses import dataclass
from typing import Optional, FrozenSet, Iterable, List

from ..auth import RequestContext
from .errors import AuthorizationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessScope:
    """
    Branch visibility for one request.

    branch_ids is None for "all branches"; otherwise it is the explicit set of
    visible branch ids, which may be empty.
    """
    branch_ids: Optional[FrozenSet[int]] = None

    @classmethod
    def all_branches(cls) -> 'AccessScope':
        return cls(branch_ids=None)

    @classmethod
    def single(cls, branch_id: int) -> 'AccessScope':
        return cls(branch_ids=frozenset([branch_id]))

    @classmethod
    def empty(cls) -> 'AccessScope':
        return cls(branch_ids=frozenset())

    @property
    def is_all(self) -> bool:
        return self.branch_ids is None

    @property
    def is_empty(self) -> bool:
        return self.branch_ids is not None and not self.branch_ids

    @property
    def branch_id(self) -> Optional[int]:
        """The single visible branch, when the scope is exactly one branch"""
        if self.branch_ids is not None and len(self.branch_ids) == 1:
            return next(iter(self.branch_ids))
        return None

    def includes(self, branch_id: Optional[int]) -> bool:
        if branch_id is None:
            return False
        return self.is_all or branch_id in self.branch_ids

    def filter(self, records: Iterable, attr: str = 'branch_id') -> List:
        """Keep only records whose branch falls inside the scope"""
        if self.is_all:
            return list(records)
        return [r for r in records if getattr(r, attr) in self.branch_ids]


def resolve_scope(context: RequestContext) -> AccessScope:
    """Resolve the branches visible to a caller"""
    if context.is_admin:
        return AccessScope.all_branches()
    if context.branch_id is None:
        logger.warning("Non-administrator request without an assigned branch; scope is empty")
        return AccessScope.empty()
    return AccessScope.single(context.branch_id)


def narrow_scope(scope: AccessScope, branch_id: Optional[int]) -> AccessScope:
    """
    Narrow a scope to one requested branch.

    Used when a caller explicitly asks for one branch (an administrator viewing a
    single branch). No branch requested leaves the scope unchanged; asking for a
    branch outside the scope is refused.
    """
    if branch_id is None:
        return scope
    if not scope.includes(branch_id):
        logger.warning(f"Refused access to branch {branch_id} outside caller scope")
        raise AuthorizationError("ليس لديك صلاحية للوصول إلى بيانات هذا الفرع")
    return AccessScope.single(branch_id)
