# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Interfaces of the external collaborators the engine reads from and writes to.

The corporate directory (org-unit memberships, department permissions, the
currently applied permission field) lives outside this package; these
abstract classes describe only what the engine needs from it.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..core.types import AccessLevel, OrgMembership, User


class Directory(ABC):
    """Read side of the corporate directory."""

    @abstractmethod
    async def get_memberships(self, user_id: str) -> List[OrgMembership]:
        """Return the user's organizational-unit memberships."""
        pass

    @abstractmethod
    async def has_permission(self, user_id: str, permission: str) -> bool:
        """Whether the user currently holds ``permission``."""
        pass

    @abstractmethod
    async def get_department_permissions(self, user_id: str, department_id: str) -> List[str]:
        """Permissions granted by membership of a department. Pure lookup."""
        pass

    @abstractmethod
    async def get_user_department(self, user_id: str) -> Optional[str]:
        """The department the directory assigns to the user, if any."""
        pass

    async def shared_levels(self, first_id: str, second_id: str) -> Optional[tuple]:
        """
        Access levels of two users in an active org unit they share.

        Returns ``(first_level, second_level)`` for the shared unit where the
        first user ranks highest, or None if they share no active unit.
        """
        first = {m.org_unit_id: m for m in await self.get_memberships(first_id) if m.active}
        second = {m.org_unit_id: m for m in await self.get_memberships(second_id) if m.active}

        best = None
        for unit_id in first.keys() & second.keys():
            pair = (first[unit_id].access_level, second[unit_id].access_level)
            if best is None or (pair[0] - pair[1]) > (best[0] - best[1]):
                best = pair
        return best

    async def highest_level(self, user_id: str) -> Optional[AccessLevel]:
        levels = [m.access_level for m in await self.get_memberships(user_id) if m.active]
        return max(levels) if levels else None


class PermissionSink(ABC):
    """Write side: the externally queryable authorization field."""

    @abstractmethod
    async def apply_permissions_to_user(self, user: User, permissions: List[str], source: str) -> None:
        """Replace the user's applied permissions with ``permissions``."""
        pass
