# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
In-memory directory used for tests, demos and embedding.
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from ..common.utils import get_current_time
from ..core.config import DEFAULT_DEPARTMENT_PERMISSIONS
from ..core.types import AccessLevel, OrgMembership, User
from ..hierarchy import PermissionHierarchy
from .types import Directory, PermissionSink


logger = logging.getLogger(__name__)


class MemoryDirectory(Directory, PermissionSink):
    """
    Directory and permission sink backed by dictionaries.

    Applied permissions written through ``apply_permissions_to_user`` are
    what ``has_permission`` answers from, so a resolution run immediately
    changes what the user may delegate.
    """

    def __init__(self, hierarchy: Optional[PermissionHierarchy] = None,
                 department_permissions: Optional[Mapping[str, Sequence[str]]] = None):
        self.hierarchy = hierarchy or PermissionHierarchy()
        table = department_permissions if department_permissions is not None else DEFAULT_DEPARTMENT_PERMISSIONS
        self._department_permissions: Dict[str, List[str]] = {k: list(v) for k, v in table.items()}
        self._memberships: Dict[str, List[OrgMembership]] = {}
        self._permissions: Dict[str, List[str]] = {}
        self._departments: Dict[str, str] = {}
        self._sources: Dict[str, str] = {}
        self._updated_at: Dict[str, datetime] = {}
        self._lock = asyncio.Lock()

    # Setup helpers
    def add_membership(self, user_id: str, org_unit_id: str, access_level, active: bool = True) -> None:
        membership = OrgMembership(user_id, org_unit_id, AccessLevel.parse(access_level), active)
        self._memberships.setdefault(user_id, []).append(membership)

    def set_permissions(self, user_id: str, permissions: Iterable[str]) -> None:
        self._permissions[user_id] = sorted(set(permissions))

    def set_department(self, user_id: str, department_id: str) -> None:
        self._departments[user_id] = department_id

    # Directory
    async def get_memberships(self, user_id: str) -> List[OrgMembership]:
        return list(self._memberships.get(user_id, []))

    async def has_permission(self, user_id: str, permission: str) -> bool:
        return self.hierarchy.satisfies(self._permissions.get(user_id, []), permission)

    async def get_department_permissions(self, user_id: str, department_id: str) -> List[str]:
        permissions = self._department_permissions.get(department_id, [])
        if permissions:
            logger.debug("Department %s grants %d permissions to %s", department_id, len(permissions), user_id)
        return list(permissions)

    async def get_user_department(self, user_id: str) -> Optional[str]:
        return self._departments.get(user_id)

    # PermissionSink
    async def apply_permissions_to_user(self, user: User, permissions: List[str], source: str) -> None:
        async with self._lock:
            self._permissions[user.id] = sorted(set(permissions))
            self._sources[user.id] = source
            self._updated_at[user.id] = get_current_time()
        user.permissions = sorted(set(permissions))
        logger.info("USER_PERMISSIONS_APPLIED user=%s total=%d source=%s", user.id, len(permissions), source)

    def applied_permissions(self, user_id: str) -> List[str]:
        return list(self._permissions.get(user_id, []))

    def permissions_source(self, user_id: str) -> Optional[str]:
        return self._sources.get(user_id)
