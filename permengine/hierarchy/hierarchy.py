# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Static permission hierarchy: a rank per permission and a table of which broad
permissions subsume which narrower ones.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from ..core.config import DEFAULT_INCLUSION_RULES, DEFAULT_PERMISSION_RANKS


logger = logging.getLogger(__name__)


class PermissionHierarchy:
    """
    Rank and inclusion lookup used to collapse resolved permission sets.

    Inclusion is direct: ``includes(a, c)`` is not implied by ``a -> b`` and
    ``b -> c``. The hierarchy only ever removes entries from a set; it never
    adds permissions the user was not otherwise given.
    """

    def __init__(self, ranks: Optional[Mapping[str, int]] = None,
                 inclusion_rules: Optional[Mapping[str, Sequence[str]]] = None):
        self._ranks: Dict[str, int] = dict(ranks if ranks is not None else DEFAULT_PERMISSION_RANKS)
        rules = inclusion_rules if inclusion_rules is not None else DEFAULT_INCLUSION_RULES
        self._includes: Dict[str, Set[str]] = {broad: set(narrow) for broad, narrow in rules.items()}

    @classmethod
    def from_config(cls, config) -> "PermissionHierarchy":
        return cls(config.permission_ranks, config.inclusion_rules)

    def rank(self, permission: str) -> int:
        """Numeric rank of a permission; unknown permissions rank 0."""
        return self._ranks.get(permission, 0)

    def includes(self, broad: str, narrow: str) -> bool:
        """True if holding ``broad`` implies ``narrow``."""
        return narrow in self._includes.get(broad, ())

    def included_by(self, broad: str) -> List[str]:
        return sorted(self._includes.get(broad, ()))

    def collapse(self, permissions: Iterable[str]) -> List[str]:
        """Drop every permission that a co-present, higher-ranked permission includes."""
        working = set(permissions)
        kept = set(working)

        for permission in working:
            level = self.rank(permission)
            for other in working:
                if other == permission:
                    continue
                if self.rank(other) > level and self.includes(other, permission):
                    kept.discard(permission)
                    logger.debug("Collapsed %s into %s", permission, other)
                    break

        return sorted(kept)

    def satisfies(self, held: Iterable[str], required: str) -> bool:
        """Whether a held set grants ``required`` directly or through inclusion."""
        held_set = set(held)
        if required in held_set:
            return True
        return any(self.includes(permission, required) for permission in held_set)

    @property
    def vocabulary(self) -> Set[str]:
        known = set(self._ranks)
        for broad, narrow in self._includes.items():
            known.add(broad)
            known.update(narrow)
        return known
