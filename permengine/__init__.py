# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
permengine Python Package

Effective-permission engine: merges identity-provider claims, department
assignment, individual overrides and time-bounded delegations into one
permission set, with a compliance-grade audit trail.
"""

__version__ = "0.1.0"

from .core.config import EngineConfig
from .core.engine import PermissionEngine
from .core.types import (
    User,
    NormalizedProfile,
    CorporateConfig,
    Provider,
    OverrideType,
    DelegationType,
    AccessLevel,
    FinalResult,
    Delegation,
    PermissionOverride,
)
from .errors import (
    PermissionEngineError,
    ValidationError,
    AuthorizationError,
    LimitExceededError,
    NotFoundError,
)

__all__ = [
    "PermissionEngine",
    "EngineConfig",
    "User",
    "NormalizedProfile",
    "CorporateConfig",
    "Provider",
    "OverrideType",
    "DelegationType",
    "AccessLevel",
    "FinalResult",
    "Delegation",
    "PermissionOverride",
    "PermissionEngineError",
    "ValidationError",
    "AuthorizationError",
    "LimitExceededError",
    "NotFoundError",
]
