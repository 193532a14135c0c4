# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Error taxonomy for the permission engine.

Validation failures, authorization failures and ceiling violations are kept
as distinct classes so callers can render 400-style, 403-style and 429-style
responses. Expiring or revoking an already inactive resource is not an error.
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Dict, Any, Optional, List


class ErrorCode(Enum):
    """Structured error codes for the permission engine."""

    # Validation errors
    VALIDATION_FAILED = "validation_failed"
    INVALID_PARAMETER = "invalid_parameter"
    MISSING_PARAMETER = "missing_parameter"
    UNKNOWN_DELEGATION_TYPE = "unknown_delegation_type"
    UNKNOWN_OVERRIDE_TYPE = "unknown_override_type"
    NON_DELEGATABLE_PERMISSION = "non_delegatable_permission"
    PERMISSION_NOT_DELEGATABLE = "permission_not_delegatable"
    INVALID_DURATION = "invalid_duration"
    EXPIRED_GRANT = "expired_grant"
    MISSING_COMPLIANCE_FIELD = "missing_compliance_field"
    UNKNOWN_COMPLIANCE_FRAMEWORK = "unknown_compliance_framework"

    # Authorization errors
    AUTHORIZATION_DENIED = "authorization_denied"
    INSUFFICIENT_PERMISSIONS = "insufficient_permissions"
    INSUFFICIENT_SENIORITY = "insufficient_seniority"
    UNAUTHORIZED_REVOKER = "unauthorized_revoker"
    NOT_EMERGENCY_CAPABLE = "not_emergency_capable"

    # Limit errors
    DELEGATION_LIMIT_EXCEEDED = "delegation_limit_exceeded"

    # Lookup errors
    NOT_FOUND = "not_found"

    # Infrastructure errors
    ENCRYPTION_FAILED = "encryption_failed"
    STORAGE_ERROR = "storage_error"
    INVALID_CONFIGURATION = "invalid_configuration"


class PermissionEngineError(Exception):
    """
    Base exception class for all permission engine errors.

    Carries a structured error code and free-form details that end up in
    ``to_dict()`` for API error bodies and logs.
    """

    status_hint = 500

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary representation."""
        result = {
            "error": self.code.value,
            "error_description": self.message,
            "timestamp": self.timestamp.isoformat(),
        }

        if self.details:
            result["details"] = self.details

        if self.cause:
            result["caused_by"] = str(self.cause)

        return result

    def is_client_error(self) -> bool:
        """Check if this error was caused by the caller's input or identity."""
        return 400 <= self.status_hint < 500


class ValidationError(PermissionEngineError):
    """Request is malformed or violates a static rule. Never retried."""

    status_hint = 400

    def __init__(self, message: str, code: ErrorCode = ErrorCode.VALIDATION_FAILED,
                 field: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        self.field = field
        super().__init__(code, message, details=details, **kwargs)


class AuthorizationError(PermissionEngineError):
    """The acting identity is not allowed to perform the operation."""

    status_hint = 403

    def __init__(self, message: str, code: ErrorCode = ErrorCode.AUTHORIZATION_DENIED,
                 actor_id: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if actor_id:
            details["actor_id"] = actor_id
        self.actor_id = actor_id
        super().__init__(code, message, details=details, **kwargs)


class LimitExceededError(PermissionEngineError):
    """A concurrency ceiling (active delegations per type) has been reached."""

    status_hint = 429

    def __init__(self, message: str, limit: Optional[int] = None, **kwargs):
        details = kwargs.pop("details", {})
        if limit is not None:
            details["limit"] = limit
        self.limit = limit
        super().__init__(ErrorCode.DELEGATION_LIMIT_EXCEEDED, message, details=details, **kwargs)


class NotFoundError(PermissionEngineError):
    """A management operation referenced a record that does not exist."""

    status_hint = 404

    def __init__(self, message: str, resource_id: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if resource_id:
            details["resource_id"] = resource_id
        self.resource_id = resource_id
        super().__init__(ErrorCode.NOT_FOUND, message, details=details, **kwargs)


class EncryptionError(PermissionEngineError):
    """Audit metadata could not be encrypted. Handled inside the audit path."""

    def __init__(self, message: str, **kwargs):
        super().__init__(ErrorCode.ENCRYPTION_FAILED, message, **kwargs)


class StorageError(PermissionEngineError):
    """Errors raised by a record store backend."""

    def __init__(self, operation: str, message: str, **kwargs):
        details = kwargs.pop("details", {})
        details["operation"] = operation
        self.operation = operation
        super().__init__(ErrorCode.STORAGE_ERROR, message, details=details, **kwargs)


class ConfigurationError(PermissionEngineError):
    """Configuration failed validation at load time."""

    def __init__(self, message: str, problems: Optional[List[str]] = None, **kwargs):
        self.problems = problems or []
        details = kwargs.pop("details", {})
        if self.problems:
            details["problems"] = self.problems
        super().__init__(ErrorCode.INVALID_CONFIGURATION, message, details=details, **kwargs)


__all__ = [
    "ErrorCode",
    "PermissionEngineError",
    "ValidationError",
    "AuthorizationError",
    "LimitExceededError",
    "NotFoundError",
    "EncryptionError",
    "StorageError",
    "ConfigurationError",
]
