# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Core types and data structures for the permission engine.

Every persisted record is a dataclass with ``to_dict`` / ``from_dict`` so that
any record store backend can serialize it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum, IntEnum
from typing import Dict, List, Optional, Any

from ..common.utils import generate_id, get_current_time, isoformat_or_none, parse_datetime


class OverrideType(Enum):
    """Kind of individual permission override."""
    GRANT = "grant"          # Grant additional permission
    REVOKE = "revoke"        # Revoke inherited permission
    ELEVATE = "elevate"      # Temporary elevation
    RESTRICT = "restrict"    # Restrict inherited permission

    @property
    def adds(self) -> bool:
        return self in (OverrideType.GRANT, OverrideType.ELEVATE)


class DelegationType(Enum):
    """Kinds of manager-to-employee delegation."""
    TEMPORARY = "temporary"
    PROJECT = "project"
    EMERGENCY = "emergency"
    COVERAGE = "coverage"


class DelegationStatus(Enum):
    """Lifecycle state of a delegation."""
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


class AccessLevel(IntEnum):
    """Ordinal seniority within an organizational unit."""
    EMPLOYEE = 1
    SENIOR = 2
    LEAD = 3
    SUPERVISOR = 4
    MANAGER = 5
    ADMIN = 6

    @classmethod
    def parse(cls, value: Any) -> "AccessLevel":
        if isinstance(value, AccessLevel):
            return value
        if isinstance(value, int):
            return cls(value)
        return cls[str(value).strip().upper()]


class Severity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class DataClassification(Enum):
    MEDIUM = "medium"
    HIGH = "high"


class ComplianceStatus(Enum):
    COMPLIANT = "compliant"
    REQUIRES_REVIEW = "requires-review"
    NON_COMPLIANT = "non-compliant"


class Provider(Enum):
    """Identity providers whose normalized claims the engine understands."""
    GOOGLE = "google"
    MICROSOFT = "microsoft"


class AuditAction:
    """Audit action names with a default severity table entry."""
    PERMISSION_GRANTED = "PERMISSION_GRANTED"
    PERMISSION_REVOKED = "PERMISSION_REVOKED"
    PERMISSION_INHERITED = "PERMISSION_INHERITED"
    PERMISSION_DELEGATED = "PERMISSION_DELEGATED"
    PERMISSION_ELEVATION = "PERMISSION_ELEVATION"
    EMERGENCY_PERMISSION = "EMERGENCY_PERMISSION"
    CONTEXT_SWITCHED = "CONTEXT_SWITCHED"
    DELEGATION_EXPIRED = "DELEGATION_EXPIRED"
    OVERRIDE_CREATED = "OVERRIDE_CREATED"


@dataclass
class User:
    """The identity whose permissions are being resolved."""
    id: str
    email: Optional[str] = None
    permissions: List[str] = field(default_factory=list)


@dataclass
class NormalizedProfile:
    """Identity-provider claims after upstream normalization."""
    groups: List[str] = field(default_factory=list)
    roles: List[str] = field(default_factory=list)
    department: Optional[str] = None
    job_title: Optional[str] = None
    email: Optional[str] = None


@dataclass
class CorporateConfig:
    """Per-client settings supplied alongside a login event."""
    client_name: str
    department_mapping: Dict[str, str] = field(default_factory=dict)


@dataclass
class OrgMembership:
    """Active assignment of a user to an organizational unit."""
    user_id: str
    org_unit_id: str
    access_level: AccessLevel
    active: bool = True


@dataclass
class PermissionOverride:
    """A direct user-scoped grant/revoke/elevate/restrict instruction."""
    user_id: str
    type: OverrideType
    permission: str
    reason: str = ""
    granted_by: str = ""
    context: str = ""
    priority: int = 0
    expires_at: Optional[datetime] = None
    active: bool = True
    id: str = field(default_factory=lambda: generate_id("ovr_"))
    created_at: datetime = field(default_factory=get_current_time)
    deactivated_at: Optional[datetime] = None
    deactivation_reason: Optional[str] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or get_current_time())

    def is_effective(self, now: Optional[datetime] = None) -> bool:
        """Active and not past its expiry."""
        return self.active and not self.is_expired(now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'type': self.type.value,
            'permission': self.permission,
            'reason': self.reason,
            'granted_by': self.granted_by,
            'context': self.context,
            'priority': self.priority,
            'expires_at': isoformat_or_none(self.expires_at),
            'active': self.active,
            'created_at': self.created_at.isoformat(),
            'deactivated_at': isoformat_or_none(self.deactivated_at),
            'deactivation_reason': self.deactivation_reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PermissionOverride':
        return cls(
            id=data['id'],
            user_id=data['user_id'],
            type=OverrideType(data['type']),
            permission=data['permission'],
            reason=data.get('reason', ''),
            granted_by=data.get('granted_by', ''),
            context=data.get('context', ''),
            priority=int(data.get('priority', 0)),
            expires_at=parse_datetime(data.get('expires_at')),
            active=data.get('active', True),
            created_at=parse_datetime(data['created_at']),
            deactivated_at=parse_datetime(data.get('deactivated_at')),
            deactivation_reason=data.get('deactivation_reason'),
        )


@dataclass
class Delegation:
    """Time-bounded transfer of permissions from a manager to an employee."""
    manager_id: str
    employee_id: str
    permissions: List[str]
    delegation_type: DelegationType
    expires_at: datetime
    reason: str = ""
    context: Optional[str] = None
    auto_expire: bool = True
    active: bool = True
    id: str = field(default_factory=lambda: generate_id("dlg_"))
    created_at: datetime = field(default_factory=get_current_time)
    revoked_at: Optional[datetime] = None
    revoked_by: Optional[str] = None
    revocation_reason: Optional[str] = None
    expired_at: Optional[datetime] = None
    expired_by: Optional[str] = None

    @property
    def override_context(self) -> str:
        return f"delegation_{self.id}"

    @property
    def revoked(self) -> bool:
        return self.revoked_at is not None

    @property
    def status(self) -> DelegationStatus:
        if self.revoked:
            return DelegationStatus.REVOKED
        if not self.active or self.expired_at is not None:
            return DelegationStatus.EXPIRED
        return DelegationStatus.ACTIVE

    @property
    def duration(self) -> timedelta:
        return self.expires_at - self.created_at

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at <= (now or get_current_time())

    def is_effective(self, now: Optional[datetime] = None) -> bool:
        return self.active and not self.is_expired(now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'manager_id': self.manager_id,
            'employee_id': self.employee_id,
            'permissions': list(self.permissions),
            'delegation_type': self.delegation_type.value,
            'reason': self.reason,
            'context': self.context,
            'expires_at': self.expires_at.isoformat(),
            'auto_expire': self.auto_expire,
            'active': self.active,
            'created_at': self.created_at.isoformat(),
            'revoked_at': isoformat_or_none(self.revoked_at),
            'revoked_by': self.revoked_by,
            'revocation_reason': self.revocation_reason,
            'expired_at': isoformat_or_none(self.expired_at),
            'expired_by': self.expired_by,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Delegation':
        return cls(
            id=data['id'],
            manager_id=data['manager_id'],
            employee_id=data['employee_id'],
            permissions=list(data.get('permissions', [])),
            delegation_type=DelegationType(data['delegation_type']),
            reason=data.get('reason', ''),
            context=data.get('context'),
            expires_at=parse_datetime(data['expires_at']),
            auto_expire=data.get('auto_expire', True),
            active=data.get('active', True),
            created_at=parse_datetime(data['created_at']),
            revoked_at=parse_datetime(data.get('revoked_at')),
            revoked_by=data.get('revoked_by'),
            revocation_reason=data.get('revocation_reason'),
            expired_at=parse_datetime(data.get('expired_at')),
            expired_by=data.get('expired_by'),
        )


@dataclass
class EmergencyElevation:
    """Result of an emergency elevation; the overrides are the durable state."""
    user_id: str
    permissions: List[str]
    granted_by: str
    reason: str
    context: str
    expires_at: datetime
    override_ids: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=get_current_time)


@dataclass
class InheritanceMasterRecord:
    """Immutable snapshot of one resolution run."""
    user_id: str
    final_permissions: List[str]
    oauth_permissions: List[str] = field(default_factory=list)
    department_permissions: List[str] = field(default_factory=list)
    overrides: List[Dict[str, Any]] = field(default_factory=list)
    provider: Optional[str] = None
    corporate_client: Optional[str] = None
    active: bool = True
    id: str = field(default_factory=lambda: generate_id("inh_"))
    processed_at: datetime = field(default_factory=get_current_time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'provider': self.provider,
            'corporate_client': self.corporate_client,
            'oauth_permissions': list(self.oauth_permissions),
            'department_permissions': list(self.department_permissions),
            'overrides': [dict(o) for o in self.overrides],
            'final_permissions': list(self.final_permissions),
            'processed_at': self.processed_at.isoformat(),
            'active': self.active,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InheritanceMasterRecord':
        return cls(
            id=data['id'],
            user_id=data['user_id'],
            provider=data.get('provider'),
            corporate_client=data.get('corporate_client'),
            oauth_permissions=list(data.get('oauth_permissions', [])),
            department_permissions=list(data.get('department_permissions', [])),
            overrides=list(data.get('overrides', [])),
            final_permissions=list(data.get('final_permissions', [])),
            processed_at=parse_datetime(data['processed_at']),
            active=data.get('active', True),
        )


@dataclass
class FinalResult:
    """What a resolution returns to the caller."""
    user_id: str
    final_permissions: List[str]
    oauth_permissions: List[str]
    department_permissions: List[str]
    overrides: List[PermissionOverride]
    master_record_id: str
    skipped_overrides: List[str] = field(default_factory=list)

    def has(self, permission: str) -> bool:
        return permission in self.final_permissions


@dataclass
class AuditEvent:
    """Input to ``AuditRecorder.record``."""
    user_id: Optional[str]
    action: str
    permission: Optional[str] = None
    performed_by: Optional[str] = None
    reason: Optional[str] = None
    context: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    compliance_framework: Optional[str] = None
    severity: Optional[Severity] = None
    category: Optional[str] = None
    requires_review: Optional[bool] = None
    business_justification: Optional[str] = None
    legal_basis: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass
class AuditRecord:
    """Append-only ledger entry. Only review and archival fields change later."""
    user_id: Optional[str]
    action: str
    severity: Severity
    compliance_framework: str
    timestamp: datetime
    retention_date: datetime
    data_classification: DataClassification
    permission: Optional[str] = None
    performed_by: Optional[str] = None
    reason: Optional[str] = None
    context: Optional[str] = None
    metadata: str = ""
    category: str = "general"
    business_justification: Optional[str] = None
    legal_basis: Optional[str] = None
    requires_review: bool = False
    reviewed: bool = False
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    encryption_degraded: bool = False
    active: bool = True
    archived_at: Optional[datetime] = None
    id: str = field(default_factory=lambda: generate_id("aud_"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'action': self.action,
            'permission': self.permission,
            'performed_by': self.performed_by,
            'reason': self.reason,
            'context': self.context,
            'metadata': self.metadata,
            'severity': self.severity.value,
            'category': self.category,
            'compliance_framework': self.compliance_framework,
            'business_justification': self.business_justification,
            'legal_basis': self.legal_basis,
            'requires_review': self.requires_review,
            'reviewed': self.reviewed,
            'reviewed_by': self.reviewed_by,
            'reviewed_at': isoformat_or_none(self.reviewed_at),
            'timestamp': self.timestamp.isoformat(),
            'retention_date': self.retention_date.isoformat(),
            'data_classification': self.data_classification.value,
            'encryption_degraded': self.encryption_degraded,
            'active': self.active,
            'archived_at': isoformat_or_none(self.archived_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditRecord':
        return cls(
            id=data['id'],
            user_id=data.get('user_id'),
            action=data['action'],
            permission=data.get('permission'),
            performed_by=data.get('performed_by'),
            reason=data.get('reason'),
            context=data.get('context'),
            metadata=data.get('metadata', ''),
            severity=Severity(data['severity']),
            category=data.get('category', 'general'),
            compliance_framework=data['compliance_framework'],
            business_justification=data.get('business_justification'),
            legal_basis=data.get('legal_basis'),
            requires_review=data.get('requires_review', False),
            reviewed=data.get('reviewed', False),
            reviewed_by=data.get('reviewed_by'),
            reviewed_at=parse_datetime(data.get('reviewed_at')),
            timestamp=parse_datetime(data['timestamp']),
            retention_date=parse_datetime(data['retention_date']),
            data_classification=DataClassification(data['data_classification']),
            encryption_degraded=data.get('encryption_degraded', False),
            active=data.get('active', True),
            archived_at=parse_datetime(data.get('archived_at')),
        )


@dataclass
class ReviewTask:
    """Immediate review task raised for high and critical audit events."""
    audit_record_id: str
    due_date: datetime
    priority: str = "immediate"
    assigned_to: str = "security_team"
    status: str = "pending"
    id: str = field(default_factory=lambda: generate_id("rev_"))
    created_at: datetime = field(default_factory=get_current_time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'audit_record_id': self.audit_record_id,
            'priority': self.priority,
            'assigned_to': self.assigned_to,
            'due_date': self.due_date.isoformat(),
            'status': self.status,
            'created_at': self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ReviewTask':
        return cls(
            id=data['id'],
            audit_record_id=data['audit_record_id'],
            priority=data.get('priority', 'immediate'),
            assigned_to=data.get('assigned_to', 'security_team'),
            due_date=parse_datetime(data['due_date']),
            status=data.get('status', 'pending'),
            created_at=parse_datetime(data['created_at']),
        )


@dataclass
class ComplianceRecord:
    """Framework-specific companion of an audit record."""
    audit_record_id: str
    framework: str
    framework_version: str
    compliance_status: str = "pending"
    id: str = field(default_factory=lambda: generate_id("cmp_"))
    created_at: datetime = field(default_factory=get_current_time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'audit_record_id': self.audit_record_id,
            'framework': self.framework,
            'framework_version': self.framework_version,
            'compliance_status': self.compliance_status,
            'created_at': self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ComplianceRecord':
        return cls(
            id=data['id'],
            audit_record_id=data['audit_record_id'],
            framework=data['framework'],
            framework_version=data['framework_version'],
            compliance_status=data.get('compliance_status', 'pending'),
            created_at=parse_datetime(data['created_at']),
        )


@dataclass
class ScheduledExpiration:
    """Durable record of a pending expiration, consumed by the sweep."""
    resource_id: str
    due_at: datetime
    resource_kind: str = "delegation"
    status: str = "pending"
    id: str = field(default_factory=lambda: generate_id("sch_"))
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'resource_kind': self.resource_kind,
            'resource_id': self.resource_id,
            'due_at': self.due_at.isoformat(),
            'status': self.status,
            'completed_at': isoformat_or_none(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ScheduledExpiration':
        return cls(
            id=data['id'],
            resource_kind=data.get('resource_kind', 'delegation'),
            resource_id=data['resource_id'],
            due_at=parse_datetime(data['due_at']),
            status=data.get('status', 'pending'),
            completed_at=parse_datetime(data.get('completed_at')),
        )


@dataclass
class ComplianceReport:
    """Aggregated view over audit records for one framework and window."""
    framework: str
    total_records: int
    records_by_action: Dict[str, int]
    records_by_severity: Dict[str, int]
    records_by_user: Dict[str, int]
    compliance_status: ComplianceStatus
    generated_at: datetime
    records: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'summary': {
                'framework': self.framework,
                'total_records': self.total_records,
                'records_by_action': self.records_by_action,
                'records_by_severity': self.records_by_severity,
                'records_by_user': self.records_by_user,
                'compliance_status': self.compliance_status.value,
                'generated_at': self.generated_at.isoformat(),
            },
            'records': self.records,
        }


@dataclass
class SweepResult:
    """Outcome of one reconciliation sweep."""
    delegations_expired: List[str] = field(default_factory=list)
    overrides_expired: List[str] = field(default_factory=list)
    emergency_contexts_expired: List[str] = field(default_factory=list)
    schedules_completed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.delegations_expired) + len(self.overrides_expired)
