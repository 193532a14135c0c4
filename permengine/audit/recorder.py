# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Compliance-grade audit ledger for permission changes.

Every other component records through ``AuditRecorder.record``. Records are
append-only: after creation only the review fields and the archival fields
are ever rewritten.
"""

import logging
from collections import Counter as Tally
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from ..common.utils import Clock, get_current_time
from ..core.config import EngineConfig
from ..core.types import (
    AuditAction, AuditEvent, AuditRecord, ComplianceRecord, ComplianceReport,
    ComplianceStatus, DataClassification, ReviewTask, Severity,
)
from ..errors import EncryptionError, ErrorCode, NotFoundError, ValidationError
from ..metrics import EngineMetrics
from ..store import AUDIT_RECORDS, COMPLIANCE_RECORDS, REVIEW_TASKS, RecordStore
from .crypto import MetadataCipher


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventProfile:
    severity: Severity
    category: str
    requires_review: bool


AUDIT_EVENT_TYPES: Dict[str, EventProfile] = {
    AuditAction.PERMISSION_GRANTED: EventProfile(Severity.MEDIUM, "permission_change", False),
    AuditAction.PERMISSION_REVOKED: EventProfile(Severity.MEDIUM, "permission_change", True),
    AuditAction.PERMISSION_INHERITED: EventProfile(Severity.LOW, "automated", False),
    AuditAction.PERMISSION_DELEGATED: EventProfile(Severity.MEDIUM, "delegation", True),
    AuditAction.PERMISSION_ELEVATION: EventProfile(Severity.HIGH, "elevation", True),
    AuditAction.EMERGENCY_PERMISSION: EventProfile(Severity.CRITICAL, "emergency", True),
    AuditAction.CONTEXT_SWITCHED: EventProfile(Severity.LOW, "context", False),
    AuditAction.DELEGATION_EXPIRED: EventProfile(Severity.LOW, "automated", False),
    AuditAction.OVERRIDE_CREATED: EventProfile(Severity.MEDIUM, "override", True),
}

# Unknown actions are treated conservatively: reviewed by a human.
UNKNOWN_EVENT = EventProfile(Severity.MEDIUM, "general", True)

STATISTICS_WINDOWS: Dict[str, timedelta] = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
}


class AuditRecorder:
    """Append-only, compliance-tagged event ledger."""

    def __init__(self, store: RecordStore, config: Optional[EngineConfig] = None,
                 clock: Optional[Clock] = None, metrics: Optional[EngineMetrics] = None):
        self.store = store
        self.config = config or EngineConfig()
        self.clock = clock or get_current_time
        self.metrics = metrics
        self.cipher = MetadataCipher(self.config.encryption_key)

    async def record(self, event: AuditEvent) -> AuditRecord:
        """
        Validate, classify, encrypt and persist an audit event.

        Raises:
            ValidationError: unknown framework or a field the framework requires is missing
        """
        framework_key = event.compliance_framework or self.config.baseline_framework
        framework = self.config.compliance_frameworks.get(framework_key)
        if framework is None:
            raise ValidationError(f"Unknown compliance framework: {framework_key}",
                                  code=ErrorCode.UNKNOWN_COMPLIANCE_FRAMEWORK,
                                  field="compliance_framework")

        timestamp = event.timestamp or self.clock()
        self._validate_compliance_fields(event, timestamp, framework_key, framework.required_fields)

        profile = AUDIT_EVENT_TYPES.get(event.action, UNKNOWN_EVENT)
        severity = event.severity or profile.severity
        requires_review = profile.requires_review if event.requires_review is None else event.requires_review

        metadata, degraded = self._seal_metadata(event.metadata, framework.encryption_required)

        record = AuditRecord(
            user_id=event.user_id,
            action=event.action,
            permission=event.permission,
            performed_by=event.performed_by,
            reason=event.reason,
            context=event.context,
            metadata=metadata,
            severity=severity,
            category=event.category or profile.category,
            compliance_framework=framework_key,
            business_justification=event.business_justification,
            legal_basis=event.legal_basis,
            requires_review=requires_review,
            timestamp=timestamp,
            retention_date=timestamp + framework.retention_period,
            data_classification=self.classify_data_sensitivity(event.permission, event.action, severity),
            encryption_degraded=degraded,
        )
        await self.store.put(AUDIT_RECORDS, record.id, record.to_dict())

        if framework_key != self.config.baseline_framework:
            compliance = ComplianceRecord(
                audit_record_id=record.id,
                framework=framework_key,
                framework_version=framework.version,
                created_at=timestamp,
            )
            await self.store.put(COMPLIANCE_RECORDS, compliance.id, compliance.to_dict())

        if severity in (Severity.CRITICAL, Severity.HIGH):
            await self._trigger_immediate_review(record)

        if self.metrics:
            self.metrics.audit_records.labels(severity=severity.value).inc()

        logger.info(
            "PERMISSION_AUDIT_RECORDED audit_id=%s action=%s user=%s severity=%s framework=%s",
            record.id, record.action, record.user_id, severity.value, framework_key,
        )
        return record

    def _validate_compliance_fields(self, event: AuditEvent, timestamp: datetime,
                                    framework_key: str, required_fields: List[str]) -> None:
        values = {
            "user_id": event.user_id,
            "action": event.action,
            "permission": event.permission,
            "performed_by": event.performed_by,
            "reason": event.reason,
            "context": event.context,
            "timestamp": timestamp,
            "business_justification": event.business_justification,
            "legal_basis": event.legal_basis,
        }
        missing = [name for name in required_fields if not values.get(name)]
        if missing:
            raise ValidationError(
                f"Missing required fields for {framework_key}: {', '.join(missing)}",
                code=ErrorCode.MISSING_COMPLIANCE_FIELD,
                details={"missing_fields": missing, "framework": framework_key},
            )

    def _seal_metadata(self, metadata: Dict[str, Any], encryption_required: bool):
        if not encryption_required:
            return self.cipher.plain(metadata), False
        try:
            return self.cipher.encrypt(metadata), False
        except EncryptionError as e:
            logger.error("Audit metadata stored unencrypted: %s", e.message)
            if self.metrics:
                self.metrics.encryption_fallbacks.inc()
            return self.cipher.fallback(metadata), True

    def classify_data_sensitivity(self, permission: Optional[str], action: str,
                                  severity: Severity) -> DataClassification:
        if permission in self.config.high_sensitivity_permissions:
            return DataClassification.HIGH
        if action == AuditAction.EMERGENCY_PERMISSION or severity == Severity.CRITICAL:
            return DataClassification.HIGH
        return DataClassification.MEDIUM

    async def _trigger_immediate_review(self, record: AuditRecord) -> ReviewTask:
        task = ReviewTask(
            audit_record_id=record.id,
            due_date=record.timestamp + self.config.review_due,
            created_at=record.timestamp,
        )
        await self.store.put(REVIEW_TASKS, task.id, task.to_dict())
        logger.info(
            "IMMEDIATE_REVIEW_TRIGGERED audit_id=%s review_task=%s severity=%s action=%s",
            record.id, task.id, record.severity.value, record.action,
        )
        return task

    def decrypt_metadata(self, record: AuditRecord) -> Dict[str, Any]:
        """Decrypted metadata of a record; a failed tag check yields an error marker."""
        return self.cipher.decrypt(record.metadata)

    async def get_record(self, record_id: str) -> Optional[AuditRecord]:
        data = await self.store.get(AUDIT_RECORDS, record_id)
        return AuditRecord.from_dict(data) if data else None

    async def get_records(
        self,
        user_id: Optional[str] = None,
        action: Optional[str] = None,
        framework: Optional[str] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        include_archived: bool = True,
    ) -> List[AuditRecord]:
        """Retrieve audit records with optional filtering, newest first."""
        filters: Dict[str, Any] = {}
        if user_id:
            filters["user_id"] = user_id
        if action:
            filters["action"] = action
        if framework:
            filters["compliance_framework"] = framework
        if not include_archived:
            filters["active"] = True

        records = [AuditRecord.from_dict(d) for d in await self.store.find(AUDIT_RECORDS, **filters)]
        if start_time:
            records = [r for r in records if r.timestamp >= start_time]
        if end_time:
            records = [r for r in records if r.timestamp <= end_time]

        records.sort(key=lambda r: (r.timestamp, r.id), reverse=True)
        return records

    async def get_review_tasks(self, audit_record_id: Optional[str] = None) -> List[ReviewTask]:
        filters = {"audit_record_id": audit_record_id} if audit_record_id else {}
        return [ReviewTask.from_dict(d) for d in await self.store.find(REVIEW_TASKS, **filters)]

    async def get_compliance_records(self, audit_record_id: Optional[str] = None) -> List[ComplianceRecord]:
        filters = {"audit_record_id": audit_record_id} if audit_record_id else {}
        return [ComplianceRecord.from_dict(d) for d in await self.store.find(COMPLIANCE_RECORDS, **filters)]

    async def mark_reviewed(self, record_id: str, reviewer: str) -> AuditRecord:
        """Flag a record as reviewed. The only content change allowed on a live record."""
        record = await self.get_record(record_id)
        if record is None:
            raise NotFoundError(f"Audit record {record_id} not found", resource_id=record_id)

        record.reviewed = True
        record.reviewed_by = reviewer
        record.reviewed_at = self.clock()
        await self.store.put(AUDIT_RECORDS, record.id, record.to_dict())
        return record

    async def generate_compliance_report(
        self,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        user_id: Optional[str] = None,
        framework: Optional[str] = None,
        detailed: bool = False,
        include_metadata: bool = False,
    ) -> ComplianceReport:
        """
        Aggregate audit records into a compliance report.

        Any critical event makes the window non-compliant; more than the
        configured number of high-severity events requires review.
        """
        framework_key = framework or self.config.baseline_framework
        records = await self.get_records(user_id=user_id, framework=framework_key,
                                         start_time=start_time, end_time=end_time)
        records = records[:self.config.report_record_limit]

        by_action = Tally(r.action for r in records)
        by_severity = Tally(r.severity.value for r in records)
        by_user = Tally(r.user_id or "unknown" for r in records)

        if by_severity.get(Severity.CRITICAL.value, 0) > 0:
            status = ComplianceStatus.NON_COMPLIANT
        elif by_severity.get(Severity.HIGH.value, 0) > self.config.high_severity_review_threshold:
            status = ComplianceStatus.REQUIRES_REVIEW
        else:
            status = ComplianceStatus.COMPLIANT

        details: List[Dict[str, Any]] = []
        if detailed:
            for r in records:
                entry = {
                    "id": r.id,
                    "user_id": r.user_id,
                    "action": r.action,
                    "permission": r.permission,
                    "performed_by": r.performed_by,
                    "timestamp": r.timestamp.isoformat(),
                    "severity": r.severity.value,
                    "reviewed": r.reviewed,
                    "requires_review": r.requires_review,
                }
                if include_metadata:
                    entry["metadata"] = self.decrypt_metadata(r)
                    entry["reason"] = r.reason
                    entry["context"] = r.context
                details.append(entry)

        logger.info("COMPLIANCE_REPORT_GENERATED framework=%s records=%d status=%s",
                    framework_key, len(records), status.value)

        return ComplianceReport(
            framework=framework_key,
            total_records=len(records),
            records_by_action=dict(by_action),
            records_by_severity=dict(by_severity),
            records_by_user=dict(by_user),
            compliance_status=status,
            generated_at=self.clock(),
            records=details,
        )

    async def get_audit_statistics(self, time_frame: str = "30d",
                                   framework: Optional[str] = None) -> Dict[str, Any]:
        """Dashboard statistics over a trailing window (24h, 7d, 30d or 90d)."""
        now = self.clock()
        window = STATISTICS_WINDOWS.get(time_frame, STATISTICS_WINDOWS["24h"])
        records = await self.get_records(framework=framework or self.config.baseline_framework,
                                         start_time=now - window, end_time=now)

        by_severity = {s.value: 0 for s in Severity}
        by_action: Dict[str, int] = {}
        pending_reviews = 0
        for r in records:
            by_severity[r.severity.value] += 1
            by_action[r.action] = by_action.get(r.action, 0) + 1
            if r.requires_review and not r.reviewed:
                pending_reviews += 1

        score = max(0, 100
                    - by_severity[Severity.CRITICAL.value] * 20
                    - by_severity[Severity.HIGH.value] * 5
                    - pending_reviews * 2)

        return {
            "total_events": len(records),
            "events_by_severity": by_severity,
            "events_by_action": by_action,
            "pending_reviews": pending_reviews,
            "compliance_score": score,
            "time_frame": time_frame,
            "generated_at": now.isoformat(),
        }

    async def archive_old_records(self) -> int:
        """Flag every active record past its retention date as archived. Nothing is deleted."""
        now = self.clock()
        archived = 0
        for data in await self.store.find(AUDIT_RECORDS, active=True):
            record = AuditRecord.from_dict(data)
            if record.retention_date >= now:
                continue
            record.active = False
            record.archived_at = now
            await self.store.put(AUDIT_RECORDS, record.id, record.to_dict())
            archived += 1

        logger.info("AUDIT_RECORDS_ARCHIVED count=%d", archived)
        return archived
