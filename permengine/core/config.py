# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Configuration module for the permission engine.

Delegation types, compliance frameworks and the permission vocabulary tables
are all overridable. Configuration is keyed by enums and validated at load
time so that a typo in a file fails at startup instead of during a request.
"""

import json
import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional

import yaml

from ..common.utils import coerce_duration
from ..errors import ConfigurationError
from .types import DelegationType, OverrideType, Provider


DEFAULT_PERMISSION_RANKS: Dict[str, int] = {
    "admin_full": 100,
    "compliance_admin": 95,
    "system_admin": 90,
    "department_admin": 80,
    "team_management": 70,
    "user_management": 65,
    "employee_management": 60,
    "technical_access": 55,
    "financial_access": 50,
    "operations_access": 45,
    "event_management": 40,
    "basic_admin": 35,
    "audit_read": 30,
    "basic_access": 20,
    "profile_management": 10,
}

DEFAULT_INCLUSION_RULES: Dict[str, List[str]] = {
    "admin_full": ["user_management", "system_config", "department_admin", "team_management", "basic_access"],
    "system_admin": ["technical_access", "user_support"],
    "department_admin": ["team_management", "employee_access"],
    "user_management": ["employee_management", "basic_admin"],
    "team_management": ["employee_access", "basic_access"],
}

DEFAULT_GROUP_MAPPINGS: Dict[Provider, Dict[str, List[str]]] = {
    Provider.GOOGLE: {
        "admin": ["admin_full", "user_management", "system_config"],
        "manager": ["team_management", "employee_access", "department_admin"],
        "employee": ["basic_access", "profile_management"],
        "hr": ["employee_management", "department_access", "audit_read"],
        "it": ["system_admin", "user_support", "technical_access"],
        "finance": ["financial_access", "billing_management", "report_access"],
    },
    Provider.MICROSOFT: {
        "global_admin": ["admin_full", "user_management", "system_config", "compliance_admin"],
        "user_admin": ["user_management", "employee_access", "department_admin"],
        "helpdesk_admin": ["user_support", "basic_admin", "password_reset"],
        "security_admin": ["security_config", "audit_full", "compliance_read"],
        "billing_admin": ["billing_management", "financial_access", "subscription_admin"],
    },
}

DEFAULT_DEPARTMENT_PERMISSIONS: Dict[str, List[str]] = {
    "sistemas": ["technical_access", "system_support", "user_support"],
    "recursos_humanos": ["employee_management", "hr_access", "compliance_read"],
    "finanzas": ["financial_access", "billing_read", "report_access"],
    "operaciones": ["operations_access", "logistics_management", "vendor_access"],
    "eventos": ["event_management", "client_access", "booking_admin"],
    "administracion": ["admin_access", "document_management", "general_admin"],
}

# Default priority for an override whose creator did not supply one.
DEFAULT_OVERRIDE_PRIORITIES: Dict[OverrideType, int] = {
    OverrideType.GRANT: 1,
    OverrideType.REVOKE: 2,
    OverrideType.ELEVATE: 3,
    OverrideType.RESTRICT: 4,
}

AUDIT_RECORD_FIELDS: FrozenSet[str] = frozenset({
    "user_id", "action", "permission", "performed_by", "reason", "context",
    "timestamp", "business_justification", "legal_basis",
})


@dataclass
class DelegationTypeConfig:
    """Rules for one delegation type."""
    max_duration: timedelta
    max_active: int
    auto_expire: bool = True
    requires_approval: bool = False
    audit_level: str = "standard"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DelegationTypeConfig":
        return cls(
            max_duration=coerce_duration(data["max_duration"]),
            max_active=int(data["max_active"]),
            auto_expire=bool(data.get("auto_expire", True)),
            requires_approval=bool(data.get("requires_approval", False)),
            audit_level=data.get("audit_level", "standard"),
        )


@dataclass
class ComplianceFrameworkConfig:
    """Required audit fields and retention for a named compliance framework."""
    name: str
    version: str
    required_fields: List[str]
    retention_period: timedelta
    encryption_required: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ComplianceFrameworkConfig":
        return cls(
            name=data["name"],
            version=str(data.get("version", "1.0")),
            required_fields=list(data["required_fields"]),
            retention_period=coerce_duration(data["retention_period"]),
            encryption_required=bool(data.get("encryption_required", True)),
        )


def default_delegation_types() -> Dict[DelegationType, DelegationTypeConfig]:
    return {
        DelegationType.TEMPORARY: DelegationTypeConfig(
            max_duration=timedelta(hours=24), max_active=10,
            requires_approval=False, audit_level="standard"),
        DelegationType.PROJECT: DelegationTypeConfig(
            max_duration=timedelta(days=30), max_active=5,
            requires_approval=True, audit_level="detailed"),
        DelegationType.EMERGENCY: DelegationTypeConfig(
            max_duration=timedelta(hours=4), max_active=3,
            requires_approval=False, audit_level="critical"),
        DelegationType.COVERAGE: DelegationTypeConfig(
            max_duration=timedelta(days=7), max_active=3,
            requires_approval=True, audit_level="detailed"),
    }


def default_compliance_frameworks() -> Dict[str, ComplianceFrameworkConfig]:
    return {
        "PCI_DSS": ComplianceFrameworkConfig(
            name="PCI DSS Level 1",
            version="4.0",
            required_fields=["user_id", "permission", "action", "timestamp", "performed_by", "reason"],
            retention_period=timedelta(days=365),
        ),
        "SOX": ComplianceFrameworkConfig(
            name="Sarbanes-Oxley Act",
            version="2002",
            required_fields=["user_id", "permission", "action", "timestamp", "performed_by",
                             "business_justification"],
            retention_period=timedelta(days=7 * 365),
        ),
        "GDPR": ComplianceFrameworkConfig(
            name="General Data Protection Regulation",
            version="2018",
            required_fields=["user_id", "action", "timestamp", "legal_basis"],
            retention_period=timedelta(days=6 * 365),
        ),
    }


@dataclass
class EngineConfig:
    """Configuration for the permission engine."""
    delegation_types: Dict[DelegationType, DelegationTypeConfig] = field(
        default_factory=default_delegation_types)
    compliance_frameworks: Dict[str, ComplianceFrameworkConfig] = field(
        default_factory=default_compliance_frameworks)
    baseline_framework: str = "PCI_DSS"

    permission_ranks: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_PERMISSION_RANKS))
    inclusion_rules: Dict[str, List[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_INCLUSION_RULES.items()})
    group_mappings: Dict[Provider, Dict[str, List[str]]] = field(
        default_factory=lambda: {p: {g: list(v) for g, v in m.items()}
                                 for p, m in DEFAULT_GROUP_MAPPINGS.items()})
    department_permissions: Dict[str, List[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_DEPARTMENT_PERMISSIONS.items()})
    override_priorities: Dict[OverrideType, int] = field(
        default_factory=lambda: dict(DEFAULT_OVERRIDE_PRIORITIES))

    delegatable_permissions: List[str] = field(default_factory=lambda: [
        "team_management", "employee_access", "department_admin", "project_management",
        "client_access", "report_access", "approval_authority", "budget_access",
    ])
    non_delegatable_permissions: List[str] = field(default_factory=lambda: [
        "admin_full", "system_admin", "user_management", "security_config",
        "compliance_admin", "audit_full",
    ])
    emergency_capable_permissions: List[str] = field(default_factory=lambda: [
        "admin_full", "system_admin", "emergency_admin",
    ])
    blanket_admin_permissions: List[str] = field(default_factory=lambda: ["admin_full"])
    high_sensitivity_permissions: List[str] = field(default_factory=lambda: [
        "admin_full", "system_admin", "financial_access", "compliance_admin", "user_management",
    ])

    delegation_override_priority: int = 90
    emergency_override_priority: int = 95
    review_due: timedelta = field(default_factory=lambda: timedelta(hours=1))
    high_severity_review_threshold: int = 10
    report_record_limit: int = 1000

    encryption_key: Optional[str] = None
    in_process_timers: bool = True
    sweep_interval: timedelta = field(default_factory=lambda: timedelta(minutes=5))

    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = "permengine:"

    def __post_init__(self):
        if not self.encryption_key:
            self.encryption_key = os.getenv("PERMENGINE_ENCRYPTION_KEY") or None

    @property
    def emergency_max_duration(self) -> timedelta:
        return self.delegation_types[DelegationType.EMERGENCY].max_duration

    def delegation_type_config(self, delegation_type: DelegationType) -> DelegationTypeConfig:
        return self.delegation_types[delegation_type]

    def default_priority(self, override_type: OverrideType) -> int:
        return self.override_priorities.get(override_type, 0)

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Create configuration from environment variables"""
        config = cls(
            baseline_framework=os.getenv("PERMENGINE_BASELINE_FRAMEWORK", "PCI_DSS"),
            encryption_key=os.getenv("PERMENGINE_ENCRYPTION_KEY"),
            in_process_timers=os.getenv("PERMENGINE_IN_PROCESS_TIMERS", "true").lower()
            in ("true", "1", "yes", "on"),
            sweep_interval=coerce_duration(os.getenv("PERMENGINE_SWEEP_INTERVAL", "5m")),
            redis_url=os.getenv("PERMENGINE_REDIS_URL", "redis://localhost:6379/0"),
        )
        config.validate()
        return config

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """Build a configuration from a plain mapping (a parsed YAML/JSON file)."""
        config = cls()
        try:
            if "delegation_types" in data:
                config.delegation_types = {
                    DelegationType(name): DelegationTypeConfig.from_dict(rules)
                    for name, rules in data["delegation_types"].items()
                }
            if "compliance_frameworks" in data:
                config.compliance_frameworks = {
                    key: ComplianceFrameworkConfig.from_dict(rules)
                    for key, rules in data["compliance_frameworks"].items()
                }
            if "group_mappings" in data:
                config.group_mappings = {
                    Provider(provider): {group: list(perms) for group, perms in groups.items()}
                    for provider, groups in data["group_mappings"].items()
                }
            if "override_priorities" in data:
                config.override_priorities = {
                    OverrideType(name): int(value)
                    for name, value in data["override_priorities"].items()
                }
            for key in ("permission_ranks", "inclusion_rules", "department_permissions"):
                if key in data:
                    setattr(config, key, dict(data[key]))
            for key in ("delegatable_permissions", "non_delegatable_permissions",
                        "emergency_capable_permissions", "blanket_admin_permissions",
                        "high_sensitivity_permissions"):
                if key in data:
                    setattr(config, key, list(data[key]))
            for key in ("baseline_framework", "encryption_key", "redis_url", "redis_key_prefix"):
                if key in data:
                    setattr(config, key, data[key])
            for key in ("delegation_override_priority", "emergency_override_priority",
                        "high_severity_review_threshold", "report_record_limit"):
                if key in data:
                    setattr(config, key, int(data[key]))
            for key in ("review_due", "sweep_interval"):
                if key in data:
                    setattr(config, key, coerce_duration(data[key]))
            if "in_process_timers" in data:
                config.in_process_timers = bool(data["in_process_timers"])
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration value: {e}", cause=e)

        config.validate()
        return config

    @classmethod
    def from_file(cls, file_path: str) -> "EngineConfig":
        """Load configuration from a YAML or JSON file."""
        path = Path(file_path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {file_path}")

        suffix = path.suffix.lower()
        with open(path, "r", encoding="utf-8") as f:
            if suffix == ".json":
                data = json.load(f)
            elif suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f) or {}
            else:
                raise ConfigurationError(f"Unsupported configuration file format: {suffix}")

        return cls.from_dict(data)

    def validate(self) -> bool:
        """Validate the configuration; raises ConfigurationError listing every problem."""
        problems: List[str] = []

        for delegation_type in DelegationType:
            rules = self.delegation_types.get(delegation_type)
            if rules is None:
                problems.append(f"delegation type '{delegation_type.value}' is not configured")
                continue
            if rules.max_duration <= timedelta(0):
                problems.append(f"delegation type '{delegation_type.value}' needs a positive max_duration")
            if rules.max_active < 1:
                problems.append(f"delegation type '{delegation_type.value}' needs max_active >= 1")

        if self.baseline_framework not in self.compliance_frameworks:
            problems.append(f"baseline framework '{self.baseline_framework}' is not defined")

        for key, framework in self.compliance_frameworks.items():
            unknown = set(framework.required_fields) - AUDIT_RECORD_FIELDS
            if unknown:
                problems.append(f"framework '{key}' requires unknown fields: {sorted(unknown)}")
            if framework.retention_period <= timedelta(0):
                problems.append(f"framework '{key}' needs a positive retention_period")

        overlap = set(self.delegatable_permissions) & set(self.non_delegatable_permissions)
        if overlap:
            problems.append(f"permissions both delegatable and non-delegatable: {sorted(overlap)}")

        if self.emergency_override_priority <= self.delegation_override_priority:
            problems.append("emergency_override_priority must exceed delegation_override_priority")

        for broad in self.inclusion_rules:
            if broad not in self.permission_ranks:
                problems.append(f"inclusion rule for unranked permission '{broad}'")

        if self.encryption_key:
            try:
                if len(bytes.fromhex(self.encryption_key)) != 32:
                    problems.append("encryption_key must be 32 bytes of hex")
            except ValueError:
                problems.append("encryption_key must be hex encoded")

        if problems:
            raise ConfigurationError("Invalid engine configuration", problems=problems)
        return True
