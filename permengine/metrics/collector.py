# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Prometheus metrics for the permission engine.
"""

import logging
import time
from contextlib import contextmanager
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest


logger = logging.getLogger(__name__)


class EngineMetrics:
    """Counters and histograms for engine operations, on a private registry."""

    def __init__(self, registry: Optional[CollectorRegistry] = None, namespace: str = "permengine"):
        self.registry = registry or CollectorRegistry()

        self.delegations = Counter(
            f'{namespace}_delegations_total',
            'Delegation lifecycle transitions',
            ['delegation_type', 'outcome'],
            registry=self.registry,
        )
        self.emergency_elevations = Counter(
            f'{namespace}_emergency_elevations_total',
            'Emergency elevations granted',
            registry=self.registry,
        )
        self.resolutions = Counter(
            f'{namespace}_resolutions_total',
            'Permission resolution runs',
            ['provider'],
            registry=self.registry,
        )
        self.skipped_overrides = Counter(
            f'{namespace}_skipped_overrides_total',
            'Overrides skipped during resolution because their type was not recognized',
            registry=self.registry,
        )
        self.audit_records = Counter(
            f'{namespace}_audit_records_total',
            'Audit records written',
            ['severity'],
            registry=self.registry,
        )
        self.encryption_fallbacks = Counter(
            f'{namespace}_audit_encryption_fallbacks_total',
            'Audit records stored with the unencrypted fallback marker',
            registry=self.registry,
        )
        self.sweep_expirations = Counter(
            f'{namespace}_sweep_expirations_total',
            'Records expired by the reconciliation sweep',
            ['kind'],
            registry=self.registry,
        )
        self.resolution_duration = Histogram(
            f'{namespace}_resolution_duration_seconds',
            'Time spent resolving permissions for one user',
            registry=self.registry,
        )

    @contextmanager
    def time_resolution(self):
        start = time.perf_counter()
        try:
            yield
        finally:
            self.resolution_duration.observe(time.perf_counter() - start)

    def value(self, name: str, labels: Optional[dict] = None) -> float:
        """Current sample value, mainly for tests."""
        sample = self.registry.get_sample_value(name, labels or {})
        return sample if sample is not None else 0.0

    def render(self) -> bytes:
        """Metrics in the Prometheus text exposition format."""
        return generate_latest(self.registry)
