# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Durable expiration scheduling and the reconciliation sweep.

In-process timers are best effort and die with the process. Every scheduled
expiration is also written to the record store, and ``reconcile`` expires
whatever is overdue, so running the sweep on any node (or after a restart)
converges to the same state.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from ..common.utils import Clock, get_current_time
from ..core.config import EngineConfig
from ..core.types import Delegation, ScheduledExpiration, SweepResult
from ..errors import PermissionEngineError
from ..metrics import EngineMetrics
from ..overrides import OverrideStore
from ..store import DELEGATIONS, SCHEDULED_EXPIRATIONS, RecordStore


logger = logging.getLogger(__name__)

DELEGATION_KIND = "delegation"
EMERGENCY_KIND = "emergency"


class ExpirationScheduler:
    """
    Schedules delegation and emergency expirations and sweeps overdue state.

    ``delegations`` and ``emergency`` are attached after construction because
    the managers themselves schedule through this object.
    """

    def __init__(self, store: RecordStore, overrides: OverrideStore,
                 config: Optional[EngineConfig] = None, clock: Optional[Clock] = None,
                 metrics: Optional[EngineMetrics] = None):
        self.store = store
        self.overrides = overrides
        self.config = config or EngineConfig()
        self.clock = clock or get_current_time
        self.metrics = metrics
        self.delegations = None
        self.emergency = None
        self._timers: Dict[str, asyncio.Task] = {}
        self._stopping: Optional[asyncio.Event] = None

    async def schedule(self, resource_id: str, due_at: datetime,
                       resource_kind: str = DELEGATION_KIND) -> ScheduledExpiration:
        """Persist a pending expiration and, when enabled, start a timer for it."""
        record = ScheduledExpiration(resource_id=resource_id, due_at=due_at, resource_kind=resource_kind)
        await self.store.put(SCHEDULED_EXPIRATIONS, record.id, record.to_dict())

        if self.config.in_process_timers:
            previous = self._timers.get(resource_id)
            if previous is not None and not previous.done():
                previous.cancel()
            delay = max(0.0, (due_at - self.clock()).total_seconds())
            task = asyncio.get_running_loop().create_task(self._fire(record, delay))
            self._timers[resource_id] = task
            task.add_done_callback(lambda t, key=resource_id: self._forget(key, t))

        logger.debug("EXPIRATION_SCHEDULED kind=%s resource=%s due_at=%s",
                     resource_kind, resource_id, due_at.isoformat())
        return record

    def _forget(self, resource_id: str, task: asyncio.Task) -> None:
        if self._timers.get(resource_id) is task:
            del self._timers[resource_id]

    async def _fire(self, record: ScheduledExpiration, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            await self._expire(record.resource_kind, record.resource_id)
        except Exception:
            # The sweep picks up whatever the timer failed to expire.
            logger.exception("Scheduled expiration of %s %s failed", record.resource_kind, record.resource_id)

    async def _expire(self, resource_kind: str, resource_id: str) -> None:
        if resource_kind == EMERGENCY_KIND:
            await self.emergency.expire_elevation(resource_id)
        else:
            await self.delegations.expire_delegation(resource_id)

    async def complete(self, resource_id: str) -> int:
        """Cancel the timer for a resource and mark its pending schedules done."""
        task = self._timers.pop(resource_id, None)
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

        now = self.clock()
        completed = 0
        for data in await self.store.find(SCHEDULED_EXPIRATIONS, resource_id=resource_id, status="pending"):
            await self._mark_done(ScheduledExpiration.from_dict(data), now)
            completed += 1
        return completed

    async def _mark_done(self, record: ScheduledExpiration, now: datetime) -> None:
        record.status = "done"
        record.completed_at = now
        await self.store.put(SCHEDULED_EXPIRATIONS, record.id, record.to_dict())

    async def pending(self) -> List[ScheduledExpiration]:
        records = [ScheduledExpiration.from_dict(d)
                   for d in await self.store.find(SCHEDULED_EXPIRATIONS, status="pending")]
        records.sort(key=lambda r: (r.due_at, r.id))
        return records

    async def reconcile(self) -> SweepResult:
        """
        Expire everything that is overdue. Idempotent: a second run with the
        same clock finds nothing to do.
        """
        now = self.clock()
        result = SweepResult()

        for data in await self.store.find(DELEGATIONS, active=True):
            delegation = Delegation.from_dict(data)
            if not delegation.is_expired(now):
                continue
            try:
                await self.delegations.expire_delegation(delegation.id)
                result.delegations_expired.append(delegation.id)
            except PermissionEngineError as e:
                logger.exception("Sweep failed to expire delegation %s", delegation.id)
                result.errors.append(f"{delegation.id}: {e.message}")

        for context in await self.overrides.overdue_emergency_contexts():
            try:
                expired = await self.emergency.expire_elevation(context)
                if expired:
                    result.emergency_contexts_expired.append(context)
            except PermissionEngineError as e:
                logger.exception("Sweep failed to expire emergency elevation %s", context)
                result.errors.append(f"{context}: {e.message}")

        result.overrides_expired = [o.id for o in await self.overrides.expire_overdue()]

        for data in await self.store.find(SCHEDULED_EXPIRATIONS, status="pending"):
            record = ScheduledExpiration.from_dict(data)
            if record.due_at <= now:
                await self._mark_done(record, now)
                result.schedules_completed += 1

        if self.metrics:
            self.metrics.sweep_expirations.labels(kind=DELEGATION_KIND).inc(len(result.delegations_expired))
            self.metrics.sweep_expirations.labels(kind=EMERGENCY_KIND).inc(len(result.emergency_contexts_expired))
            self.metrics.sweep_expirations.labels(kind="override").inc(len(result.overrides_expired))

        logger.info(
            "EXPIRATION_SWEEP_COMPLETED delegations=%d emergency_contexts=%d overrides=%d schedules=%d errors=%d",
            len(result.delegations_expired), len(result.emergency_contexts_expired),
            len(result.overrides_expired), result.schedules_completed, len(result.errors),
        )
        return result

    async def run_periodic(self, interval: Optional[timedelta] = None) -> None:
        """Run ``reconcile`` every ``interval`` until ``stop`` is called."""
        period = (interval or self.config.sweep_interval).total_seconds()
        self._stopping = asyncio.Event()
        logger.info("Expiration sweeper started with interval %.0fs", period)

        while not self._stopping.is_set():
            try:
                await self.reconcile()
            except Exception:
                # The loop outlives a failed pass; the next one retries.
                logger.exception("Expiration sweep failed")
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=period)
            except asyncio.TimeoutError:
                pass

        logger.info("Expiration sweeper stopped")

    def stop(self) -> None:
        if self._stopping is not None:
            self._stopping.set()

    async def close(self) -> None:
        """Stop the sweeper and cancel every outstanding timer."""
        self.stop()
        timers = list(self._timers.values())
        self._timers.clear()
        for task in timers:
            task.cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)
