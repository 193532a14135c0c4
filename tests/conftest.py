"""
Shared fixtures for permission engine tests.
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from permengine import PermissionEngine, EngineConfig
from permengine.audit import generate_key_hex
from permengine.directory import MemoryDirectory
from permengine.hierarchy import PermissionHierarchy
from permengine.metrics import EngineMetrics
from permengine.store import MemoryRecordStore


START = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> datetime:
        self.now = self.now + delta
        return self.now


@pytest.fixture
def clock():
    """Create a frozen clock"""
    return FrozenClock()


@pytest.fixture
def config():
    """Create a test configuration with encryption and no in-process timers"""
    return EngineConfig(encryption_key=generate_key_hex(), in_process_timers=False)


@pytest.fixture
def store():
    return MemoryRecordStore()


@pytest.fixture
def metrics():
    return EngineMetrics()


@pytest.fixture
def directory(config):
    """Directory with one sales unit: a manager, a lead, two employees and an admin"""
    directory = MemoryDirectory(PermissionHierarchy.from_config(config), config.department_permissions)
    directory.add_membership("mgr-1", "sales", "manager")
    directory.add_membership("lead-1", "sales", "lead")
    directory.add_membership("emp-1", "sales", "employee")
    directory.add_membership("emp-2", "sales", "employee")
    directory.add_membership("dir-1", "sales", "admin")
    directory.add_membership("outsider", "support", "manager")
    directory.set_permissions("mgr-1", ["team_management", "report_access", "client_access"])
    directory.set_permissions("lead-1", ["team_management"])
    directory.set_permissions("sec-admin", ["admin_full"])
    directory.set_permissions("oncall", ["emergency_admin"])
    return directory


@pytest_asyncio.fixture
async def engine(config, store, directory, clock, metrics):
    """Create a permission engine wired to the frozen clock"""
    instance = PermissionEngine.new(config, store=store, directory=directory, clock=clock, metrics=metrics)
    yield instance
    await instance.close()
