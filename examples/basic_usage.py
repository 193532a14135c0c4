"""
Basic permengine usage example.

This example demonstrates the fundamental engine operations:
- Creating an engine with an in-memory directory
- Resolving permissions after a login
- Delegating and revoking permissions
- Emergency elevation and the expiration sweep
- Compliance reporting
"""

import asyncio
from datetime import timedelta

from permengine import EngineConfig, NormalizedProfile, PermissionEngine, Provider, User
from permengine.audit import generate_key_hex
from permengine.directory import MemoryDirectory
from permengine.hierarchy import PermissionHierarchy


async def basic_example():
    """Demonstrate basic engine usage"""
    print("Basic permengine Example")
    print("=" * 30)

    # 1. Create configuration
    config = EngineConfig(encryption_key=generate_key_hex(), in_process_timers=False)

    # 2. Populate a directory
    directory = MemoryDirectory(PermissionHierarchy.from_config(config), config.department_permissions)
    directory.add_membership("maria", "events", "manager")
    directory.add_membership("juan", "events", "employee")
    directory.set_permissions("maria", ["team_management", "client_access"])
    directory.set_permissions("security", ["admin_full"])
    directory.set_department("juan", "eventos")

    # 3. Create the engine
    engine = PermissionEngine.new(config, directory=directory)
    print("✓ Created permission engine")

    try:
        juan = User("juan", email="juan@example.com")
        profile = NormalizedProfile(groups=["google_employee"], email="juan@example.com")

        # 4. Resolve after login
        result = await engine.resolve(juan, profile, Provider.GOOGLE)
        print(f"✓ Resolved permissions: {result.final_permissions}")

        # 5. Delegate for a day
        delegation = await engine.create_delegation(
            "maria", "juan", ["team_management"], "temporary", reason="Covering the Lisbon event")
        result = await engine.resolve(juan, profile, Provider.GOOGLE)
        print(f"✓ Delegation {delegation.id} active, permissions: {result.final_permissions}")

        # 6. Revoke it
        await engine.revoke_delegation(delegation.id, "maria", "Event moved")
        print("✓ Delegation revoked")

        # 7. Emergency elevation, then a sweep (nothing is overdue yet)
        elevation = await engine.create_emergency_elevation(
            "juan", ["admin_access"], "Booking system outage", "security", duration=timedelta(minutes=30))
        print(f"✓ Emergency elevation until {elevation.expires_at.isoformat()}")
        sweep = await engine.reconcile()
        print(f"✓ Sweep expired {sweep.total} records")

        # 8. Compliance report
        report = await engine.audit.generate_compliance_report()
        print(f"✓ Audit records: {report.total_records}, status: {report.compliance_status.value}")

    finally:
        # 9. Cleanup
        await engine.close()
        print("✓ Engine closed")


if __name__ == "__main__":
    asyncio.run(basic_example())
