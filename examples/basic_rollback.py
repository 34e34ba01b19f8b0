"""
plyra-rollback — Basic Example
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Capture a rollback point, build its plan, and run it twice: once in
staging without sign-off, once in production with an approver.
"""

import asyncio

from plyra_rollback import RollbackService
from plyra_rollback.exceptions import ApprovalRequiredError


async def main() -> None:
    # Simulated collaborators: nothing real is captured or restored
    service = RollbackService.default()
    service.audit_log.clear_exporters()

    print("=" * 60)
    print("plyra-rollback — Basic Example")
    print("=" * 60)

    # 1. Staging config change: no approval needed
    print("\n1. Rolling back a config change in staging...")
    point = service.create_rollback_point(
        "config", "Raise connection pool size", "v41", "staging", "alice"
    )
    plan = service.create_rollback_plan(point.id)
    print(f"   Plan {plan.id}: {len(plan.steps)} steps, "
          f"~{plan.estimated_duration_minutes:.0f} min, "
          f"approval_required={plan.approval_required}")
    execution = await service.execute_rollback(plan.id, "alice")
    execution = await service.wait_for_execution(execution.id)
    print(f"   ✓ {execution.status.value} ({execution.progress_percent}%)")

    # 2. Production database change: approval required
    print("\n2. Rolling back a database migration in production...")
    point = service.create_rollback_point(
        "database", "Add orders.status index", "v42", "production", "alice"
    )
    for risk in point.risks:
        print(f"   risk: [{risk.severity.value}] {risk.description}")
    plan = service.create_rollback_plan(point.id)
    try:
        await service.execute_rollback(plan.id, "alice")
    except ApprovalRequiredError as e:
        print(f"   ✗ Refused: {e.args[0]}")
    execution = await service.execute_rollback(plan.id, "alice", approved_by="bob")
    execution = await service.wait_for_execution(execution.id)
    print(f"   ✓ {execution.status.value}, approved by {execution.approved_by}")

    # 3. Execution history
    print("\n3. Executions:")
    for e in service.list_executions():
        print(f"   {e.id}  {e.environment.value:11s} {e.status.value}")

    # 4. Metrics
    print("\n4. Metrics:")
    metrics = service.get_metrics()
    print(f"   Points created: {metrics.points_created}")
    print(f"   Executions completed: {metrics.executions_completed}")
    print(f"   Executions rejected: {metrics.executions_rejected}")

    print("\n" + "=" * 60)
    print("Done!")


if __name__ == "__main__":
    asyncio.run(main())
