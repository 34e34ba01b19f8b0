"""Tests for record backends, the plan store and the execution ledger."""

import pytest
from conftest import make_execution, make_plan, make_step

from plyra_rollback.core.enums import (
    Environment,
    ErrorSeverity,
    ExecutionStatus,
)
from plyra_rollback.core.models import Execution
from plyra_rollback.exceptions import NotFoundError
from plyra_rollback.store.backends import (
    MemoryBackend,
    SQLiteBackend,
    create_backend,
)
from plyra_rollback.store.ledger import RESTART_MESSAGE, ExecutionLedger
from plyra_rollback.store.plan_store import PlanStore


@pytest.fixture(params=["memory", "sqlite"])
def backend(request, tmp_path):
    if request.param == "memory":
        return MemoryBackend()
    return SQLiteBackend(str(tmp_path / "records.db"))


class TestBackends:
    """Tests shared by every RecordBackend."""

    def test_put_get(self, backend):
        backend.put("points", "a", {"id": "a", "n": 1})
        assert backend.get("points", "a") == {"id": "a", "n": 1}
        assert backend.get("points", "missing") is None

    def test_put_replaces(self, backend):
        backend.put("points", "a", {"n": 1})
        backend.put("points", "a", {"n": 2})
        assert backend.all("points") == [{"n": 2}]

    def test_collections_are_separate(self, backend):
        backend.put("points", "a", {"kind": "point"})
        backend.put("plans", "a", {"kind": "plan"})
        assert backend.all("points") == [{"kind": "point"}]

    def test_all_in_insertion_order(self, backend):
        for name in ("c", "a", "b"):
            backend.put("points", name, {"id": name})
        assert [r["id"] for r in backend.all("points")] == ["c", "a", "b"]

    def test_delete(self, backend):
        backend.put("points", "a", {})
        assert backend.delete("points", "a") is True
        assert backend.delete("points", "a") is False
        assert backend.all("points") == []

    def test_stored_records_are_copies(self, backend):
        record = {"tags": ["x"]}
        backend.put("points", "a", record)
        record["tags"].append("y")
        backend.get("points", "a")["tags"].append("z")
        assert backend.get("points", "a") == {"tags": ["x"]}


class TestCreateBackend:
    """Tests for create_backend."""

    def test_memory(self):
        assert isinstance(create_backend("memory"), MemoryBackend)

    def test_sqlite(self, tmp_path):
        path = str(tmp_path / "nested" / "r.db")
        backend = create_backend("sqlite", path)
        assert backend.persistent
        assert backend.db_path == path

    def test_unknown(self):
        with pytest.raises(ValueError):
            create_backend("redis")


class TestPlanStore:
    """Tests for PlanStore."""

    def test_add_and_get(self, backend):
        plans = PlanStore(backend)
        plan = make_plan([make_step("a")])
        plans.add(plan)
        assert plans.get(plan.id) is plan
        assert plans.for_point("RP_test") == [plan]

    def test_reload(self, tmp_path):
        path = str(tmp_path / "plans.db")
        plan = make_plan([make_step("a"), make_step("b", 2, depends_on=("a",))])
        PlanStore(SQLiteBackend(path)).add(plan)
        assert PlanStore(SQLiteBackend(path)).get(plan.id) == plan

    def test_unknown_plan(self):
        with pytest.raises(NotFoundError):
            PlanStore().get("PLAN_missing")


class TestExecutionLedger:
    """Tests for ExecutionLedger."""

    def test_save_and_get_copy(self):
        ledger = ExecutionLedger()
        execution = make_execution(make_plan([]))
        ledger.save(execution)

        copy = ledger.get(execution.id)
        copy.status = ExecutionStatus.COMPLETED
        assert ledger.get(execution.id).status == ExecutionStatus.PENDING

    def test_saved_snapshot_is_detached(self):
        ledger = ExecutionLedger()
        execution = make_execution(make_plan([]))
        ledger.save(execution)
        execution.progress_percent = 50
        assert ledger.get(execution.id).progress_percent == 0

    def test_unknown_execution(self):
        with pytest.raises(NotFoundError):
            ExecutionLedger().get("EXEC_missing")

    def test_query_indices(self):
        ledger = ExecutionLedger()
        plan = make_plan([])
        first = make_execution(plan, "EXEC_1")
        second = make_execution(plan, "EXEC_2")
        second.status = ExecutionStatus.COMPLETED
        other = Execution(
            id="EXEC_3",
            plan_id="PLAN_other",
            point_id="RP_other",
            environment=Environment.PRODUCTION,
            executed_by="bob",
        )
        for execution in (first, second, other):
            ledger.save(execution)

        assert {e.id for e in ledger.query(environment=Environment.STAGING)} == {
            "EXEC_1",
            "EXEC_2",
        }
        assert [e.id for e in ledger.query(status=ExecutionStatus.COMPLETED)] == [
            "EXEC_2"
        ]
        assert [e.id for e in ledger.query(plan_id="PLAN_other")] == ["EXEC_3"]
        assert len(ledger.query(limit=2)) == 2
        assert [e.id for e in ledger.active_for(Environment.STAGING)] == ["EXEC_1"]

    def test_status_index_follows_updates(self):
        ledger = ExecutionLedger()
        execution = make_execution(make_plan([]))
        ledger.save(execution)
        execution.status = ExecutionStatus.FAILED
        ledger.save(execution)
        assert ledger.query(status=ExecutionStatus.PENDING) == []
        assert len(ledger.query(status=ExecutionStatus.FAILED)) == 1

    def test_restart_marks_active_executions_failed(self, tmp_path):
        path = str(tmp_path / "ledger.db")
        execution = make_execution(make_plan([make_step("a")]))
        execution.status = ExecutionStatus.IN_PROGRESS
        execution.current_step_id = "a"
        done = make_execution(make_plan([]), "EXEC_done")
        done.status = ExecutionStatus.COMPLETED
        ledger = ExecutionLedger(SQLiteBackend(path))
        ledger.save(execution)
        ledger.save(done)

        recovered = ExecutionLedger(SQLiteBackend(path))
        interrupted = recovered.get(execution.id)
        assert interrupted.status == ExecutionStatus.FAILED
        assert interrupted.end_time is not None
        assert interrupted.current_step_id is None
        assert interrupted.errors[-1].message == RESTART_MESSAGE
        assert interrupted.errors[-1].step_id == "a"
        assert interrupted.errors[-1].severity == ErrorSeverity.CRITICAL
        assert recovered.get("EXEC_done").errors == []

        # The recovery is written back.
        again = ExecutionLedger(SQLiteBackend(path))
        assert len(again.get(execution.id).errors) == 1
