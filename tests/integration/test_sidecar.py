"""Integration test: HTTP sidecar endpoints."""

import time

import pytest

from plyra_rollback import RollbackService


def _wait_terminal(client, execution_id, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        data = client.get(f"/executions/{execution_id}").json()
        if data["status"] in ("completed", "failed", "cancelled"):
            return data
        time.sleep(0.01)
    raise AssertionError(f"execution {execution_id} did not finish")


class TestSidecar:
    """Tests for the HTTP sidecar endpoints."""

    @pytest.fixture
    def client(self):
        """Create a test client for the sidecar."""
        try:
            from fastapi.testclient import TestClient
        except ImportError:
            pytest.skip("FastAPI not installed")

        service = RollbackService.default()
        service.audit_log.clear_exporters()

        from plyra_rollback.sidecar.server import create_app

        app = create_app(service)
        with TestClient(app) as client:
            yield client

    def _create_point(self, client, kind="config", environment="staging"):
        resp = client.post(
            "/points",
            json={
                "kind": kind,
                "description": "Raise pool size",
                "version": "v7",
                "environment": environment,
                "created_by": "alice",
            },
        )
        assert resp.status_code == 201
        return resp.json()

    def test_health_endpoint(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["active_executions"] == 0

    def test_create_and_list_points(self, client):
        point = self._create_point(client)
        assert point["status"] == "active"
        assert point["id"].startswith("RP_")

        listed = client.get("/points", params={"environment": "staging"}).json()
        assert [p["id"] for p in listed["points"]] == [point["id"]]
        assert client.get("/points", params={"environment": "production"}).json() == {
            "points": []
        }
        assert client.get(f"/points/{point['id']}").json()["version"] == "v7"

    def test_invalid_point_kind(self, client):
        resp = client.post(
            "/points",
            json={
                "kind": "kernel",
                "description": "x",
                "version": "v1",
                "environment": "staging",
                "created_by": "alice",
            },
        )
        assert resp.status_code == 422

    def test_unknown_point(self, client):
        resp = client.get("/points/RP_missing")
        assert resp.status_code == 404
        assert resp.json()["error"] == "NotFoundError"

    def test_plan_and_execute(self, client):
        point = self._create_point(client)
        resp = client.post(f"/points/{point['id']}/plans")
        assert resp.status_code == 201
        plan = resp.json()
        assert plan["approval_required"] is False
        assert client.get(f"/plans/{plan['id']}").json()["point_id"] == point["id"]

        resp = client.post(f"/plans/{plan['id']}/execute", json={"executed_by": "alice"})
        assert resp.status_code == 202
        execution = resp.json()
        assert execution["plan_id"] == plan["id"]

        final = _wait_terminal(client, execution["id"])
        assert final["status"] == "completed"
        assert final["progress_percent"] == 100

        listed = client.get("/executions", params={"status": "completed"}).json()
        assert [e["id"] for e in listed["executions"]] == [execution["id"]]

        resp = client.post(f"/executions/{execution['id']}/cancel")
        assert resp.status_code == 409
        assert resp.json()["error"] == "InvalidStateError"

    def test_execute_requires_approval(self, client):
        point = self._create_point(client, kind="database", environment="production")
        plan = client.post(f"/points/{point['id']}/plans").json()

        resp = client.post(f"/plans/{plan['id']}/execute", json={"executed_by": "alice"})
        assert resp.status_code == 403
        body = resp.json()
        assert body["error"] == "ApprovalRequiredError"
        assert body["policy_triggered"] == "approval_policy"
        assert "approved_by" in body["how_to_fix"]

        resp = client.post(
            f"/plans/{plan['id']}/execute",
            json={"executed_by": "alice", "approved_by": "bob"},
        )
        assert resp.status_code == 202
        assert _wait_terminal(client, resp.json()["id"])["status"] == "completed"

    def test_audit_endpoint(self, client):
        point = self._create_point(client)
        resp = client.get("/audit", params={"event_type": "point.created"})
        assert resp.status_code == 200
        events = resp.json()["events"]
        assert events[0]["subject_id"] == point["id"]

        resp = client.get("/audit", params={"environment": "production"})
        assert resp.json()["events"] == []

    def test_metrics_endpoint(self, client):
        self._create_point(client)
        resp = client.get("/metrics")
        assert resp.status_code == 200
        assert "plyra_rollback_points_created 1" in resp.text

    def test_audit_time_window(self, client):
        self._create_point(client)
        resp = client.get("/audit", params={"from_time": "2000-01-01T00:00:00+00:00"})
        assert resp.status_code == 200
        assert len(resp.json()["events"]) == 1

        resp = client.get("/audit", params={"to_time": "2000-01-01T00:00:00Z"})
        assert resp.json()["events"] == []

    @pytest.mark.parametrize("value", ["yesterday", "2024-06-01T12:00:00"])
    def test_audit_rejects_bad_timestamps(self, client, value):
        resp = client.get("/audit", params={"from_time": value})
        assert resp.status_code == 422
