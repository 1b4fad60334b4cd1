"""
API endpoint tests.
"""
import time
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from conftest import FakeFileWriter, FakeGenerator, FakeSandbox, ShellSandboxJobManager

from app.core.services import build_services
from main import create_app


def wait_for_state(client, job_id, states=("completed", "failed"), timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        data = client.get(f"/api/pipeline?id={job_id}").json()
        if data["state"] in states:
            return data
        time.sleep(0.05)
    raise AssertionError(f"job {job_id} did not reach {states}")


@pytest.fixture
def pipeline_client(settings):
    """App with a fake sandbox so pipeline runs finish without a container engine."""
    services = build_services(settings, generator=FakeGenerator(), files=FakeFileWriter(), sandbox=FakeSandbox())
    with TestClient(create_app(services=services)) as client:
        yield client


@pytest.fixture
def sandbox_client(settings):
    """App whose sandbox runs commands directly on the host."""
    services = build_services(settings, generator=FakeGenerator(), files=FakeFileWriter(),
                              sandbox=ShellSandboxJobManager())
    with TestClient(create_app(services=services)) as client:
        yield client


class TestHealthEndpoint:
    """Tests for health check endpoint."""

    def test_health_returns_ok(self, pipeline_client):
        response = pipeline_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_request_id_echoed(self, pipeline_client):
        response = pipeline_client.get("/health", headers={"X-Request-Id": "abc-123"})
        assert response.headers["X-Request-Id"] == "abc-123"

    def test_meta(self, pipeline_client):
        data = pipeline_client.get("/meta").json()
        assert data["llm_enabled"] is True
        assert data["workers"] == 1


class TestMetricsEndpoint:
    """Tests for metrics endpoint."""

    def test_metrics_returns_prometheus_format(self, pipeline_client):
        response = pipeline_client.get("/metrics")
        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]
        content = response.text
        assert "forge_requests_total" in content
        assert "forge_pipeline_enqueued_total" in content
        assert 'forge_requests_by_status{status="2xx"}' in content


class TestPipelineEndpoints:
    """Tests for submitting and polling pipeline runs."""

    def test_submit_and_poll_to_completion(self, pipeline_client):
        response = pipeline_client.post("/api/pipeline", json={"projectId": "p1", "prompt": "Build a blog"})
        assert response.status_code == 200
        job_id = response.json()["id"]

        data = wait_for_state(pipeline_client, job_id)
        assert data["state"] == "completed"
        report = data["result"]
        assert report["ok"] is True
        assert report["project_id"] == "p1"
        markers = [line for line in report["logs"] if line.endswith(":start")]
        assert markers == ["analyze:start", "plan:start", "execute:start", "test:start", "summarize:start"]
        assert report["summary"]["overall_status"] in ("success", "partial_success", "failed")
        assert report["overall_status"] == report["summary"]["overall_status"]

    def test_missing_fields_rejected(self, pipeline_client):
        response = pipeline_client.post("/api/pipeline", json={"projectId": "p1"})
        assert response.status_code == 422

    @pytest.mark.parametrize("project_id", ["../x", "/etc", "a/b", ".hidden"])
    def test_path_like_project_id_rejected(self, pipeline_client, project_id):
        response = pipeline_client.post("/api/pipeline", json={"projectId": project_id, "prompt": "Build"})
        assert response.status_code == 422

    def test_status_requires_id(self, pipeline_client):
        response = pipeline_client.get("/api/pipeline")
        assert response.status_code == 400
        assert response.json()["detail"] == "id required"

    def test_unknown_id(self, pipeline_client):
        response = pipeline_client.get("/api/pipeline?id=missing")
        assert response.status_code == 404


class TestSandboxEndpoints:
    """Tests for sandbox job routes."""

    def test_start_and_fetch_job(self, sandbox_client):
        response = sandbox_client.post("/api/sandbox/job", json={
            "image": "alpine", "cmd": "sh", "args": ["-c", "echo hi"], "env": {"SECRET": "x"},
        })
        assert response.status_code == 200
        job = response.json()["job"]
        assert job["status"] in ("running", "exited")
        assert "env" not in job

        deadline = time.monotonic() + 5
        while time.monotonic() < deadline:
            logs = sandbox_client.get(f"/api/sandbox/job/{job['id']}/logs").json()
            if logs["status"] != "running":
                break
            time.sleep(0.05)
        assert logs["status"] == "exited"
        assert "hi" in "".join(logs["logs"])

        listed = sandbox_client.get("/api/sandbox/job").json()["jobs"]
        assert job["id"] in [item["id"] for item in listed]

        detail = sandbox_client.get(f"/api/sandbox/job/{job['id']}").json()["job"]
        assert detail["exit_code"] == 0

    def test_invalid_spec_is_error_job(self, sandbox_client):
        response = sandbox_client.post("/api/sandbox/job", json={"image": "alpine", "cmd": "x", "network": "host"})
        assert response.status_code == 200
        assert response.json()["job"]["status"] == "error"

    def test_unknown_job(self, sandbox_client):
        assert sandbox_client.get("/api/sandbox/job/missing").status_code == 404
        assert sandbox_client.get("/api/sandbox/job/missing/logs").status_code == 404

    def test_stop_unknown_job(self, sandbox_client):
        response = sandbox_client.delete("/api/sandbox/job/missing")
        assert response.status_code == 200
        assert response.json() == {"ok": False}


class TestTransactionEndpoint:
    """Tests for the transactional directory runner route."""

    def test_commit(self, sandbox_client, tmp_path):
        response = sandbox_client.post("/api/sandbox/transaction", json={
            "path": str(tmp_path), "steps": [{"cmd": "sh", "args": ["-c", "echo done > out.txt"]}],
        })
        assert response.status_code == 200
        assert response.json()["ok"] is True
        assert (tmp_path / "out.txt").read_text().strip() == "done"

    def test_rollback(self, sandbox_client, tmp_path):
        (tmp_path / "keep.txt").write_text("original")
        response = sandbox_client.post("/api/sandbox/transaction", json={
            "path": str(tmp_path),
            "steps": [
                {"cmd": "sh", "args": ["-c", "echo changed > keep.txt; touch new.txt"]},
                {"cmd": "false"},
            ],
        })
        data = response.json()
        assert data == {"ok": False, "error": "step failed: false", "logs": data["logs"]}
        assert (tmp_path / "keep.txt").read_text() == "original"
        assert not (tmp_path / "new.txt").exists()

    def test_bad_path(self, sandbox_client, tmp_path):
        response = sandbox_client.post("/api/sandbox/transaction", json={
            "path": str(Path(tmp_path) / "missing"), "steps": [{"cmd": "true"}],
        })
        assert response.status_code == 400
