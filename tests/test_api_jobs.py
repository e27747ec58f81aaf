"""Tests for async jobs API: POST /v1/jobs, GET /v1/jobs/{id}, POST /v1/jobs/{id}/cancel."""

import threading
import time
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from api import job_store
from api.app import app
from api.runner import run_job
from errors import PipelineCancelledError, ResponseFormatError
from shared_schema import Abstraction, PipelineContext, RelationshipSet


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture(autouse=True)
def reset_job_store():
    """Reset in-memory job store between tests (clear _store)."""
    job_store._store.clear()
    yield
    job_store._store.clear()


def _finished_context(config, cancel_event):
    return PipelineContext(
        local_dir=config.local_dir,
        abstractions=[Abstraction("A", "a", [0]), Abstraction("B", "b", [0])],
        relationships=RelationshipSet(summary="Done."),
        chapter_order=[1, 0],
        chapters=["# Chapter 1: B", "# Chapter 2: A"],
        final_output_dir="/tmp/out/proj",
    )


def _wait_for_status(client, job_id, statuses=("completed", "failed", "cancelled")):
    for _ in range(100):
        body = client.get(f"/v1/jobs/{job_id}").json()
        if body["status"] in statuses:
            return body
        time.sleep(0.02)
    raise AssertionError(f"job {job_id} did not finish")


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_post_jobs_201_with_job_id(client):
    with patch("api.runner._run_pipeline", side_effect=_finished_context):
        resp = client.post("/v1/jobs", json={"local_dir": "/code"})
        assert resp.status_code == 201
        data = resp.json()
        assert data["job_id"]
        assert data["status"] == "queued"
        assert resp.headers.get("Location") == f'/v1/jobs/{data["job_id"]}'
        _wait_for_status(client, data["job_id"])


def test_post_jobs_422_when_config_invalid(client):
    assert client.post("/v1/jobs", json={}).status_code == 422
    assert client.post("/v1/jobs", json={"local_dir": "/code", "max_abstraction_num": 2}).status_code == 422


def test_get_job_404_unknown(client):
    assert client.get("/v1/jobs/00000000-0000-0000-0000-000000000000").status_code == 404


def test_get_job_200_after_completion(client):
    with patch("api.runner._run_pipeline", side_effect=_finished_context):
        job_id = client.post("/v1/jobs", json={"local_dir": "/code", "language": "french"}).json()["job_id"]
        body = _wait_for_status(client, job_id)
    assert body["status"] == "completed"
    assert body["result"]["final_output_dir"] == "/tmp/out/proj"
    assert body["result"]["summary"] == "Done."
    assert body["result"]["chapters"] == [
        {"num": 1, "name": "B", "filename": "01_b.md"},
        {"num": 2, "name": "A", "filename": "02_a.md"},
    ]


def test_failed_job_keeps_error_text(client):
    error = ResponseFormatError("Failed to extract YAML content from LLM response: oops")
    with patch("api.runner._run_pipeline", side_effect=error):
        job_id = client.post("/v1/jobs", json={"local_dir": "/code"}).json()["job_id"]
        body = _wait_for_status(client, job_id)
    assert body["status"] == "failed"
    assert body["error"] == str(error)
    assert body["result"] is None


def test_cancel_running_job(client):
    started = threading.Event()

    def blocking_pipeline(config, cancel_event):
        started.set()
        assert cancel_event.wait(5)
        raise PipelineCancelledError("Pipeline cancelled before WriteChapters")

    with patch("api.runner._run_pipeline", side_effect=blocking_pipeline):
        job_id = client.post("/v1/jobs", json={"local_dir": "/code"}).json()["job_id"]
        assert started.wait(5)
        resp = client.post(f"/v1/jobs/{job_id}/cancel")
        assert resp.status_code == 202
        body = _wait_for_status(client, job_id)
    assert body["status"] == "cancelled"
    assert "WriteChapters" in body["error"]


def test_cancel_unknown_and_finished_jobs(client):
    assert client.post("/v1/jobs/nope/cancel").status_code == 404
    job_id = job_store.create_job({"local_dir": "/code"})
    job_store.update_status(job_id, "completed", result={"final_output_dir": "/x"})
    assert client.post(f"/v1/jobs/{job_id}/cancel").status_code == 409


def test_queued_job_cancelled_before_start_never_runs():
    job_id = job_store.create_job({"local_dir": "/code"})
    assert job_store.cancel_job(job_id) is True
    with patch("api.runner._run_pipeline") as mock_run:
        run_job(job_id)
    mock_run.assert_not_called()
    assert job_store.get_job(job_id)["status"] == "cancelled"


def test_expired_jobs_are_dropped():
    job_id = job_store.create_job({"local_dir": "/code"})
    job_store._store[job_id]["created_at"] -= job_store.JOB_RETENTION_SECONDS + 1
    assert job_store.get_job(job_id) is None
    assert job_id not in job_store._store
