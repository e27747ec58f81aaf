"""In-memory job store for async wiki generation jobs."""

import os
import threading
import time
import uuid
from typing import Any

# In-memory store: job_id -> job record.
_store: dict[str, dict[str, Any]] = {}
_lock = threading.Lock()
JOB_RETENTION_SECONDS = int(os.environ.get("JOB_RETENTION_SECONDS", "86400"))  # 24 h

TERMINAL_STATUSES = ("completed", "failed", "cancelled")


def create_job(inputs: dict[str, Any]) -> str:
    """Create a new job with status queued. Returns job_id."""
    job_id = str(uuid.uuid4())
    now = time.time()
    with _lock:
        _store[job_id] = {
            "job_id": job_id,
            "status": "queued",
            "inputs": inputs,
            "cancel_event": threading.Event(),  # not exposed in get_job response
            "result": None,
            "error": None,
            "created_at": now,
            "updated_at": now,
        }
    return job_id


def update_status(
    job_id: str,
    status: str,
    result: dict[str, Any] | None = None,
    error: str | None = None,
) -> None:
    """Update job status and optionally result or error."""
    with _lock:
        rec = _store.get(job_id)
        if rec is None:
            return
        rec["status"] = status
        rec["updated_at"] = time.time()
        if result is not None:
            rec["result"] = result
        if error is not None:
            rec["error"] = error


def cancel_job(job_id: str) -> bool:
    """
    Request cancellation. The running pipeline stops at its next stage boundary.

    Returns False if the job is unknown or already finished.
    """
    rec = get_job_internal(job_id)
    if rec is None or rec["status"] in TERMINAL_STATUSES:
        return False
    rec["cancel_event"].set()
    return True


def get_job(job_id: str) -> dict[str, Any] | None:
    """Return job record for API response (no inputs, no cancel event). None if missing or expired."""
    rec = get_job_internal(job_id)
    if rec is None:
        return None
    return {
        "job_id": rec["job_id"],
        "status": rec["status"],
        "created_at": rec["created_at"],
        "updated_at": rec["updated_at"],
        "result": rec.get("result"),
        "error": rec.get("error"),
    }


def get_job_internal(job_id: str) -> dict[str, Any] | None:
    """Return full job record including inputs and cancel event (for runner)."""
    _cleanup_expired()
    with _lock:
        return _store.get(job_id)


def _cleanup_expired() -> None:
    """Remove jobs older than JOB_RETENTION_SECONDS."""
    now = time.time()
    with _lock:
        to_remove = [jid for jid, rec in _store.items() if now - rec["created_at"] > JOB_RETENTION_SECONDS]
        for jid in to_remove:
            del _store[jid]
