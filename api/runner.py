"""Background runner: run the pipeline for a job and update the job store."""

import logging
import threading
from typing import Any

from api import job_store
from config import WikiConfig, build_config
from errors import PipelineCancelledError
from shared_schema import PipelineContext

logger = logging.getLogger("agentic_wiki.api.runner")


def _run_pipeline(config: WikiConfig, cancel_event: threading.Event) -> PipelineContext:
    from flow import run_pipeline

    return run_pipeline(config, cancel_event=cancel_event)


def _result_from_context(shared: PipelineContext) -> dict[str, Any]:
    from nodes import build_chapter_table

    table = build_chapter_table(shared.chapter_order, shared.abstractions)
    chapters = [
        {"num": info.num, "name": info.name, "filename": info.filename}
        for info in (table[i] for i in shared.chapter_order)
    ]
    return {
        "final_output_dir": shared.final_output_dir,
        "summary": shared.relationships.summary or None,
        "chapters": chapters,
    }


def start_job(job_id: str) -> threading.Thread:
    """Run the job in a daemon thread."""
    t = threading.Thread(target=run_job, args=(job_id,), daemon=True)
    t.start()
    return t


def run_job(job_id: str) -> None:
    """
    Run the pipeline for the given job.
    Updates job store: running -> completed (with result), failed or cancelled (with error).
    """
    rec = job_store.get_job_internal(job_id)
    if not rec:
        logger.warning("Job %s not found or expired", job_id)
        return
    if rec["status"] != "queued":
        return
    cancel_event = rec["cancel_event"]
    if cancel_event.is_set():
        job_store.update_status(job_id, "cancelled", error="Job cancelled before start")
        return
    job_store.update_status(job_id, "running")
    try:
        config = build_config(**(rec.get("inputs") or {}))
        shared = _run_pipeline(config, cancel_event)
        result = _result_from_context(shared)
        job_store.update_status(job_id, "completed", result=result)
        logger.info("Job %s completed: %s", job_id, result["final_output_dir"])
    except PipelineCancelledError as e:
        logger.info("Job %s cancelled: %s", job_id, e)
        job_store.update_status(job_id, "cancelled", error=str(e))
    except Exception as e:
        logger.exception("Job %s failed: %s", job_id, e)
        job_store.update_status(job_id, "failed", error=str(e))
