"""
Background jobs for long-running compilation generation.
"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from modloc.logger import get_logger

from modloc.compilation.conflicts import ConflictResolutions
from modloc.compilation.service import CompilationCancelled, CompilationService

logger = get_logger(__name__)

FINISHED_STATES = ("completed", "failed", "cancelled")


@dataclass
class JobState:
    """In-memory representation of a compilation job."""

    job_id: str
    compilation_id: str
    output_dir: Optional[str] = None
    resolutions: Dict[str, Any] = field(default_factory=dict)
    cancel_requested: bool = False
    state: str = "pending"  # pending|running|completed|failed|cancelled
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    progress: Dict[str, Any] = field(default_factory=dict)
    progress_history: List[Dict[str, Any]] = field(default_factory=list)
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    last_update: float = field(default_factory=time.time)

    @property
    def is_finished(self) -> bool:
        return self.state in FINISHED_STATES

    def request_cancel(self):
        """Flag the job so the worker stops at its next checkpoint."""
        self.cancel_requested = True
        self.last_update = time.time()

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        for key in ("created_at", "started_at", "finished_at", "last_update"):
            if payload.get(key) is not None:
                payload[key] = float(payload[key])
        return payload


_jobs: Dict[str, JobState] = {}
_jobs_lock = threading.Lock()
_FINISHED_JOB_TTL = 600  # seconds


def create_compilation_job(
    compilation_id: str,
    output_dir: Optional[str] = None,
    resolutions: Optional[Dict[str, Any]] = None,
) -> JobState:
    """
    Create and launch a background generation job for a compilation.

    Args:
        compilation_id: Compilation to generate.
        output_dir: Optional output directory overriding the configured one.
        resolutions: Conflict resolutions payload (see ConflictResolutions.from_dict).

    Returns:
        The registered JobState; its worker thread is already running.
    """
    # Reject malformed resolutions before starting a thread
    ConflictResolutions.from_dict(resolutions)

    job_id = uuid.uuid4().hex
    job_state = JobState(
        job_id=job_id,
        compilation_id=compilation_id,
        output_dir=output_dir,
        resolutions=dict(resolutions or {}),
    )

    with _jobs_lock:
        _cleanup_jobs_locked()
        _jobs[job_id] = job_state

    thread = threading.Thread(
        target=_run_compilation_job,
        args=(job_state,),
        name=f"compilation-job-{job_id}",
        daemon=True,
    )
    thread.start()
    logger.info("Compilation job %s started for compilation %s", job_id, compilation_id)
    return job_state


def get_job(job_id: str) -> Optional[JobState]:
    """Look up a job; expired finished jobs are dropped and reported as missing."""
    with _jobs_lock:
        job = _jobs.get(job_id)
        if job and job.finished_at and (time.time() - job.finished_at) > _FINISHED_JOB_TTL:
            _jobs.pop(job_id, None)
            return None
        return job


def cancel_job(job_id: str) -> bool:
    """Ask a pending or running job to stop. False when there is nothing to cancel."""
    with _jobs_lock:
        job = _jobs.get(job_id)
        if not job or job.is_finished:
            return False
        job.request_cancel()
        logger.info("Compilation job %s: cancel requested", job_id)
        return True


def get_latest_job(compilation_id: str, active_only: bool = False) -> Optional[JobState]:
    """Most recently created retained job for a compilation."""
    now = time.time()
    with _jobs_lock:
        jobs = [
            job for job in _jobs.values()
            if job.compilation_id == compilation_id
            and (not active_only or not job.is_finished)
            and (not job.finished_at or (now - job.finished_at) < _FINISHED_JOB_TTL)
        ]
        if not jobs:
            return None
        return max(jobs, key=lambda j: j.created_at)


def serialize_job(job: JobState) -> Dict[str, Any]:
    """Snapshot a job for a JSON response."""
    with _jobs_lock:
        return job.to_dict()


def _finish(job: JobState, state: str):
    job.state = state
    job.finished_at = time.time()
    job.last_update = job.finished_at


def _run_compilation_job(job: JobState):
    """Thread target: run the generation and record its outcome on the job."""
    job.state = "running"
    job.started_at = time.time()
    job.last_update = job.started_at
    try:
        service = CompilationService()

        def on_progress(current: int, total: int, message: str):
            with _jobs_lock:
                update = {"current": current, "total": total, "message": message}
                job.progress = update
                job.progress_history.append(update)
                job.last_update = time.time()

        def check_cancel() -> bool:
            with _jobs_lock:
                return job.cancel_requested

        result = service.generate(
            job.compilation_id,
            output_dir=job.output_dir,
            resolutions=ConflictResolutions.from_dict(job.resolutions),
            on_progress=on_progress,
            cancel_check=check_cancel,
        )
        job.result = result
        _finish(job, "completed")
        logger.info(
            "Compilation job %s finished (entries=%s, projects=%s)",
            job.job_id,
            result.get("entry_count"),
            result.get("project_count"),
        )
    except CompilationCancelled:
        _finish(job, "cancelled")
        logger.info("Compilation job %s cancelled", job.job_id)
    except Exception as exc:
        job.error = f"{type(exc).__name__}: {exc}"
        job.error_code = getattr(exc, "code", None)
        _finish(job, "failed")
        logger.exception(
            "Compilation job %s failed for compilation %s: %s",
            job.job_id,
            job.compilation_id,
            job.error,
        )


def _cleanup_jobs_locked():
    """Drop finished jobs past their TTL. Caller holds _jobs_lock."""
    now = time.time()
    expired = [
        job_id
        for job_id, job in _jobs.items()
        if job.finished_at and (now - job.finished_at) > _FINISHED_JOB_TTL
    ]
    for job_id in expired:
        _jobs.pop(job_id, None)
