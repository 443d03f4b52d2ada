"""
Structured JSON logging for lifecycle job observability.

Provides structured logging with run IDs for correlating every log line a
single archive, migration or cleanup run emits, plus a context manager that
times a whole job.
"""

import json
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime

# Context variables for run correlation
run_id_var: ContextVar[str | None] = ContextVar("run_id", default=None)
job_var: ContextVar[str | None] = ContextVar("job", default=None)

# Extra fields copied from LogRecord onto the JSON line
_EXTRA_FIELDS = [
    "event",
    "duration_ms",
    "listing_id",
    "batch_number",
    "operations",
    "completed_batches",
    "items_processed",
    "items_failed",
    "initiated_by",
    "principal",
    "dry_run",
]


# -----------------------------------------------------------------------------
# JSON Formatter
# -----------------------------------------------------------------------------


class JSONFormatter(logging.Formatter):
    """
    Format log records as single-line JSON.

    Output format:
    {"timestamp": "...", "level": "INFO", "message": "...", "run_id": "...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        run_id = run_id_var.get()
        if run_id:
            log_data["run_id"] = run_id

        job = job_var.get()
        if job:
            log_data["job"] = job

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key in _EXTRA_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        return json.dumps(log_data, default=str)


def configure_logging(json_format: bool = True, level: str = "INFO") -> None:
    """
    Configure logging for deployment or local development.

    Args:
        json_format: If True, use JSON format. If False, use human-readable format.
        level: Log level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))

    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)


# -----------------------------------------------------------------------------
# Context Managers
# -----------------------------------------------------------------------------


@contextmanager
def log_job(job: str, run_id: str | None = None):
    """
    Context manager for job-level logging.

    Logs job start and end with duration; every record emitted inside the
    block carries the job name and run id.

    Usage:
        with log_job("cleanup_archived") as run_id:
            # ... job logic ...
    """
    run_id = run_id or uuid.uuid4().hex[:12]
    run_token = run_id_var.set(run_id)
    job_token = job_var.set(job)

    start_time = time.time()
    logger = logging.getLogger("lifecycle.jobs")

    logger.info(f"Job {job} started", extra={"event": "job_start"})

    try:
        yield run_id
        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Job {job} completed",
            extra={"event": "job_complete", "duration_ms": duration_ms},
        )
    except Exception as e:
        duration_ms = int((time.time() - start_time) * 1000)
        logger.error(
            f"Job {job} failed: {e}",
            extra={"event": "job_failed", "duration_ms": duration_ms},
            exc_info=True,
        )
        raise
    finally:
        job_var.reset(job_token)
        run_id_var.reset(run_token)
