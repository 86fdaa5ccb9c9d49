"""RQ jobs."""
import logging

logger = logging.getLogger(__name__)


def process_outbox() -> dict:
    """One outbox cycle for schedulers that enqueue work instead of calling the HTTP trigger."""
    from rq import get_current_job

    from apps.backend.config import configure_logging
    from apps.backend.services.outbox_processor import run_outbox_cycle

    configure_logging()
    job = get_current_job()
    job_id = job.id if job is not None else None
    logger.info("outbox_job_started job_id=%s", job_id)
    result = run_outbox_cycle()
    logger.info(
        "outbox_job_done job_id=%s processed=%s errors=%s unprocessed=%s skipped=%s",
        job_id,
        result.processed,
        result.errors,
        result.unprocessed,
        result.skipped,
    )
    return result.to_response()


def enqueue_process_outbox() -> str:
    """Put a process_outbox job on the outbox queue; returns the RQ job id."""
    from redis import Redis
    from rq import Queue

    from apps.backend.config import get_settings

    s = get_settings()
    q = Queue(s.rq_outbox_queue_name or "outbox", connection=Redis(host=s.redis_host, port=s.redis_port))
    job = q.enqueue("apps.worker.jobs.process_outbox", job_timeout=max(60, int(s.outbox_lock_ttl_seconds) * 2))
    return job.id
