"""
Run scheduling — Redis single-flight lock + RQ background execution.

Only one profitability run may execute at a time per deployment: the estimate
cache and limiter are process-local and two concurrent passes over the same
hour bucket would race each other. The lock is a plain SET NX EX key with a
token so only the holder releases it.
"""
import logging
import uuid

from minerchecker.config import RUN_LOCK_TTL_S

logger = logging.getLogger('services.run_queue')

RUN_LOCK_KEY = 'profitability:run_lock'
RUN_JOB_TIMEOUT_S = 3600

_queue = None


def _get_redis():
    from minerchecker.extensions import redis_client
    return redis_client


def _get_queue():
    global _queue
    if _queue is None:
        from rq import Queue
        _queue = Queue(connection=_get_redis())
    return _queue


def acquire_run_lock(ttl=RUN_LOCK_TTL_S):
    """Return a lock token, or None if another run holds the lock."""
    token = uuid.uuid4().hex
    if _get_redis().set(RUN_LOCK_KEY, token, nx=True, ex=int(ttl)):
        return token
    return None


def release_run_lock(token) -> bool:
    r = _get_redis()
    if token and r.get(RUN_LOCK_KEY) == token:
        r.delete(RUN_LOCK_KEY)
        return True
    return False


def run_locked(token, **params):
    """Execute one run and release the lock afterwards (used inline and by the RQ worker)."""
    from minerchecker.profitability.builder import compute_profitability_snapshots
    try:
        return compute_profitability_snapshots(**params)
    finally:
        release_run_lock(token)


def run_profitability_job(token, params):
    """RQ entry point. Returns the summary dict so it is stored as the job result."""
    from minerchecker.logging_config import configure_logging
    configure_logging()
    summary = run_locked(token, **params)
    return summary.to_dict()


def enqueue_run(token, params):
    """Enqueue a locked run on RQ; the worker releases the lock when done."""
    job = _get_queue().enqueue(run_profitability_job, token, params, job_timeout=RUN_JOB_TIMEOUT_S)
    logger.info("Profitability run enqueued as job %s", job.id)
    return job
