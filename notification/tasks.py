"""
RQ tasks for the daily stock notification run.

A scheduler (cron, or `main.py enqueue-day`) enqueues
process_stock_notifications_task on the Redis queue; an RQ worker
(`python -m notification.worker`) executes it.
"""

import logging
from datetime import date
from typing import Optional, Dict, Any

from redis import Redis
from rq import Queue

from core.config_loader import AppConfig, load_config

logger = logging.getLogger(__name__)


def parse_day(value: Optional[str]) -> Optional[date]:
    """Parse YYYY-MM-DD; None stays None (meaning "today")."""
    if value is None or not value.strip():
        return None
    return date.fromisoformat(value.strip())


# Worker task - must be at module level for RQ
def process_stock_notifications_task(day: Optional[str] = None, config_path: str = "config.yaml") -> Dict[str, Any]:
    """
    Run the deduplicate-and-deliver pass for one day (called by RQ worker).

    Returns the run summary as a dict so it is stored as the job result.
    """
    from core.app_context import AppContext

    config = load_config(config_path)
    context = AppContext.build(config)

    result = context.processor.process_day(parse_day(day))
    return result.to_dict()


def enqueue_process_day(
    config: AppConfig,
    day: Optional[date] = None,
    redis_conn: Optional[Redis] = None
) -> str:
    """
    Enqueue a process-day job. Returns the RQ job id.

    The worker resolves "today" in the configured time zone when day is None.
    """
    scheduler_config = config.scheduler
    redis_conn = redis_conn or Redis.from_url(scheduler_config.redis_url)
    queue = Queue(scheduler_config.queue_name, connection=redis_conn)

    job = queue.enqueue(
        process_stock_notifications_task,
        day.isoformat() if day else None,
        job_timeout=scheduler_config.job_timeout,
        result_ttl=scheduler_config.result_ttl_seconds
    )
    logger.info(f"Queued stock notification run for {day or 'today'} as job {job.id}")
    return job.id
