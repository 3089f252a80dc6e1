#!/usr/bin/env python3
"""
RQ Worker for the stock notification batch.

Executes process-day jobs enqueued on the Redis queue.

Usage:
    python -m notification.worker
    python -m notification.worker --burst
    python -m notification.worker --config config.yaml --verbose
"""

import sys
import argparse
import logging
from typing import List, Optional

from redis import Redis
from rq import Worker

from core.config_loader import load_config

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def start_worker(redis_url: str, queues: List[str], burst: bool = False):
    """Start the RQ worker."""
    logger.info("Starting RQ Worker")
    logger.info(f"Queues: {', '.join(queues)}")
    logger.info(f"Burst mode: {burst}")

    try:
        redis_conn = Redis.from_url(redis_url)
        redis_conn.ping()
        logger.info("Connected to Redis")

        worker = Worker(queues, connection=redis_conn)

        if burst:
            logger.info("Running in burst mode...")
            worker.work(burst=True)
        else:
            logger.info("Worker started. Press Ctrl+C to stop.")
            worker.work()

    except KeyboardInterrupt:
        logger.info("Worker stopped")
    except Exception as e:
        logger.error(f"Error: {e}")
        sys.exit(1)


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description='Stock Notification Worker')
    parser.add_argument('--config', default='config.yaml', help='Path to config.yaml')
    parser.add_argument('--burst', action='store_true', help='Process all and exit')
    parser.add_argument('--queues', nargs='+', default=None,
                        help='Queues to listen on (defaults to scheduler.queue_name)')
    parser.add_argument('--verbose', action='store_true')

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    scheduler_config = load_config(args.config).scheduler
    queues = args.queues or [scheduler_config.queue_name]

    start_worker(scheduler_config.redis_url, queues, burst=args.burst)


if __name__ == '__main__':
    main()
