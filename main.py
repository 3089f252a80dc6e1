import logging
import signal
import sys
import json
import argparse
import threading

from core.config_loader import load_config
from database.init_db import init_db
from notification.tasks import parse_day, enqueue_process_day

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def install_shutdown_handlers(stop_event: threading.Event) -> None:
    """Set stop_event on SIGINT/SIGTERM so the intake loop exits after its current poll."""
    def signal_handler(sig, frame):
        logger.info("Shutdown signal received")
        stop_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


def run_intake(context) -> int:
    stop_event = threading.Event()
    install_shutdown_handlers(stop_event)

    try:
        consumer = context.build_intake_consumer()
    except ValueError as e:
        logger.error(f"Intake not started: {e}")
        return 1

    consumer.run(stop_event)
    return 0


def run_process_day(context, day) -> int:
    result = context.processor.process_day(day)
    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.success else 2


def run_pending_count(context, day) -> int:
    count = context.processor.pending_count(day)
    print(json.dumps({
        'date': count.date.isoformat(),
        'total_pending_events': count.total_pending_events,
        'distinct_recipient_sku_pairs': count.distinct_recipient_sku_pairs,
    }, indent=2))
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Back-in-stock notification service")
    parser.add_argument('--config', default='config.yaml', help='Path to config.yaml')
    parser.add_argument('--verbose', action='store_true')

    subparsers = parser.add_subparsers(dest='command', required=True)
    subparsers.add_parser('init-db', help='Create event store tables')
    subparsers.add_parser('intake', help='Consume the SQS queue until interrupted')
    for name, help_text in (
        ('process-day', 'Deduplicate and deliver pending events for a day'),
        ('enqueue-day', 'Queue a process-day run for the RQ worker'),
        ('pending-count', 'Show pending events and distinct pairs for a day'),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument('--date', type=parse_day, default=None,
                         help='Day to use (YYYY-MM-DD, defaults to today in the configured time zone)')

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config = load_config(args.config)

    if args.command == 'enqueue-day':
        job_id = enqueue_process_day(config, args.date)
        print(job_id)
        return 0

    if args.command == 'init-db':
        from database.database import build_engine
        init_db(build_engine(config.database.url))
        return 0

    from core.app_context import AppContext
    context = AppContext.build(config)

    if args.command == 'intake':
        return run_intake(context)
    if args.command == 'process-day':
        return run_process_day(context, args.date)
    return run_pending_count(context, args.date)


if __name__ == "__main__":
    sys.exit(main())
