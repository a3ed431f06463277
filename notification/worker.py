#!/usr/bin/env python3
"""
RQ Worker for the notification delivery queue.

Runs with the RQ scheduler enabled so delayed jobs (quiet hours,
scheduled sends, retry backoff) are moved onto the queue when due.

Usage:
    python -m notification.worker
    python -m notification.worker --burst
    python -m notification.worker --verbose
"""

import sys
import argparse
import logging
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from redis import Redis
from rq import Worker, Queue

from core.config_loader import load_config
from notification.queue import get_worker_queue

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def start_worker(burst: bool = False, queues: list = None, with_scheduler: bool = True):
    """Start the RQ worker."""
    config = load_config()
    redis_url = config.queue.redis_url

    if queues is None:
        queues = [config.queue.queue_name]

    logger.info("Starting RQ Worker")
    logger.info(f"Queues: {', '.join(queues)}")
    logger.info(f"Burst mode: {burst}, scheduler: {with_scheduler}")

    try:
        redis_conn = Redis.from_url(redis_url)
        redis_conn.ping()
        logger.info("Connected to Redis")

        # Build channel senders and DB wiring once, before the first job
        get_worker_queue()

        worker = Worker([Queue(name, connection=redis_conn) for name in queues], connection=redis_conn)

        if burst:
            logger.info("Running in burst mode...")
        else:
            logger.info("Worker started. Press Ctrl+C to stop.")
        worker.work(burst=burst, with_scheduler=with_scheduler)

    except KeyboardInterrupt:
        logger.info("Worker stopped")
    except Exception as e:
        logger.error(f"Error: {e}")
        sys.exit(1)


def main():
    parser = argparse.ArgumentParser(description='Notification delivery worker')
    parser.add_argument('--burst', action='store_true', help='Process all and exit')
    parser.add_argument('--queues', nargs='+', default=None)
    parser.add_argument('--no-scheduler', action='store_true', help='Do not promote delayed jobs')
    parser.add_argument('--verbose', action='store_true')

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    start_worker(burst=args.burst, queues=args.queues, with_scheduler=not args.no_scheduler)


if __name__ == '__main__':
    main()
