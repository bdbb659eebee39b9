#!/usr/bin/env python3
"""
RQ Worker for the push notification pipelines.

Store triggers are serialized onto the Redis Queue with enqueue_store_event()
and processed here, one event per job, by process_store_event().

Usage:
    python -m notification.worker
    python -m notification.worker --burst
    python -m notification.worker --config config.yaml --verbose
"""

import os
import sys
import asyncio
import argparse
import logging
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from redis import Redis
from rq import Queue, Worker
from rq.job import Job

from core.app_context import AppContext, DEFAULT_REDIS_URL
from core.config_loader import AppConfig, load_config
from store.models import StoreEvent

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = 'NOTIFICATION_CONFIG'

_context: Optional[AppContext] = None


def get_context() -> AppContext:
    """Wired dependencies for this worker process (built on first job)."""
    global _context
    if _context is None:
        config_path = os.environ.get(CONFIG_ENV_VAR, 'config.yaml')
        _context = AppContext.build(load_config(config_path))
    return _context


def reset_context() -> None:
    global _context
    _context = None


def _redis_url(config: AppConfig) -> str:
    return config.notifications.redis_url or os.environ.get('REDIS_URL', DEFAULT_REDIS_URL)


def get_queue(config: AppConfig, connection: Optional[Redis] = None) -> Queue:
    """Queue that store triggers are published to."""
    connection = connection or Redis.from_url(_redis_url(config))
    return Queue(config.notifications.queue_name, connection=connection)


def enqueue_store_event(queue: Queue, event: StoreEvent) -> Job:
    """
    Put a store trigger on the queue.

    No retry policy: a failed delivery is logged by the pipeline, not retried.
    """
    job = queue.enqueue(
        process_store_event,
        event.model_dump(mode='json'),
        job_timeout='5m',
        result_ttl=86400
    )
    logger.info(f"Queued {event.kind.value} event as job {job.id}")
    return job


def process_store_event(event_data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Process one store trigger (called by RQ worker).

    Returns a summary of each pipeline run, stored as the job result.
    """
    event = StoreEvent.model_validate(event_data)
    service = get_context().notification_service
    if service is None:
        logger.info(f"Notifications disabled, dropping {event.kind.value} event")
        return []

    results = asyncio.run(service.handle_event(event))
    summaries = []
    for result in results:
        summary = asdict(result)
        summary['status'] = result.status.value
        summaries.append(summary)
        logger.info(
            f"{result.event_type}: {result.status.value} "
            f"({result.success_count} sent, {result.failure_count} failed)"
        )
    return summaries


def start_worker(config_path: str = 'config.yaml', burst: bool = False, queues: Optional[list] = None):
    """Start the RQ worker."""
    os.environ[CONFIG_ENV_VAR] = config_path
    config = load_config(config_path)
    redis_url = _redis_url(config)

    if queues is None:
        queues = [config.notifications.queue_name]

    logger.info("Starting RQ Worker")
    logger.info(f"Redis URL: {redis_url}")
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


def main():
    parser = argparse.ArgumentParser(description='Push Notification Worker')
    parser.add_argument('--config', default='config.yaml', help='Path to config.yaml')
    parser.add_argument('--burst', action='store_true', help='Process all and exit')
    parser.add_argument('--queues', nargs='+', default=None)
    parser.add_argument('--verbose', action='store_true')

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    start_worker(config_path=args.config, burst=args.burst, queues=args.queues)


if __name__ == '__main__':
    main()
