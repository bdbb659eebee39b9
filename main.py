import sys
import json
import asyncio
import logging
import argparse

from core.app_context import AppContext
from core.config_loader import load_config
from notification.service import PipelineStatus
from notification.worker import enqueue_store_event, get_queue
from store.models import StoreEvent

logger = logging.getLogger(__name__)


def read_event(source: str) -> StoreEvent:
    """Read one JSON store event from a file path, or stdin when source is '-'."""
    if source == '-':
        data = json.load(sys.stdin)
    else:
        with open(source, 'r') as f:
            data = json.load(f)
    return StoreEvent.model_validate(data)


async def replay(context: AppContext, event: StoreEvent) -> int:
    """Run one event through the pipelines in-process; exit code 1 if any run failed."""
    if context.notification_service is None:
        logger.warning("Notifications disabled via config, nothing to do")
        return 0

    results = await context.notification_service.handle_event(event)
    failed = False
    for result in results:
        logger.info(
            f"{result.event_type}: {result.status.value} - {len(result.recipients)} recipients, "
            f"{result.success_count} sent, {result.failure_count} failed"
        )
        failed = failed or result.status == PipelineStatus.FAILED
    return 1 if failed else 0


def main():
    parser = argparse.ArgumentParser(description="Push Notification Event Replay")
    parser.add_argument('event', help="Path to a JSON store event, or '-' for stdin")
    parser.add_argument('--config', type=str, default='config.yaml', help='Path to config.yaml')
    parser.add_argument('--enqueue', action='store_true',
                        help='Put the event on the RQ queue instead of processing it here')
    parser.add_argument('--verbose', action='store_true')
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config = load_config(args.config)
    event = read_event(args.event)
    logger.info(f"Replaying {event.kind.value} event {event.params}")

    if args.enqueue:
        enqueue_store_event(get_queue(config), event)
        return

    context = AppContext.build(config)
    sys.exit(asyncio.run(replay(context, event)))


if __name__ == "__main__":
    main()
