#!/usr/bin/env python3
"""
Notification Service - per-event fan-out pipelines.

Main service that turns store mutations into push notifications using:
- Event classifier (notification.events) to detect notify-worthy changes
- EventLedger (notification.tracker) for optional redelivery deduplication
- RecipientResolver / TokenResolver for the audience and device tokens
- NotificationMessageBuilder for payloads
- Dispatcher over a PushChannel for delivery

Every pipeline is a stateless coroutine that always completes: failures are
logged and reported in the returned PipelineResult, never raised to the
trigger host.

Usage:
    from notification.service import NotificationService

    service = NotificationService(store, channel)
    results = await service.handle_event(store_event)
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from notification.channels import BatchSendResult, PushChannel
from notification.dispatcher import Dispatcher
from notification.events import (
    CHAT_MESSAGE,
    NEW_WAGER,
    REMINDER,
    WAGER_SETTLED,
    WAGER_VOIDED,
    WagerSettledEvent,
    WagerVoidedEvent,
    classify_chat_update,
    classify_reminder_created,
    classify_wager_created,
    classify_wager_settled,
    classify_wager_voided,
)
from notification.message_builder import DEFAULT_TITLE, NotificationMessageBuilder, PushPayload
from notification.recipients import RecipientResolver
from notification.tokens import TokenResolver, reachable
from notification.tracker import EventLedger, NullEventLedger
from store.base import DocumentStore
from store.models import Participation, StoreEvent, StoreEventKind

logger = logging.getLogger(__name__)

Snapshot = Optional[Dict[str, Any]]
OutcomeEvent = Union[WagerSettledEvent, WagerVoidedEvent]


class PipelineStatus(Enum):
    """How a pipeline run ended."""
    SKIPPED = "skipped"  # not notify-worthy or missing input
    DUPLICATE = "duplicate"  # already claimed by an earlier delivery
    NO_RECIPIENTS = "no_recipients"
    NO_TOKENS = "no_tokens"
    DISPATCHED = "dispatched"
    FAILED = "failed"


@dataclass
class PipelineResult:
    event_type: str
    status: PipelineStatus
    recipients: List[str] = field(default_factory=list)
    success_count: int = 0
    failure_count: int = 0

    @classmethod
    def dispatched(cls, event_type: str, recipients: List[str], result: BatchSendResult) -> "PipelineResult":
        return cls(
            event_type=event_type,
            status=PipelineStatus.DISPATCHED,
            recipients=recipients,
            success_count=result.success_count,
            failure_count=result.failure_count,
        )


class NotificationService:
    """
    Push notification fan-out for group chat, wagers and reminders.

    This service coordinates:
    1. Classification of the store mutation
    2. Deduplication claim (via EventLedger)
    3. Recipient and device token resolution
    4. Payload building and dispatch
    """

    def __init__(
        self,
        store: DocumentStore,
        channel: PushChannel,
        ledger: Optional[EventLedger] = None,
        fallback_title: str = DEFAULT_TITLE,
        lookup_timeout: Optional[float] = None
    ):
        """
        Initialize notification service.

        Args:
            store: Document store port for recipient and token reads
            channel: Push transport
            ledger: Deduplication ledger (default: no deduplication)
            fallback_title: Title used when the group name is unknown
            lookup_timeout: Seconds allowed per device token lookup
        """
        self.store = store
        self.ledger = ledger or NullEventLedger()
        self.recipients = RecipientResolver(store)
        self.tokens = TokenResolver(store, timeout=lookup_timeout)
        self.builder = NotificationMessageBuilder(fallback_title)
        self.dispatcher = Dispatcher(channel)

    async def handle_event(self, event: StoreEvent) -> List[PipelineResult]:
        """
        Route a store trigger to its pipeline(s).

        A wager update runs both the settled and the voided rule; at most one
        of them can fire for a given update.
        """
        params = event.params
        logger.info(f"Handling {event.kind.value} event {event.event_id or ''}".rstrip())

        if event.kind == StoreEventKind.GROUP_UPDATED:
            if not params.get('group_id'):
                return [self._missing_param(CHAT_MESSAGE, 'group_id')]
            return [await self.on_group_updated(params['group_id'], event.before, event.after)]

        if event.kind == StoreEventKind.WAGER_CREATED:
            for name in ('group_id', 'wager_id'):
                if not params.get(name):
                    return [self._missing_param(NEW_WAGER, name)]
            return [await self.on_wager_created(params['group_id'], params['wager_id'], event.after)]

        if event.kind == StoreEventKind.WAGER_UPDATED:
            if not params.get('wager_id'):
                return [self._missing_param(WAGER_SETTLED, 'wager_id')]
            return await self.on_wager_updated(params['wager_id'], event.before, event.after)

        if not params.get('notification_id'):
            return [self._missing_param(REMINDER, 'notification_id')]
        return [await self.on_reminder_created(params['notification_id'], event.after)]

    @staticmethod
    def _missing_param(event_type: str, name: str) -> PipelineResult:
        logger.warning(f"{event_type} event without {name}, skipping")
        return PipelineResult(event_type, PipelineStatus.SKIPPED)

    async def _guarded(self, event_type: str, pipeline: Callable[[], Awaitable[PipelineResult]]) -> PipelineResult:
        """Run a pipeline, converting any unexpected error into a FAILED result."""
        try:
            return await pipeline()
        except Exception as e:
            logger.error(f"Error sending {event_type} notification: {e}", exc_info=True)
            return PipelineResult(event_type, PipelineStatus.FAILED)

    async def _claim(self, dedup_key: str) -> bool:
        return await self.ledger.claim(dedup_key)

    # ============ Chat ============

    async def on_group_updated(self, group_id: str, before: Snapshot, after: Snapshot) -> PipelineResult:
        async def pipeline() -> PipelineResult:
            event = classify_chat_update(group_id, before, after)
            if event is None:
                return PipelineResult(CHAT_MESSAGE, PipelineStatus.SKIPPED)
            if not await self._claim(event.dedup_key):
                return PipelineResult(CHAT_MESSAGE, PipelineStatus.DUPLICATE)

            logger.info(f"Processing message {event.message_id} from {event.sender_name} in group {group_id}")
            recipients = await self.recipients.for_chat(event)
            payload = self.builder.build_chat(event)
            return await self._broadcast(CHAT_MESSAGE, recipients, payload)

        return await self._guarded(CHAT_MESSAGE, pipeline)

    # ============ New wager ============

    async def on_wager_created(self, group_id: str, wager_id: str, after: Snapshot) -> PipelineResult:
        async def pipeline() -> PipelineResult:
            event = classify_wager_created(group_id, wager_id, after)
            if event is None:
                return PipelineResult(NEW_WAGER, PipelineStatus.SKIPPED)
            if not await self._claim(event.dedup_key):
                return PipelineResult(NEW_WAGER, PipelineStatus.DUPLICATE)

            group = await self.store.get_group(group_id)
            recipients = await self.recipients.for_new_wager(event, group)
            payload = self.builder.build_new_wager(event, group.name if group else None)
            return await self._broadcast(NEW_WAGER, recipients, payload)

        return await self._guarded(NEW_WAGER, pipeline)

    async def _broadcast(self, event_type: str, recipients: List[str], payload: PushPayload) -> PipelineResult:
        """Batch mode: resolve tokens for all recipients and send one shared payload."""
        if not recipients:
            return PipelineResult(event_type, PipelineStatus.NO_RECIPIENTS)

        lookups = reachable(await self.tokens.resolve(recipients))
        if not lookups:
            logger.info(f"No valid device tokens found for {event_type}")
            return PipelineResult(event_type, PipelineStatus.NO_TOKENS, recipients=recipients)

        logger.info(f"Found {len(lookups)} device tokens for {len(recipients)} recipients")
        result = await self.dispatcher.send_batch([lookup.token for lookup in lookups], payload)
        return PipelineResult.dispatched(event_type, recipients, result)

    # ============ Wager outcome ============

    async def on_wager_updated(self, wager_id: str, before: Snapshot, after: Snapshot) -> List[PipelineResult]:
        return [
            await self.on_wager_settled(wager_id, before, after),
            await self.on_wager_voided(wager_id, before, after),
        ]

    async def on_wager_settled(self, wager_id: str, before: Snapshot, after: Snapshot) -> PipelineResult:
        async def pipeline() -> PipelineResult:
            event = classify_wager_settled(wager_id, before, after)
            if event is None:
                return PipelineResult(WAGER_SETTLED, PipelineStatus.SKIPPED)
            return await self._notify_participants(
                event, lambda p: self.builder.build_settled(event, p)
            )

        return await self._guarded(WAGER_SETTLED, pipeline)

    async def on_wager_voided(self, wager_id: str, before: Snapshot, after: Snapshot) -> PipelineResult:
        async def pipeline() -> PipelineResult:
            event = classify_wager_voided(wager_id, before, after)
            if event is None:
                return PipelineResult(WAGER_VOIDED, PipelineStatus.SKIPPED)
            return await self._notify_participants(
                event, lambda p: self.builder.build_voided(event, p)
            )

        return await self._guarded(WAGER_VOIDED, pipeline)

    async def _notify_participants(
        self,
        event: OutcomeEvent,
        build: Callable[[Participation], PushPayload]
    ) -> PipelineResult:
        """Single mode: one individual payload per participant with a device token."""
        if not await self._claim(event.dedup_key):
            return PipelineResult(event.event_type, PipelineStatus.DUPLICATE)

        participations = await self.recipients.for_wager_outcome(event.wager_id)
        if not participations:
            return PipelineResult(event.event_type, PipelineStatus.NO_RECIPIENTS)

        user_ids = list(dict.fromkeys(p.user_id for p in participations))
        tokens = {lookup.user_id: lookup.token for lookup in reachable(await self.tokens.resolve(user_ids))}
        if not tokens:
            logger.info(f"No valid device tokens found for wager {event.wager_id}")
            return PipelineResult(event.event_type, PipelineStatus.NO_TOKENS, recipients=user_ids)

        deliveries = [(tokens[p.user_id], build(p)) for p in participations if p.user_id in tokens]
        result = await self.dispatcher.send_each(deliveries)
        logger.info(f"All {event.event_type} notifications sent for wager '{event.title}'")
        return PipelineResult.dispatched(event.event_type, user_ids, result)

    # ============ Reminder ============

    async def on_reminder_created(self, notification_id: str, after: Snapshot) -> PipelineResult:
        async def pipeline() -> PipelineResult:
            event = classify_reminder_created(notification_id, after)
            if event is None:
                return PipelineResult(REMINDER, PipelineStatus.SKIPPED)
            if not await self._claim(event.dedup_key):
                return PipelineResult(REMINDER, PipelineStatus.DUPLICATE)

            logger.info(f"Settlement reminder for {event.user_id}: {event.message}")
            recipients = await self.recipients.for_reminder(event)
            lookups = reachable(await self.tokens.resolve(recipients))
            if not lookups:
                logger.info(f"No device token found for user: {event.user_id}")
                return PipelineResult(REMINDER, PipelineStatus.NO_TOKENS, recipients=recipients)

            payload = self.builder.build_reminder(event)
            result = await self.dispatcher.send_each([(lookup.token, payload) for lookup in lookups])
            return PipelineResult.dispatched(REMINDER, recipients, result)

        return await self._guarded(REMINDER, pipeline)
