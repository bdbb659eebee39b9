#!/usr/bin/env python3
"""
Event Classifier - detects notify-worthy transitions in store mutations.

Each rule takes the raw snapshots of one mutation and returns a typed event,
or None when the mutation is not notify-worthy. Snapshots are validated
against the store schemas here, once; downstream code only sees typed
events.

Rules:
- classify_chat_update: a new entry appeared in a group's chat_log
- classify_wager_created: a wager document was created under a group
- classify_wager_settled: wager status changed to settled
- classify_wager_voided: wager status changed to voided
- classify_reminder_created: a remind_settle notification document was created
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from notification.diff import new_entries
from store.models import Group, Wager, WagerStatus, ReminderRecord, REMIND_SETTLE

logger = logging.getLogger(__name__)

M = TypeVar('M', bound=BaseModel)

# Event type identifiers, also sent to clients as data["type"]
CHAT_MESSAGE = "chat_message"
NEW_WAGER = "new_wager"
WAGER_SETTLED = "wager_settled"
WAGER_VOIDED = "wager_voided"
REMINDER = REMIND_SETTLE


@dataclass(frozen=True)
class ChatMessageEvent:
    group_id: str
    group_name: Optional[str]
    message_id: str
    sender_id: str
    sender_name: Optional[str]
    text: str
    event_type: str = CHAT_MESSAGE

    @property
    def dedup_key(self) -> str:
        return f"{self.event_type}:{self.group_id}:{self.message_id}"


@dataclass(frozen=True)
class NewWagerEvent:
    group_id: str
    wager_id: str
    title: Optional[str]
    event_type: str = NEW_WAGER

    @property
    def dedup_key(self) -> str:
        return f"{self.event_type}:{self.wager_id}"


@dataclass(frozen=True)
class WagerSettledEvent:
    wager_id: str
    title: Optional[str]
    group_name: Optional[str]
    winner_option: Optional[str]
    event_type: str = WAGER_SETTLED

    @property
    def dedup_key(self) -> str:
        return f"{self.event_type}:{self.wager_id}"


@dataclass(frozen=True)
class WagerVoidedEvent:
    wager_id: str
    title: Optional[str]
    group_name: Optional[str]
    event_type: str = WAGER_VOIDED

    @property
    def dedup_key(self) -> str:
        return f"{self.event_type}:{self.wager_id}"


@dataclass(frozen=True)
class ReminderEvent:
    notification_id: str
    user_id: str
    message: str
    group_name: Optional[str]
    event_type: str = REMINDER

    @property
    def dedup_key(self) -> str:
        return f"{self.event_type}:{self.notification_id}"


def _parse(model: Type[M], data: Optional[Dict[str, Any]], label: str) -> Optional[M]:
    """Validate a raw snapshot; missing or invalid data yields None."""
    if data is None:
        return None
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Invalid {label} document, ignoring: {e.error_count()} error(s): {e}")
        return None


def classify_chat_update(
    group_id: str,
    before: Optional[Dict[str, Any]],
    after: Optional[Dict[str, Any]]
) -> Optional[ChatMessageEvent]:
    """Return the most recent new chat entry of a group update, if any."""
    before_group = _parse(Group, before, "group")
    after_group = _parse(Group, after, "group")
    if before_group is None or after_group is None:
        logger.info(f"Group {group_id}: no document data found")
        return None

    added = new_entries(before_group.chat_log, after_group.chat_log)
    if not added:
        logger.info(f"Group {group_id}: no new messages in this update")
        return None

    logger.info(f"Group {group_id}: found {len(added)} new message(s)")
    # Only the last new entry is notified
    message_id, message = added[-1]
    return ChatMessageEvent(
        group_id=group_id,
        group_name=after_group.name,
        message_id=message_id,
        sender_id=message.sender_id,
        sender_name=message.sender_name,
        text=message.text,
    )


def classify_wager_created(
    group_id: str,
    wager_id: str,
    after: Optional[Dict[str, Any]]
) -> Optional[NewWagerEvent]:
    wager = _parse(Wager, after, "wager")
    if wager is None:
        logger.info(f"Wager {wager_id}: no wager data found")
        return None
    return NewWagerEvent(group_id=group_id, wager_id=wager_id, title=wager.title)


def _status_transition(
    wager_id: str,
    before: Optional[Dict[str, Any]],
    after: Optional[Dict[str, Any]],
    target: WagerStatus
) -> Optional[Wager]:
    """Return the after-state when status moved to `target` in this update."""
    before_wager = _parse(Wager, before, "wager")
    after_wager = _parse(Wager, after, "wager")
    if before_wager is None or after_wager is None:
        logger.info(f"Wager {wager_id}: no document data found")
        return None

    if before_wager.status == after_wager.status or after_wager.status != target.value:
        logger.info(f"Wager {wager_id}: status not changed to {target.value}, skipping")
        return None
    return after_wager


def classify_wager_settled(
    wager_id: str,
    before: Optional[Dict[str, Any]],
    after: Optional[Dict[str, Any]]
) -> Optional[WagerSettledEvent]:
    wager = _status_transition(wager_id, before, after, WagerStatus.SETTLED)
    if wager is None:
        return None
    logger.info(f"Wager '{wager.title}' settled with winner: {wager.winner_option}")
    return WagerSettledEvent(
        wager_id=wager_id,
        title=wager.title,
        group_name=wager.group_name,
        winner_option=wager.winner_option,
    )


def classify_wager_voided(
    wager_id: str,
    before: Optional[Dict[str, Any]],
    after: Optional[Dict[str, Any]]
) -> Optional[WagerVoidedEvent]:
    wager = _status_transition(wager_id, before, after, WagerStatus.VOIDED)
    if wager is None:
        return None
    logger.info(f"Wager '{wager.title}' voided")
    return WagerVoidedEvent(wager_id=wager_id, title=wager.title, group_name=wager.group_name)


def classify_reminder_created(
    notification_id: str,
    after: Optional[Dict[str, Any]]
) -> Optional[ReminderEvent]:
    reminder = _parse(ReminderRecord, after, "reminder")
    if reminder is None or reminder.type != REMIND_SETTLE:
        logger.info(f"Notification {notification_id}: not a settlement reminder, skipping")
        return None
    if not reminder.user_id:
        logger.info(f"Notification {notification_id}: reminder has no target user")
        return None
    return ReminderEvent(
        notification_id=notification_id,
        user_id=reminder.user_id,
        message=reminder.message,
        group_name=reminder.group_name,
    )
