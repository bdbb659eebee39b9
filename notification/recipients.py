"""
Recipient Resolver - who should hear about each event type.

Resolvers return user ids (or participation records for wager outcomes,
whose bodies depend on each participant's position). An empty result means
the pipeline stops for this event.
"""

import logging
from typing import List, Optional

from notification.events import ChatMessageEvent, NewWagerEvent, ReminderEvent
from store.base import DocumentStore
from store.models import Group, Participation

logger = logging.getLogger(__name__)


def _unique(user_ids: List[str]) -> List[str]:
    """Drop blanks and repeats, keeping first-seen order."""
    return list(dict.fromkeys(u for u in user_ids if u))


class RecipientResolver:

    def __init__(self, store: DocumentStore):
        self.store = store

    async def for_chat(self, event: ChatMessageEvent) -> List[str]:
        """Active members of the group, except the sender."""
        memberships = await self.store.list_active_memberships(event.group_id)
        members = _unique([m.user_id for m in memberships])
        if not members:
            logger.info(f"No active members found for group {event.group_id}")
            return []

        recipients = [u for u in members if u != event.sender_id]
        logger.info(f"Group {event.group_id}: {len(members)} active members, {len(recipients)} to notify")
        return recipients

    async def for_new_wager(self, event: NewWagerEvent, group: Optional[Group] = None) -> List[str]:
        """The group's member list as stored on the group document."""
        if group is None:
            group = await self.store.get_group(event.group_id)
        if group is None or not group.members:
            logger.info(f"No group data or members found for group {event.group_id}")
            return []
        return _unique(group.members)

    async def for_wager_outcome(self, wager_id: str) -> List[Participation]:
        """Every participation record of the wager, creator included."""
        participations = [p for p in await self.store.list_participations(wager_id) if p.user_id]
        if not participations:
            logger.info(f"No participants found for wager {wager_id}")
        else:
            logger.info(f"Found {len(participations)} participants to notify for wager {wager_id}")
        return participations

    async def for_reminder(self, event: ReminderEvent) -> List[str]:
        return [event.user_id] if event.user_id else []
