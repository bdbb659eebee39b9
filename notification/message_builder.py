from typing import Dict, Optional, Union

from pydantic import BaseModel, Field

from notification.events import (
    ChatMessageEvent,
    NewWagerEvent,
    WagerSettledEvent,
    WagerVoidedEvent,
    ReminderEvent,
)
from store.models import Participation

# Fractional amounts are rounded to this many decimals before display
AMOUNT_DECIMALS = 2

# Chat previews longer than this are cut to TRUNCATE_KEEP chars + ellipsis
MAX_PREVIEW_LENGTH = 50
ELLIPSIS = "..."
TRUNCATE_KEEP = MAX_PREVIEW_LENGTH - len(ELLIPSIS)

DEFAULT_TITLE = "Community"
DEFAULT_SENDER_NAME = "Someone"
DEFAULT_WAGER_TITLE = "New Bet"


class PushPayload(BaseModel):
    title: str
    body: str
    data: Dict[str, str] = Field(default_factory=dict)  # client routing keys, string values only


class NotificationMessageBuilder:
    """Builds title/body/data for each event type."""

    def __init__(self, fallback_title: str = DEFAULT_TITLE):
        self.fallback_title = fallback_title

    def title_for(self, group_name: Optional[str]) -> str:
        return group_name or self.fallback_title

    @staticmethod
    def truncate_text(text: str) -> str:
        """Cap chat previews at MAX_PREVIEW_LENGTH characters including the ellipsis."""
        if len(text) > MAX_PREVIEW_LENGTH:
            return text[:TRUNCATE_KEEP] + ELLIPSIS
        return text

    @staticmethod
    def format_amount(amount: Union[int, float]) -> str:
        """Format points with ',' grouping, independent of the host locale."""
        rounded = round(float(amount), AMOUNT_DECIMALS)
        if rounded.is_integer():
            return f"{int(rounded):,}"
        return f"{rounded:,}"

    @staticmethod
    def is_winner(participation: Participation, winner_option: Optional[str]) -> bool:
        return winner_option is not None and participation.chosen_option == winner_option

    @staticmethod
    def payout_amount(participation: Participation) -> Union[int, float]:
        if participation.final_payout is not None:
            return participation.final_payout
        return participation.stake_amount

    def build_chat(self, event: ChatMessageEvent) -> PushPayload:
        sender_name = event.sender_name or DEFAULT_SENDER_NAME
        return PushPayload(
            title=self.title_for(event.group_name),
            body=f"{sender_name}: {self.truncate_text(event.text)}",
            data={
                'type': event.event_type,
                'group_id': event.group_id,
                'message_id': event.message_id,
                'sender_id': event.sender_id,
                'sender_name': sender_name,
            },
        )

    def build_new_wager(self, event: NewWagerEvent, group_name: Optional[str]) -> PushPayload:
        return PushPayload(
            title=self.title_for(group_name),
            body=f"New bet: {event.title or DEFAULT_WAGER_TITLE}",
            data={
                'type': event.event_type,
                'group_id': event.group_id,
                'wager_id': event.wager_id,
            },
        )

    def build_settled(self, event: WagerSettledEvent, participation: Participation) -> PushPayload:
        wager_title = event.title or DEFAULT_WAGER_TITLE
        won = self.is_winner(participation, event.winner_option)
        if won:
            amount = self.format_amount(self.payout_amount(participation))
            body = f"You won {amount} on '{wager_title}'"
        else:
            body = f"Your bet on '{wager_title}' has been settled"

        return PushPayload(
            title=self.title_for(event.group_name),
            body=body,
            data={
                'type': event.event_type,
                'wager_id': event.wager_id,
                'is_winner': str(won).lower(),
            },
        )

    def build_voided(self, event: WagerVoidedEvent, participation: Participation) -> PushPayload:
        refund = self.format_amount(participation.stake_amount)
        wager_title = event.title or DEFAULT_WAGER_TITLE
        return PushPayload(
            title=self.title_for(event.group_name),
            body=(
                f"Your bet on '{wager_title}' was voided due to lack of opposing wagers. "
                f"You've been refunded {refund} points."
            ),
            data={
                'type': event.event_type,
                'wager_id': event.wager_id,
            },
        )

    def build_reminder(self, event: ReminderEvent) -> PushPayload:
        return PushPayload(
            title=self.title_for(event.group_name),
            body=event.message,
            data={
                'type': event.event_type,
                'notification_id': event.notification_id,
            },
        )
