"""
Document schemas for the shared store.

The store hands back loosely-typed dicts; these models give every field a
default so partial documents still validate, and ignore fields the
notification core does not read. A field stored as null is treated like a
missing one. Fields also accept the names used by the legacy mobile
app collections (community_id, user_email, bet_id, fcm_token, ...).
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)


class WagerStatus(str, Enum):
    """Wager lifecycle values the notification core reacts to."""
    OPEN = "open"
    SETTLED = "settled"
    VOIDED = "voided"


class StoreEventKind(str, Enum):
    GROUP_UPDATED = "group_updated"
    WAGER_CREATED = "wager_created"
    WAGER_UPDATED = "wager_updated"
    REMINDER_CREATED = "reminder_created"


REMIND_SETTLE = "remind_settle"


class StoreDocument(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def drop_null_fields(cls, data: Any) -> Any:
        # null in the store means "unset": let the field default apply
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class MessageRecord(StoreDocument):
    sender_id: str = Field("", validation_alias=AliasChoices("sender_id", "sender_email"))
    sender_name: Optional[str] = None
    text: str = Field("", validation_alias=AliasChoices("text", "message"))
    created_at: Optional[datetime] = None
    type: str = "regular"


class Group(StoreDocument):
    id: Optional[str] = None
    name: Optional[str] = None
    members: List[str] = Field(default_factory=list)  # fixed at creation
    chat_log: Dict[str, MessageRecord] = Field(
        default_factory=dict, validation_alias=AliasChoices("chat_log", "chat_history")
    )

    @field_validator("chat_log", mode="before")
    @classmethod
    def drop_null_entries(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {k: entry for k, entry in v.items() if entry is not None}
        return v


class Membership(StoreDocument):
    group_id: str = Field("", validation_alias=AliasChoices("group_id", "community_id"))
    user_id: str = Field("", validation_alias=AliasChoices("user_id", "user_email"))
    is_active: bool = False  # stored as true/false or 1/0


class Wager(StoreDocument):
    id: Optional[str] = None
    group_id: Optional[str] = Field(None, validation_alias=AliasChoices("group_id", "community_id"))
    group_name: Optional[str] = Field(None, validation_alias=AliasChoices("group_name", "community_name"))
    title: Optional[str] = None
    # Plain string: the store also holds statuses we never notify on.
    status: str = WagerStatus.OPEN.value
    winner_option: Optional[str] = None


class Participation(StoreDocument):
    wager_id: str = Field("", validation_alias=AliasChoices("wager_id", "bet_id"))
    user_id: str = Field("", validation_alias=AliasChoices("user_id", "user_email"))
    chosen_option: Optional[str] = None
    stake_amount: float = 0
    final_payout: Optional[float] = None


class ReminderRecord(StoreDocument):
    id: Optional[str] = None
    type: str = ""
    user_id: str = Field("", validation_alias=AliasChoices("user_id", "user_email"))
    group_name: Optional[str] = Field(None, validation_alias=AliasChoices("group_name", "community_name"))
    message: str = ""


class User(StoreDocument):
    id: Optional[str] = None
    device_token: Optional[str] = Field(None, validation_alias=AliasChoices("device_token", "fcm_token"))


Doc = TypeVar("Doc", bound=StoreDocument)


def validate_each(model: Type[Doc], records: Iterable[Dict[str, Any]], label: str) -> List[Doc]:
    """
    Validate a list of raw records one at a time.

    A record that still fails validation is skipped with a warning so one
    corrupt document cannot hide the rest of the result.
    """
    documents = []
    for record in records:
        try:
            documents.append(model.model_validate(record))
        except ValidationError as e:
            logger.warning(f"Skipping invalid {label} record: {e.error_count()} error(s): {e}")
    return documents


class StoreEvent(StoreDocument):
    """
    Trigger envelope handed over by the document store.

    `params` carries the path parameters of the mutated document
    (group_id, wager_id, notification_id); `before`/`after` are the raw
    snapshots, either of which may be missing depending on the trigger.
    """
    kind: StoreEventKind
    params: Dict[str, str] = Field(default_factory=dict)
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    event_id: Optional[str] = None
