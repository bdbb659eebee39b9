"""Document store port, schemas and adapters."""

from store.base import DocumentStore
from store.memory import InMemoryDocumentStore
from store.models import (
    Group,
    MessageRecord,
    Membership,
    Wager,
    WagerStatus,
    Participation,
    ReminderRecord,
    User,
    StoreEvent,
    StoreEventKind,
    REMIND_SETTLE,
)

__all__ = [
    'DocumentStore',
    'InMemoryDocumentStore',
    'Group',
    'MessageRecord',
    'Membership',
    'Wager',
    'WagerStatus',
    'Participation',
    'ReminderRecord',
    'User',
    'StoreEvent',
    'StoreEventKind',
    'REMIND_SETTLE',
]
