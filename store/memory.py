"""In-memory DocumentStore used by the unit tests and the replay entry point."""

import logging
from typing import Any, Dict, List, Optional

from store.base import DocumentStore
from store.models import Group, Membership, Participation, User, validate_each

logger = logging.getLogger(__name__)


class InMemoryDocumentStore(DocumentStore):
    """
    Dict-backed store.

    Documents are kept raw and validated on read, the same way documents
    coming out of Firestore are.
    """

    def __init__(self):
        self.groups: Dict[str, Dict[str, Any]] = {}
        self.users: Dict[str, Dict[str, Any]] = {}
        self.memberships: List[Dict[str, Any]] = []
        self.participations: List[Dict[str, Any]] = []

    def add_group(self, group_id: str, **fields) -> None:
        self.groups[group_id] = {'id': group_id, **fields}

    def add_user(self, user_id: str, device_token: Optional[str] = None, **fields) -> None:
        self.users[user_id] = {'id': user_id, 'device_token': device_token, **fields}

    def add_membership(self, group_id: str, user_id: str, is_active: bool = True) -> None:
        self.memberships.append({
            'group_id': group_id,
            'user_id': user_id,
            'is_active': is_active,
        })

    def add_participation(self, wager_id: str, user_id: str, **fields) -> None:
        self.participations.append({'wager_id': wager_id, 'user_id': user_id, **fields})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InMemoryDocumentStore":
        """Build a store from a fixture dict with groups/users/memberships/participations."""
        store = cls()
        for group_id, fields in (data.get('groups') or {}).items():
            store.add_group(group_id, **fields)
        for user_id, fields in (data.get('users') or {}).items():
            store.add_user(user_id, **fields)
        store.memberships.extend(data.get('memberships') or [])
        store.participations.extend(data.get('participations') or [])
        logger.debug(f"Loaded in-memory store: {len(store.groups)} groups, {len(store.users)} users")
        return store

    async def get_group(self, group_id: str) -> Optional[Group]:
        data = self.groups.get(group_id)
        return Group.model_validate(data) if data is not None else None

    async def get_user(self, user_id: str) -> Optional[User]:
        data = self.users.get(user_id)
        return User.model_validate(data) if data is not None else None

    async def list_active_memberships(self, group_id: str) -> List[Membership]:
        memberships = validate_each(Membership, self.memberships, "membership")
        return [m for m in memberships if m.group_id == group_id and m.is_active]

    async def list_participations(self, wager_id: str) -> List[Participation]:
        participations = validate_each(Participation, self.participations, "participation")
        return [p for p in participations if p.wager_id == wager_id]
