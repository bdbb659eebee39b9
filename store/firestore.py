"""
Firestore-backed DocumentStore.

The firebase-admin Firestore client is synchronous; each read runs in a
worker thread so concurrent token lookups do not block the event loop.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from google.cloud.firestore_v1.base_query import FieldFilter

from core.config_loader import CollectionsConfig
from store.base import DocumentStore
from store.models import Group, Membership, Participation, User, validate_each

logger = logging.getLogger(__name__)


class FirestoreDocumentStore(DocumentStore):

    def __init__(self, client, collections: Optional[CollectionsConfig] = None):
        """
        Args:
            client: google.cloud.firestore.Client (e.g. firebase_admin.firestore.client())
            collections: Collection names; defaults from CollectionsConfig
        """
        self.client = client
        self.collections = collections or CollectionsConfig()

    def _get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        snapshot = self.client.collection(collection).document(doc_id).get()
        if not snapshot.exists:
            return None
        data = snapshot.to_dict() or {}
        data.setdefault('id', snapshot.id)
        return data

    def _query(self, collection: str, field: str, value: str) -> List[Dict[str, Any]]:
        query = self.client.collection(collection).where(filter=FieldFilter(field, '==', value))
        return [snapshot.to_dict() or {} for snapshot in query.stream()]

    async def get_group(self, group_id: str) -> Optional[Group]:
        data = await asyncio.to_thread(self._get_document, self.collections.groups, group_id)
        return Group.model_validate(data) if data is not None else None

    async def get_user(self, user_id: str) -> Optional[User]:
        data = await asyncio.to_thread(self._get_document, self.collections.users, user_id)
        return User.model_validate(data) if data is not None else None

    async def list_active_memberships(self, group_id: str) -> List[Membership]:
        # is_active is stored as either a bool or 1/0, so filter after validation
        docs = await asyncio.to_thread(self._query, self.collections.memberships,
                                       self.collections.membership_group_field, group_id)
        memberships = validate_each(Membership, docs, "membership")
        active = [m for m in memberships if m.is_active]
        logger.debug(f"Group {group_id}: {len(active)}/{len(memberships)} active memberships")
        return active

    async def list_participations(self, wager_id: str) -> List[Participation]:
        docs = await asyncio.to_thread(self._query, self.collections.participations,
                                       self.collections.participation_wager_field, wager_id)
        return validate_each(Participation, docs, "participation")
