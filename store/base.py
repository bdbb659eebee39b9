"""
Document Store Interface - read port used by the notification pipelines.

Implementations: FirestoreDocumentStore (production), InMemoryDocumentStore
(tests and local replay).
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from store.models import Group, Membership, Participation, User


class DocumentStore(ABC):
    """
    Read-only view of the shared document store.

    Lookups by id return None when the document does not exist. Errors from
    the backing store propagate; callers decide whether they are fatal.
    """

    @abstractmethod
    async def get_group(self, group_id: str) -> Optional[Group]:
        pass

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    async def list_active_memberships(self, group_id: str) -> List[Membership]:
        """Memberships of the group with is_active set."""
        pass

    @abstractmethod
    async def list_participations(self, wager_id: str) -> List[Participation]:
        """All participation records placed on the wager."""
        pass
