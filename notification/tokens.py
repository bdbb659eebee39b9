"""
Token Resolver - concurrent device token lookups for a recipient set.

Lookups fan out under one asyncio.TaskGroup and are awaited together. Each
lookup resolves to a TokenLookup whose token is None when the user cannot be
reached: no user document, no token, a store error or a timeout. Dropping
the unreachable users is a separate step (reachable()).
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from store.base import DocumentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenLookup:
    user_id: str
    token: Optional[str]


def mask_token(token: str) -> str:
    """Mask a device token for safe logging."""
    return f"...{token[-6:]}" if len(token) > 6 else "***"


def reachable(lookups: Iterable[TokenLookup]) -> List[TokenLookup]:
    """Keep only lookups that produced a token."""
    return [lookup for lookup in lookups if lookup.token]


class TokenResolver:

    def __init__(self, store: DocumentStore, timeout: Optional[float] = None):
        """
        Args:
            store: Document store to read user records from
            timeout: Seconds allowed per lookup; None waits for the store
        """
        self.store = store
        self.timeout = timeout

    async def lookup(self, user_id: str) -> TokenLookup:
        """Fetch one user's device token; never raises except on cancellation."""
        try:
            user = await asyncio.wait_for(self.store.get_user(user_id), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timed out fetching user {user_id}")
            return TokenLookup(user_id, None)
        except Exception as e:
            logger.warning(f"Error fetching user {user_id}: {e}")
            return TokenLookup(user_id, None)

        token = (user.device_token or "").strip() if user else ""
        if not token:
            logger.info(f"No device token for {user_id}")
            return TokenLookup(user_id, None)

        logger.debug(f"Found device token for {user_id}")
        return TokenLookup(user_id, token)

    async def resolve(self, user_ids: Iterable[str]) -> List[TokenLookup]:
        """Look up every user concurrently; results keep the order of user_ids."""
        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(self.lookup(user_id)) for user_id in user_ids]
        return [task.result() for task in tasks]
