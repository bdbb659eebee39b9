#!/usr/bin/env python3
"""
Notification Tracker - redelivery deduplication.

Store triggers are delivered at least once, so the same mutation can reach
the pipelines twice. A ledger decides whether an event key is seen for the
first time:

- NullEventLedger: admits everything (duplicates possible, the default)
- RedisEventLedger: claims a hashed event key with SET NX EX; a repeat
  within the TTL is suppressed

Usage:
    from notification.tracker import RedisEventLedger

    ledger = RedisEventLedger('redis://localhost:6379/0', ttl_hours=24)
    if await ledger.claim("chat_message:group1:msg9"):
        ...  # first delivery, notify
"""

import asyncio
import hashlib
import logging
from abc import ABC, abstractmethod
from typing import Optional

from redis import Redis

logger = logging.getLogger(__name__)


def generate_dedup_hash(event_key: str) -> str:
    """
    Generate deduplication hash for an event key.

    The key identifies the notify-worthy change, e.g. group id + message id.
    """
    return hashlib.sha256(event_key.encode('utf-8')).hexdigest()[:32]


class EventLedger(ABC):
    """Decides whether an event has already been notified."""

    @abstractmethod
    async def claim(self, event_key: str) -> bool:
        """
        Claim an event key.

        Returns:
            True if the event should be notified, False if it is a repeat
        """
        pass


class NullEventLedger(EventLedger):
    """No deduplication: every event is treated as new."""

    async def claim(self, event_key: str) -> bool:
        return True


class RedisEventLedger(EventLedger):
    """
    Redis-backed ledger shared by every worker.

    A key is claimed before recipients are resolved, so a crash after the
    claim drops that notification instead of sending it twice. If Redis is
    unreachable the event is admitted.
    """

    KEY_PREFIX = "notification:event:"

    def __init__(
        self,
        redis_url: str = 'redis://localhost:6379/0',
        ttl_hours: int = 24,
        redis: Optional[Redis] = None
    ):
        self.redis_url = redis_url
        self.ttl_seconds = ttl_hours * 3600
        self._redis = redis

    def _get_redis(self) -> Redis:
        """Get Redis connection (lazy init)."""
        if self._redis is None:
            self._redis = Redis.from_url(self.redis_url)
        return self._redis

    def _claim_sync(self, key: str) -> bool:
        return bool(self._get_redis().set(key, "1", nx=True, ex=self.ttl_seconds))

    async def claim(self, event_key: str) -> bool:
        key = f"{self.KEY_PREFIX}{generate_dedup_hash(event_key)}"
        try:
            claimed = await asyncio.to_thread(self._claim_sync, key)
        except Exception as e:
            logger.warning(f"Dedup ledger unavailable, admitting {event_key}: {e}")
            return True

        if not claimed:
            logger.info(f"Suppressing duplicate notification for {event_key}")
        return claimed
