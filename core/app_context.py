import json
import logging
from dataclasses import dataclass
from typing import Optional

from core.config_loader import AppConfig, NotificationConfig
from notification.channels import PushChannel, PushChannelFactory
from notification.service import NotificationService
from notification.tracker import EventLedger, NullEventLedger, RedisEventLedger
from store.base import DocumentStore
from store.memory import InMemoryDocumentStore

logger = logging.getLogger(__name__)

DEFAULT_REDIS_URL = 'redis://localhost:6379/0'


@dataclass
class AppContext:
    """Application context container that holds all wired dependencies.

    Entry points (replay CLI, RQ worker) build one context from config and
    hand trigger events to notification_service.
    """
    config: AppConfig
    store: DocumentStore
    channel: PushChannel
    ledger: EventLedger
    notification_service: Optional[NotificationService] = None

    @classmethod
    def build(cls, config: AppConfig) -> "AppContext":
        """Build an AppContext from config.

        Args:
            config: Loaded application configuration

        Returns:
            Fully wired AppContext instance; notification_service is None
            when notifications are disabled
        """
        notification_config = config.notifications

        store = cls._build_store(config)
        channel = cls._build_channel(config)
        ledger = cls._build_ledger(notification_config)

        # Notification Service (only if enabled)
        notification_service = None
        if notification_config.enabled:
            notification_service = NotificationService(
                store=store,
                channel=channel,
                ledger=ledger,
                fallback_title=notification_config.fallback_title,
                lookup_timeout=notification_config.lookup_timeout_seconds
            )
        else:
            logger.info("Notifications disabled via config")

        return cls(
            config=config,
            store=store,
            channel=channel,
            ledger=ledger,
            notification_service=notification_service
        )

    @staticmethod
    def _build_store(config: AppConfig) -> DocumentStore:
        """Build the document store backend named in config."""
        store_config = config.store

        if store_config.backend == "memory":
            if not store_config.fixture_file:
                return InMemoryDocumentStore()
            with open(store_config.fixture_file, "r") as f:
                return InMemoryDocumentStore.from_dict(json.load(f))

        from firebase_admin import firestore

        from core.firebase import get_firebase_app
        from store.firestore import FirestoreDocumentStore

        app = get_firebase_app(config.firebase)
        return FirestoreDocumentStore(firestore.client(app), store_config.collections)

    @staticmethod
    def _build_channel(config: AppConfig) -> PushChannel:
        """Build the push channel; dry_run forces the log-only channel."""
        notification_config = config.notifications

        if notification_config.dry_run or notification_config.channel == 'log':
            return PushChannelFactory.get_channel('log')

        if notification_config.channel == 'fcm':
            from core.firebase import get_firebase_app
            return PushChannelFactory.get_channel(
                'fcm',
                app=get_firebase_app(config.firebase),
                batch_size=notification_config.batch_size
            )

        return PushChannelFactory.get_channel(notification_config.channel)

    @staticmethod
    def _build_ledger(notification_config: NotificationConfig) -> EventLedger:
        """Build the redelivery ledger; no deduplication unless enabled."""
        if not notification_config.deduplication_enabled:
            return NullEventLedger()

        return RedisEventLedger(
            redis_url=notification_config.redis_url or DEFAULT_REDIS_URL,
            ttl_hours=notification_config.dedup_ttl_hours
        )
