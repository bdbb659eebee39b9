import json
import os
import tempfile
import unittest
from unittest.mock import patch

from core.app_context import AppContext
from core.config_loader import AppConfig
from notification.channels import FcmChannel, LogOnlyChannel
from notification.tracker import NullEventLedger, RedisEventLedger
from store.memory import InMemoryDocumentStore


class TestAppContextBuild(unittest.TestCase):

    def test_memory_store_with_log_channel(self):
        config = AppConfig(store={'backend': 'memory'}, notifications={'channel': 'log', 'fallback_title': 'Bets'})

        context = AppContext.build(config)

        self.assertIsInstance(context.store, InMemoryDocumentStore)
        self.assertIsInstance(context.channel, LogOnlyChannel)
        self.assertIsInstance(context.ledger, NullEventLedger)
        self.assertEqual(context.notification_service.builder.fallback_title, 'Bets')

    def test_memory_store_loads_fixture(self):
        fixture = {'users': {'u1': {'device_token': 'tok-1'}}, 'groups': {'G': {'name': 'Poker Night'}}}
        with tempfile.NamedTemporaryFile('w', suffix='.json', delete=False) as f:
            json.dump(fixture, f)
        self.addCleanup(os.remove, f.name)

        config = AppConfig(store={'backend': 'memory', 'fixture_file': f.name}, notifications={'dry_run': True})
        context = AppContext.build(config)

        self.assertEqual(context.store.users['u1']['device_token'], 'tok-1')
        self.assertIn('G', context.store.groups)

    def test_dry_run_forces_log_channel(self):
        config = AppConfig(store={'backend': 'memory'}, notifications={'channel': 'fcm', 'dry_run': True})
        self.assertIsInstance(AppContext.build(config).channel, LogOnlyChannel)

    @patch('core.firebase.get_firebase_app')
    def test_fcm_channel_uses_firebase_app(self, mock_get_app):
        config = AppConfig(store={'backend': 'memory'}, notifications={'batch_size': 100})

        channel = AppContext.build(config).channel

        self.assertIsInstance(channel, FcmChannel)
        self.assertIs(channel.app, mock_get_app.return_value)
        self.assertEqual(channel.batch_size, 100)

    def test_deduplication_builds_redis_ledger(self):
        config = AppConfig(
            store={'backend': 'memory'},
            notifications={'channel': 'log', 'deduplication_enabled': True,
                           'redis_url': 'redis://cache:6379/4', 'dedup_ttl_hours': 6}
        )

        ledger = AppContext.build(config).ledger

        self.assertIsInstance(ledger, RedisEventLedger)
        self.assertEqual(ledger.redis_url, 'redis://cache:6379/4')
        self.assertEqual(ledger.ttl_seconds, 6 * 3600)

    def test_disabled_notifications_have_no_service(self):
        config = AppConfig(store={'backend': 'memory'}, notifications={'enabled': False, 'channel': 'log'})
        self.assertIsNone(AppContext.build(config).notification_service)

    @patch('firebase_admin.firestore.client')
    @patch('core.firebase.get_firebase_app')
    def test_firestore_store(self, mock_get_app, mock_client):
        from store.firestore import FirestoreDocumentStore

        config = AppConfig(notifications={'channel': 'log'}, store={'collections': {'users': 'profiles'}})

        store = AppContext.build(config).store

        self.assertIsInstance(store, FirestoreDocumentStore)
        mock_client.assert_called_once_with(mock_get_app.return_value)
        self.assertEqual(store.collections.users, 'profiles')


if __name__ == '__main__':
    unittest.main()
