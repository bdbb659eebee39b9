#!/usr/bin/env python3
"""
End-to-end tests for the notification pipelines.

Tests cover:
1. Chat fan-out (batch mode, sender excluded)
2. New wager fan-out to the group's member list
3. Settled / voided outcomes (single mode, per-participant bodies)
4. Settlement reminders
5. Missing tokens, duplicates and failures never escaping the handler
6. Store event routing

Usage:
    python -m pytest tests/unit/notification/test_service.py -v
"""

import unittest
from unittest.mock import AsyncMock, patch

from notification.service import NotificationService, PipelineStatus
from notification.tracker import EventLedger
from store.memory import InMemoryDocumentStore
from store.models import StoreEvent, StoreEventKind
from tests.mocks.push_mocks import RaisingChannel, RecordingChannel, build_group_store, chat_message


class OnceLedger(EventLedger):
    """Ledger that admits each key once."""

    def __init__(self):
        self.seen = set()

    async def claim(self, event_key: str) -> bool:
        if event_key in self.seen:
            return False
        self.seen.add(event_key)
        return True


def _chat_snapshots(new_sender='a', text='See you at 8', sender_name='Alice'):
    before = {'name': 'Poker Night', 'chat_log': {'m1': chat_message('b', 'hello')}}
    after = {
        'name': 'Poker Night',
        'chat_log': {
            'm1': chat_message('b', 'hello'),
            'm2': chat_message(new_sender, text, sender_name=sender_name),
        },
    }
    return before, after


class TestChatPipeline(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.store = build_group_store(members=('a', 'b', 'c'))
        self.channel = RecordingChannel()
        self.service = NotificationService(self.store, self.channel)

    async def test_new_message_notifies_other_members(self):
        """Active members a, b, c; a sends: one batch call to b and c."""
        before, after = _chat_snapshots()

        result = await self.service.on_group_updated('G', before, after)

        self.assertEqual(result.status, PipelineStatus.DISPATCHED)
        self.assertEqual(result.recipients, ['b', 'c'])
        self.assertEqual(result.success_count, 2)
        self.assertEqual(len(self.channel.batch_calls), 1)
        tokens, payload = self.channel.batch_calls[0]
        self.assertEqual(sorted(tokens), ['token-b', 'token-c'])
        self.assertEqual(payload.title, 'Poker Night')
        self.assertEqual(payload.body, 'Alice: See you at 8')
        self.assertEqual(payload.data['message_id'], 'm2')
        self.assertEqual(self.channel.single_calls, [])

    async def test_earlier_message_with_null_text_still_notifies(self):
        old = {'sender_id': 'b', 'text': None}
        before = {'name': 'Poker Night', 'chat_log': {'m1': old}}
        after = {'name': 'Poker Night', 'chat_log': {'m1': old, 'm2': chat_message('a', 'anyone?')}}

        result = await self.service.on_group_updated('G', before, after)

        self.assertEqual(result.status, PipelineStatus.DISPATCHED)
        self.assertEqual(set(self.channel.batch_calls[0][0]), {'token-b', 'token-c'})

    async def test_recipient_without_token_is_skipped(self):
        store = build_group_store(members=('a', 'b', 'c'), tokens={'c': None})
        channel = RecordingChannel()
        before, after = _chat_snapshots()

        result = await NotificationService(store, channel).on_group_updated('G', before, after)

        self.assertEqual(result.status, PipelineStatus.DISPATCHED)
        self.assertEqual(channel.batch_calls[0][0], ['token-b'])

    async def test_no_tokens_halts_before_dispatch(self):
        store = build_group_store(members=('a', 'b'), tokens={'b': ''})
        channel = RecordingChannel()
        before, after = _chat_snapshots()

        result = await NotificationService(store, channel).on_group_updated('G', before, after)

        self.assertEqual(result.status, PipelineStatus.NO_TOKENS)
        self.assertEqual(channel.batch_calls, [])

    async def test_sender_alone_has_no_recipients(self):
        store = build_group_store(members=('a',))
        before, after = _chat_snapshots()

        result = await NotificationService(store, self.channel).on_group_updated('G', before, after)

        self.assertEqual(result.status, PipelineStatus.NO_RECIPIENTS)
        self.assertEqual(self.channel.batch_calls, [])

    async def test_no_new_message_is_skipped(self):
        before, _ = _chat_snapshots()

        result = await self.service.on_group_updated('G', before, dict(before, name='Renamed'))

        self.assertEqual(result.status, PipelineStatus.SKIPPED)
        self.assertEqual(self.channel.batch_calls, [])

    async def test_partial_delivery_failure_is_counted(self):
        channel = RecordingChannel(failing_tokens={'token-c'})
        before, after = _chat_snapshots()

        result = await NotificationService(self.store, channel).on_group_updated('G', before, after)

        self.assertEqual(result.status, PipelineStatus.DISPATCHED)
        self.assertEqual(result.success_count, 1)
        self.assertEqual(result.failure_count, 1)

    async def test_channel_error_does_not_escape(self):
        before, after = _chat_snapshots()

        result = await NotificationService(self.store, RaisingChannel()).on_group_updated('G', before, after)

        self.assertEqual(result.status, PipelineStatus.DISPATCHED)
        self.assertEqual(result.failure_count, 2)

    async def test_store_error_reports_failed(self):
        before, after = _chat_snapshots()
        self.store.list_active_memberships = AsyncMock(side_effect=RuntimeError('store down'))

        with self.assertLogs('notification.service', level='ERROR'):
            result = await self.service.on_group_updated('G', before, after)

        self.assertEqual(result.status, PipelineStatus.FAILED)
        self.assertEqual(self.channel.batch_calls, [])

    async def test_redelivery_is_suppressed_by_ledger(self):
        before, after = _chat_snapshots()
        service = NotificationService(self.store, self.channel, ledger=OnceLedger())

        first = await service.on_group_updated('G', before, after)
        second = await service.on_group_updated('G', before, after)

        self.assertEqual(first.status, PipelineStatus.DISPATCHED)
        self.assertEqual(second.status, PipelineStatus.DUPLICATE)
        self.assertEqual(len(self.channel.batch_calls), 1)

    async def test_redelivery_without_ledger_notifies_twice(self):
        before, after = _chat_snapshots()

        await self.service.on_group_updated('G', before, after)
        await self.service.on_group_updated('G', before, after)

        self.assertEqual(len(self.channel.batch_calls), 2)


class TestNewWagerPipeline(unittest.IsolatedAsyncioTestCase):

    async def test_notifies_group_member_list(self):
        store = build_group_store(members=('a', 'b'))
        store.add_user('x', device_token='token-x')
        store.add_group('G', name='Poker Night', members=['a', 'b', 'x'])
        channel = RecordingChannel()

        result = await NotificationService(store, channel).on_wager_created('G', 'W', {'title': 'Who wins?'})

        self.assertEqual(result.status, PipelineStatus.DISPATCHED)
        self.assertEqual(result.recipients, ['a', 'b', 'x'])
        tokens, payload = channel.batch_calls[0]
        self.assertEqual(sorted(tokens), ['token-a', 'token-b', 'token-x'])
        self.assertEqual(payload.title, 'Poker Night')
        self.assertEqual(payload.body, 'New bet: Who wins?')
        self.assertEqual(payload.data, {'type': 'new_wager', 'group_id': 'G', 'wager_id': 'W'})

    async def test_missing_group_has_no_recipients(self):
        channel = RecordingChannel()

        result = await NotificationService(InMemoryDocumentStore(), channel).on_wager_created(
            'G', 'W', {'title': 'Who wins?'}
        )

        self.assertEqual(result.status, PipelineStatus.NO_RECIPIENTS)
        self.assertEqual(channel.batch_calls, [])

    async def test_missing_document_is_skipped(self):
        result = await NotificationService(build_group_store(), RecordingChannel()).on_wager_created('G', 'W', None)
        self.assertEqual(result.status, PipelineStatus.SKIPPED)


class TestWagerOutcomePipelines(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.store = InMemoryDocumentStore()
        self.store.add_user('p1', device_token='token-p1')
        self.store.add_user('p2', device_token='token-p2')
        self.store.add_user('p3', device_token=None)
        self.store.add_participation('W', 'p1', chosen_option='yes', stake_amount=100, final_payout=250)
        self.store.add_participation('W', 'p2', chosen_option='no', stake_amount=100)
        self.store.add_participation('W', 'p3', chosen_option='yes', stake_amount=40)
        self.channel = RecordingChannel()
        self.service = NotificationService(self.store, self.channel)
        self.before = {'title': 'Rain?', 'group_name': 'Weather', 'status': 'open'}

    async def test_settlement_sends_individual_bodies(self):
        after = dict(self.before, status='settled', winner_option='yes')

        result = await self.service.on_wager_settled('W', self.before, after)

        self.assertEqual(result.status, PipelineStatus.DISPATCHED)
        self.assertEqual(result.success_count, 2)
        self.assertEqual(self.channel.batch_calls, [])
        sent = {token: payload for token, payload in self.channel.single_calls}
        self.assertEqual(set(sent), {'token-p1', 'token-p2'})
        self.assertEqual(sent['token-p1'].body, "You won 250 on 'Rain?'")
        self.assertEqual(sent['token-p1'].data['is_winner'], 'true')
        self.assertEqual(sent['token-p2'].body, "Your bet on 'Rain?' has been settled")
        self.assertEqual(sent['token-p2'].data['is_winner'], 'false')
        self.assertEqual(sent['token-p1'].title, 'Weather')

    async def test_void_refunds_each_participant(self):
        after = dict(self.before, status='voided')

        result = await self.service.on_wager_voided('W', self.before, after)

        self.assertEqual(result.status, PipelineStatus.DISPATCHED)
        bodies = [payload.body for _, payload in self.channel.single_calls]
        self.assertEqual(len(bodies), 2)
        self.assertTrue(all("You've been refunded 100 points." in body for body in bodies))

    async def test_null_stake_does_not_fail_settlement(self):
        store = InMemoryDocumentStore()
        store.add_user('a', device_token='token-a')
        store.add_user('b', device_token='token-b')
        store.add_participation('W', 'a', chosen_option='yes', stake_amount=100)
        store.add_participation('W', 'b', chosen_option='no', stake_amount=None)
        after = dict(self.before, status='settled', winner_option='yes')

        result = await NotificationService(store, self.channel).on_wager_settled('W', self.before, after)

        self.assertEqual(result.status, PipelineStatus.DISPATCHED)
        sent = {token: payload.body for token, payload in self.channel.single_calls}
        self.assertEqual(sent['token-a'], "You won 100 on 'Rain?'")
        self.assertEqual(sent['token-b'], "Your bet on 'Rain?' has been settled")

    async def test_corrupt_participation_is_skipped(self):
        self.store.add_participation('W', 'p4', chosen_option='no', stake_amount='lots')
        after = dict(self.before, status='voided')

        result = await self.service.on_wager_voided('W', self.before, after)

        self.assertEqual(result.status, PipelineStatus.DISPATCHED)
        self.assertEqual(result.success_count, 2)

    async def test_untitled_wager_uses_default_title(self):
        before = {'group_name': 'Weather', 'status': 'open'}

        await self.service.on_wager_voided('W', before, dict(before, status='voided'))

        bodies = [payload.body for _, payload in self.channel.single_calls]
        self.assertTrue(all(body.startswith("Your bet on 'New Bet' was voided") for body in bodies))

    async def test_wager_update_runs_both_rules(self):
        after = dict(self.before, status='settled', winner_option='yes')

        results = await self.service.on_wager_updated('W', self.before, after)

        self.assertEqual(
            [(r.event_type, r.status) for r in results],
            [('wager_settled', PipelineStatus.DISPATCHED), ('wager_voided', PipelineStatus.SKIPPED)]
        )

    async def test_already_settled_is_not_renotified(self):
        settled = dict(self.before, status='settled', winner_option='yes')

        results = await self.service.on_wager_updated('W', settled, dict(settled, title='Edited'))

        self.assertTrue(all(r.status == PipelineStatus.SKIPPED for r in results))
        self.assertEqual(self.channel.single_calls, [])

    async def test_no_participants(self):
        after = dict(self.before, status='voided')

        result = await self.service.on_wager_voided('OTHER', self.before, after)

        self.assertEqual(result.status, PipelineStatus.NO_RECIPIENTS)

    async def test_participants_without_tokens_halt(self):
        store = InMemoryDocumentStore()
        store.add_participation('W', 'p3', chosen_option='yes', stake_amount=40)
        after = dict(self.before, status='settled', winner_option='yes')

        result = await NotificationService(store, self.channel).on_wager_settled('W', self.before, after)

        self.assertEqual(result.status, PipelineStatus.NO_TOKENS)
        self.assertEqual(self.channel.single_calls, [])

    async def test_one_failed_send_does_not_stop_others(self):
        channel = RecordingChannel(failing_tokens={'token-p1'})
        after = dict(self.before, status='voided')

        result = await NotificationService(self.store, channel).on_wager_voided('W', self.before, after)

        self.assertEqual(len(channel.single_calls), 2)
        self.assertEqual(result.success_count, 1)
        self.assertEqual(result.failure_count, 1)


class TestReminderPipeline(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.store = InMemoryDocumentStore()
        self.store.add_user('u1', device_token='token-u1')
        self.channel = RecordingChannel()
        self.service = NotificationService(self.store, self.channel)

    async def test_reminder_sent_to_addressed_user(self):
        doc = {'type': 'remind_settle', 'user_id': 'u1', 'group_name': 'Weather', 'message': 'Settle Rain?'}

        result = await self.service.on_reminder_created('N1', doc)

        self.assertEqual(result.status, PipelineStatus.DISPATCHED)
        token, payload = self.channel.single_calls[0]
        self.assertEqual(token, 'token-u1')
        self.assertEqual(payload.title, 'Weather')
        self.assertEqual(payload.body, 'Settle Rain?')
        self.assertEqual(payload.data, {'type': 'remind_settle', 'notification_id': 'N1'})

    async def test_user_without_token_is_not_notified(self):
        doc = {'type': 'remind_settle', 'user_id': 'ghost', 'message': 'Settle'}

        result = await self.service.on_reminder_created('N1', doc)

        self.assertEqual(result.status, PipelineStatus.NO_TOKENS)
        self.assertEqual(self.channel.single_calls, [])

    async def test_other_notification_type_is_skipped(self):
        result = await self.service.on_reminder_created('N1', {'type': 'other', 'user_id': 'u1'})
        self.assertEqual(result.status, PipelineStatus.SKIPPED)


class TestHandleEvent(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.service = NotificationService(build_group_store(), RecordingChannel())

    async def test_routes_group_update_to_chat(self):
        before, after = _chat_snapshots()
        event = StoreEvent(kind=StoreEventKind.GROUP_UPDATED, params={'group_id': 'G'}, before=before, after=after)

        results = await self.service.handle_event(event)

        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].event_type, 'chat_message')
        self.assertEqual(results[0].status, PipelineStatus.DISPATCHED)

    async def test_routes_wager_update_to_both_outcome_rules(self):
        event = StoreEvent(
            kind='wager_updated',
            params={'wager_id': 'W'},
            before={'status': 'open'},
            after={'status': 'voided'},
        )

        with patch.object(self.service, 'on_wager_updated', AsyncMock(return_value=[])) as handler:
            await self.service.handle_event(event)

        handler.assert_awaited_once_with('W', {'status': 'open'}, {'status': 'voided'})

    async def test_routes_wager_created_and_reminder(self):
        created = StoreEvent(kind='wager_created', params={'group_id': 'G', 'wager_id': 'W'}, after={'title': 'x'})
        reminder = StoreEvent(kind='reminder_created', params={'notification_id': 'N1'},
                              after={'type': 'remind_settle', 'user_id': 'a', 'message': 'settle'})

        self.assertEqual((await self.service.handle_event(created))[0].event_type, 'new_wager')
        self.assertEqual((await self.service.handle_event(reminder))[0].event_type, 'remind_settle')

    async def test_missing_param_is_skipped(self):
        event = StoreEvent(kind='wager_created', params={'group_id': 'G'}, after={'title': 'x'})

        results = await self.service.handle_event(event)

        self.assertEqual(results[0].status, PipelineStatus.SKIPPED)


if __name__ == '__main__':
    unittest.main()
