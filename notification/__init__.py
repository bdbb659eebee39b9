"""
Notification Module

Push notification fan-out for group chat messages, wagers and settlement
reminders, delivered through pluggable push channels.

Usage:
    from notification import NotificationService, PushChannelFactory

    # Wire a service
    channel = PushChannelFactory.get_channel('fcm')
    service = NotificationService(store, channel)

    # Handle a store trigger
    results = await service.handle_event(store_event)
"""

from notification.channels import (
    PushChannel,
    FcmChannel,
    LogOnlyChannel,
    PushChannelFactory,
    SendResult,
    BatchSendResult,
)

from notification.tracker import (
    EventLedger,
    NullEventLedger,
    RedisEventLedger,
)

from notification.message_builder import (
    NotificationMessageBuilder,
    PushPayload,
)

from notification.service import (
    NotificationService,
    PipelineResult,
    PipelineStatus,
)

__all__ = [
    # Channels
    'PushChannel',
    'FcmChannel',
    'LogOnlyChannel',
    'PushChannelFactory',
    'SendResult',
    'BatchSendResult',
    # Tracker
    'EventLedger',
    'NullEventLedger',
    'RedisEventLedger',
    # Payloads
    'NotificationMessageBuilder',
    'PushPayload',
    # Service
    'NotificationService',
    'PipelineResult',
    'PipelineStatus',
]
