#!/usr/bin/env python3
"""
Push Channels - delivery transport behind a common interface.

- PushChannel: abstract transport (single send and multi-token batch send)
- FcmChannel: Firebase Cloud Messaging via firebase-admin
- LogOnlyChannel: dry-run transport that only logs
- PushChannelFactory: registry keyed by channel type

Usage:
    from notification.channels import PushChannelFactory

    channel = PushChannelFactory.get_channel('fcm')
    result = await channel.send_batch(tokens, payload)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional
import asyncio
import logging
import os

from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

from core.config_loader import FCM_MAX_MULTICAST_TOKENS
from notification.message_builder import PushPayload
from notification.tokens import mask_token

logger = logging.getLogger(__name__)


def _is_dry_run_mode() -> bool:
    """Check if push channels should run in dry-run (log-only) mode."""
    return os.environ.get('NOTIFICATION_DRY_RUN', '').lower() in ('true', '1', 'yes')


@dataclass
class SendResult:
    """Outcome of delivering to one device token."""
    token: str
    success: bool
    error_code: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class BatchSendResult:
    """Per-token outcomes of one logical delivery, in token order."""
    responses: List[SendResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.responses if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.responses if not r.success)

    @property
    def failures(self) -> List[SendResult]:
        return [r for r in self.responses if not r.success]

    @classmethod
    def all_failed(cls, tokens: List[str], error_code: str, error_message: str) -> "BatchSendResult":
        return cls([SendResult(t, False, error_code, error_message) for t in tokens])


class PushChannel(ABC):
    """
    Abstract base class for push transports.

    Provider-reported delivery failures come back as unsuccessful
    SendResults. Anything else (transport down, bad credentials) may raise;
    the Dispatcher accounts for it.
    """

    @property
    @abstractmethod
    def channel_type(self) -> str:
        """Return the channel type identifier."""
        pass

    @abstractmethod
    async def send(self, token: str, payload: PushPayload) -> SendResult:
        """Deliver an individual payload to a single device token."""
        pass

    @abstractmethod
    async def send_batch(self, tokens: List[str], payload: PushPayload) -> BatchSendResult:
        """Deliver one shared payload to many device tokens."""
        pass


class FcmChannel(PushChannel):
    """Firebase Cloud Messaging channel."""

    def __init__(self, app=None, batch_size: int = FCM_MAX_MULTICAST_TOKENS):
        """
        Args:
            app: firebase_admin.App to send through (None = default app)
            batch_size: Max tokens per multicast request (FCM limit is 500)
        """
        self.app = app
        self.batch_size = min(batch_size, FCM_MAX_MULTICAST_TOKENS)

    @property
    def channel_type(self) -> str:
        return 'fcm'

    @staticmethod
    def _notification(payload: PushPayload) -> Dict:
        return {
            'notification': messaging.Notification(title=payload.title, body=payload.body),
            'data': payload.data,
            'android': messaging.AndroidConfig(priority='high'),
            'apns': messaging.APNSConfig(
                payload=messaging.APNSPayload(aps=messaging.Aps(sound='default'))
            ),
        }

    @staticmethod
    def _failure(token: str, error: Optional[Exception]) -> SendResult:
        code = getattr(error, 'code', None) or 'unknown'
        return SendResult(token, False, str(code), str(error) if error else 'unknown FCM error')

    async def send(self, token: str, payload: PushPayload) -> SendResult:
        message = messaging.Message(token=token, **self._notification(payload))
        try:
            await asyncio.to_thread(messaging.send, message, app=self.app)
        except firebase_exceptions.FirebaseError as e:
            return self._failure(token, e)
        return SendResult(token, True)

    async def send_batch(self, tokens: List[str], payload: PushPayload) -> BatchSendResult:
        result = BatchSendResult()
        for start in range(0, len(tokens), self.batch_size):
            chunk = tokens[start:start + self.batch_size]
            multicast = messaging.MulticastMessage(tokens=chunk, **self._notification(payload))
            response = await asyncio.to_thread(messaging.send_each_for_multicast, multicast, app=self.app)

            for token, send_response in zip(chunk, response.responses):
                if send_response.success:
                    result.responses.append(SendResult(token, True))
                else:
                    result.responses.append(self._failure(token, send_response.exception))

            logger.debug(
                f"FCM multicast chunk of {len(chunk)}: "
                f"{response.success_count} sent, {response.failure_count} failed"
            )
        return result


class LogOnlyChannel(PushChannel):
    """Dry-run channel: logs the payload and reports every token as delivered."""

    @property
    def channel_type(self) -> str:
        return 'log'

    async def send(self, token: str, payload: PushPayload) -> SendResult:
        logger.info(f"[DRY_RUN] To {mask_token(token)} | {payload.title}: {payload.body} | data={payload.data}")
        return SendResult(token, True)

    async def send_batch(self, tokens: List[str], payload: PushPayload) -> BatchSendResult:
        logger.info(f"[DRY_RUN] To {len(tokens)} tokens | {payload.title}: {payload.body} | data={payload.data}")
        return BatchSendResult([SendResult(t, True) for t in tokens])


class PushChannelFactory:
    """
    Factory for creating push channels.

    New transports are added with register_channel() without touching the
    pipelines.
    """

    # Registry of available channels
    _channels: Dict[str, type] = {
        'fcm': FcmChannel,
        'log': LogOnlyChannel,
    }

    @classmethod
    def get_channel(cls, channel_type: str, **kwargs) -> PushChannel:
        """
        Get a push channel instance by type.

        Args:
            channel_type: Type of channel (fcm, log, or a registered type)
            **kwargs: Constructor arguments for the channel class

        Returns:
            PushChannel instance (LogOnlyChannel when NOTIFICATION_DRY_RUN is set)

        Raises:
            ValueError: If channel type is not registered
        """
        if _is_dry_run_mode():
            logger.info("NOTIFICATION_DRY_RUN set - using log-only channel")
            return LogOnlyChannel()

        channel_class = cls._channels.get(channel_type.lower())
        if not channel_class:
            raise ValueError(f"Unknown channel type: {channel_type}. "
                             f"Available: {', '.join(cls._channels.keys())}")

        return channel_class(**kwargs)

    @classmethod
    def register_channel(cls, channel_type: str, channel_class: type):
        """
        Register a new push channel.

        Args:
            channel_type: Type identifier for the channel
            channel_class: Class implementing PushChannel
        """
        if not issubclass(channel_class, PushChannel):
            raise ValueError("Channel class must extend PushChannel")

        cls._channels[channel_type.lower()] = channel_class
        logger.info(f"Registered new channel type: {channel_type}")

    @classmethod
    def list_channels(cls) -> list:
        """List all available channel types."""
        return list(cls._channels.keys())
