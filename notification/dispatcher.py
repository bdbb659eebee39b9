"""
Dispatcher - hands payloads to a PushChannel and accounts for the outcome.

Two modes:
- send_batch: one shared payload to many tokens (chat, new wager)
- send_each: one individual payload per token (settled, voided, reminder)

Failures are logged with the provider's code and message. Nothing is
retried and nothing is re-raised.
"""

import logging
from typing import List, Tuple

from notification.channels import PushChannel, BatchSendResult, SendResult
from notification.message_builder import PushPayload
from notification.tokens import mask_token

logger = logging.getLogger(__name__)


class Dispatcher:

    def __init__(self, channel: PushChannel):
        self.channel = channel

    def _log_failures(self, result: BatchSendResult) -> None:
        for idx, response in enumerate(result.responses):
            if not response.success:
                logger.warning(
                    f"Token {idx} ({mask_token(response.token)}) failed: "
                    f"{response.error_code} - {response.error_message}"
                )

    async def send_batch(self, tokens: List[str], payload: PushPayload) -> BatchSendResult:
        """Send one payload to every token; partial failure is reported, not raised."""
        if not tokens:
            return BatchSendResult()

        logger.info(f"Sending '{payload.data.get('type')}' to {len(tokens)} tokens via {self.channel.channel_type}")
        try:
            result = await self.channel.send_batch(tokens, payload)
        except Exception as e:
            logger.error(f"Batch send via {self.channel.channel_type} failed: {e}", exc_info=True)
            return BatchSendResult.all_failed(tokens, 'send-failed', str(e))

        logger.info(f"Batch sent: {result.success_count} succeeded, {result.failure_count} failed")
        if result.failure_count:
            self._log_failures(result)
        return result

    async def send_each(self, deliveries: List[Tuple[str, PushPayload]]) -> BatchSendResult:
        """
        Send individual payloads one after another.

        Each delivery is independent: a failure is recorded and the loop
        moves on to the next recipient.
        """
        result = BatchSendResult()
        for token, payload in deliveries:
            try:
                response = await self.channel.send(token, payload)
            except Exception as e:
                logger.error(f"Send to {mask_token(token)} via {self.channel.channel_type} failed: {e}", exc_info=True)
                response = SendResult(token, False, 'send-failed', str(e))

            if response.success:
                logger.info(f"'{payload.data.get('type')}' notification sent to {mask_token(token)}")
            else:
                logger.warning(
                    f"'{payload.data.get('type')}' notification to {mask_token(token)} failed: "
                    f"{response.error_code} - {response.error_message}"
                )
            result.responses.append(response)
        return result
