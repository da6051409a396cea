"""Feeds webhook messages to the engine and delivers the replies.

Messages from different users run concurrently; the engine serialises
messages from the same user. Each reply is delivered through the event's
one-shot reply token while it is still fresh, and pushed otherwise.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from mailbot.core.config import settings
from mailbot.core.exceptions import TransportError
from mailbot.gateway.types import IncomingMessage, MessageType, OutgoingMessage

if TYPE_CHECKING:
    from mailbot.conversation.engine import ConversationEngine
    from mailbot.gateway.base import MessageGateway

logger = logging.getLogger(__name__)


class TransportAdapter:
    def __init__(
        self,
        engine: ConversationEngine,
        gateway: MessageGateway,
        reply_window_s: float | None = None,
    ) -> None:
        self.engine = engine
        self.gateway = gateway
        self.reply_window_s = (
            settings.line_reply_window_s if reply_window_s is None else reply_window_s
        )

    async def dispatch(self, messages: list[IncomingMessage]) -> None:
        """Handle a webhook batch. Non-text messages get no reply."""
        texts = [m for m in messages if m.type == MessageType.text and m.text is not None]
        if len(texts) < len(messages):
            logger.debug("Ignoring %d non-text events", len(messages) - len(texts))
        await asyncio.gather(*(self._handle_one(m) for m in texts))

    async def _handle_one(self, incoming: IncomingMessage) -> None:
        received = time.monotonic()
        reply = await self.engine.handle(incoming.user_id, incoming.text or "")
        await self._deliver(incoming, reply, received)

    def _reply_token_fresh(self, incoming: IncomingMessage, received: float) -> bool:
        if not incoming.reply_to:
            return False
        if incoming.timestamp is not None:
            age = time.time() - incoming.timestamp
        else:
            age = time.monotonic() - received
        return age < self.reply_window_s

    async def _deliver(self, incoming: IncomingMessage, text: str, received: float) -> None:
        if self._reply_token_fresh(incoming, received):
            try:
                await self.gateway.send(
                    OutgoingMessage(
                        text=text,
                        chat_id=incoming.chat_id,
                        reply_to=incoming.reply_to,
                        channel=incoming.channel,
                    )
                )
                return
            except TransportError as e:
                logger.warning("Reply to %s failed, pushing instead: %s", incoming.user_id, e)

        try:
            await self.gateway.send(
                OutgoingMessage(text=text, chat_id=incoming.chat_id, channel=incoming.channel)
            )
        except TransportError as e:
            logger.error("Push to %s failed, reply lost: %s", incoming.chat_id, e)
