"""LINE Messaging API gateway over httpx (no line-bot-sdk dependency)."""

import base64
import hashlib
import hmac
import logging
from typing import Any

import httpx

from mailbot.core.config import settings
from mailbot.core.exceptions import TransportError
from mailbot.gateway.types import IncomingMessage, MessageType, OutgoingMessage

logger = logging.getLogger(__name__)

# LINE rejects text messages longer than 5000 characters
LINE_MAX_LENGTH = 5000


class LineGateway:
    """Gateway for the LINE Messaging API."""

    API_BASE = "https://api.line.me"

    def __init__(
        self,
        channel_access_token: str = "",
        channel_secret: str = "",
    ) -> None:
        self._access_token = channel_access_token or settings.line_channel_access_token
        self._channel_secret = channel_secret or settings.line_channel_secret
        self._client: httpx.AsyncClient | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self._access_token and self._channel_secret)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.API_BASE,
                headers={"Authorization": f"Bearer {self._access_token}"},
                timeout=10.0,
            )
        return self._client

    # ------------------------------------------------------------------
    # Signature verification
    # ------------------------------------------------------------------
    def verify_signature(self, body: bytes, signature: str) -> bool:
        """Verify the X-Line-Signature header against the raw request body."""
        if not self._channel_secret or not signature:
            return False
        digest = hmac.new(self._channel_secret.encode(), body, hashlib.sha256).digest()
        expected = base64.b64encode(digest).decode()
        return hmac.compare_digest(expected, signature)

    # ------------------------------------------------------------------
    # Inbound: parse webhook payload
    # ------------------------------------------------------------------
    def parse_webhook(self, payload: dict[str, Any]) -> list[IncomingMessage]:
        """Parse a LINE webhook body into IncomingMessages.

        Only message events are returned; follow/unfollow/postback events
        are dropped. Non-text messages are returned with their type so the
        caller can ignore them.
        """
        messages: list[IncomingMessage] = []
        for event in payload.get("events", []) or []:
            if event.get("type") != "message":
                continue

            source = event.get("source", {}) or {}
            user_id = source.get("userId", "")
            if not user_id:
                continue
            chat_id = source.get("groupId") or source.get("roomId") or user_id

            msg = event.get("message", {}) or {}
            msg_type = msg.get("type", "")
            try:
                kind = MessageType(msg_type)
            except ValueError:
                kind = MessageType.other

            timestamp = event.get("timestamp")
            messages.append(
                IncomingMessage(
                    id=msg.get("id", ""),
                    user_id=user_id,
                    chat_id=chat_id,
                    type=kind,
                    text=msg.get("text") if kind == MessageType.text else None,
                    reply_to=event.get("replyToken") or None,
                    timestamp=timestamp / 1000 if timestamp else None,
                    channel="line",
                    raw=event,
                )
            )
        return messages

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------
    async def send(self, message: OutgoingMessage) -> None:
        """Reply with the one-shot token when present, otherwise push."""
        text = message.text or ""
        if len(text) > LINE_MAX_LENGTH:
            text = text[: LINE_MAX_LENGTH - 4] + "\n..."
        messages = [{"type": "text", "text": text}]

        if message.reply_to:
            path = "/v2/bot/message/reply"
            payload: dict[str, Any] = {"replyToken": message.reply_to, "messages": messages}
        else:
            path = "/v2/bot/message/push"
            payload = {"to": message.chat_id, "messages": messages}

        client = await self._get_client()
        try:
            resp = await client.post(path, json=payload)
        except httpx.HTTPError as e:
            raise TransportError(f"LINE request failed: {e}") from e

        if resp.status_code != 200:
            logger.error("LINE send failed: %s %s", resp.status_code, resp.text[:200])
            raise TransportError(f"LINE API returned {resp.status_code}")

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
