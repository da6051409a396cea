from dataclasses import dataclass
from enum import StrEnum


class MessageType(StrEnum):
    text = "text"
    image = "image"
    sticker = "sticker"
    other = "other"


@dataclass
class IncomingMessage:
    """One inbound chat event, independent of the platform."""

    id: str
    user_id: str
    chat_id: str
    type: MessageType
    text: str | None = None
    # One-shot reply token; None when the platform gave none (e.g. redelivery)
    reply_to: str | None = None
    # Event time as a unix timestamp in seconds
    timestamp: float | None = None
    channel: str = "line"
    raw: object = None


@dataclass
class OutgoingMessage:
    """One reply to deliver.

    With ``reply_to`` set the gateway answers through the one-shot reply
    token, otherwise it pushes to ``chat_id``.
    """

    text: str
    chat_id: str
    reply_to: str | None = None
    channel: str = "line"
