from mailbot.core.exceptions import TransportError
from mailbot.gateway.types import OutgoingMessage


class MockGateway:
    """In-memory gateway that records what would have been sent."""

    def __init__(self, fail_replies: bool = False):
        self.sent_messages: list[OutgoingMessage] = []
        self.fail_replies = fail_replies

    async def send(self, message: OutgoingMessage) -> None:
        if message.reply_to and self.fail_replies:
            raise TransportError("Invalid reply token")
        self.sent_messages.append(message)

    async def close(self) -> None:
        pass

    @property
    def replies(self) -> list[OutgoingMessage]:
        return [m for m in self.sent_messages if m.reply_to]

    @property
    def pushes(self) -> list[OutgoingMessage]:
        return [m for m in self.sent_messages if not m.reply_to]

    @property
    def last_message(self) -> OutgoingMessage | None:
        return self.sent_messages[-1] if self.sent_messages else None

    def clear(self) -> None:
        self.sent_messages.clear()
