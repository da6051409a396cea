from typing import Protocol

from mailbot.gateway.types import OutgoingMessage


class MessageGateway(Protocol):
    """Abstract transport interface. Implementations: LINE, mock."""

    async def send(self, message: OutgoingMessage) -> None: ...

    async def close(self) -> None: ...
