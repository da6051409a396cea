"""Exception hierarchy for Mailbot."""

import enum


class MailBotError(Exception):
    """Base exception for all Mailbot errors."""
    pass


class GenerationError(MailBotError):
    """No usable drafts (or email action) could be produced."""
    pass


class SendFailure(str, enum.Enum):
    auth = "auth"
    recipient_rejected = "recipient_rejected"
    transient = "transient"
    misconfigured = "misconfigured"


class SendError(MailBotError):
    """Mail transport rejected or failed to deliver the message."""

    def __init__(self, message: str, kind: SendFailure = SendFailure.transient):
        super().__init__(message)
        self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind == SendFailure.transient


class InputValidationError(MailBotError):
    """User input does not fit the current step (bad address, bad selection)."""

    def __init__(self, message: str, value: str = ""):
        super().__init__(message)
        self.value = value


class TransportError(MailBotError):
    """Chat platform reply/push call failed."""
    pass
