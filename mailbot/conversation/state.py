"""One conversation record per end-user identifier."""

import enum
import time
from dataclasses import dataclass, field, replace


class Phase(str, enum.Enum):
    idle = "idle"
    awaiting_recipient = "awaiting_recipient"
    awaiting_intent = "awaiting_intent"
    awaiting_selection = "awaiting_selection"


@dataclass(frozen=True)
class Draft:
    """One generated subject + body candidate. ``index`` is 1-based."""

    index: int
    subject: str
    body: str
    style: str = ""


@dataclass(frozen=True)
class EmailAction:
    """Fully specified send request, as returned by the structured path."""

    recipient: str
    subject: str
    body: str


@dataclass
class ConversationState:
    identifier: str
    phase: Phase = Phase.idle
    recipient_address: str | None = None
    intent_text: str | None = None
    drafts: list[Draft] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    last_activity_at: float = field(default_factory=time.time)

    def touch(self) -> None:
        self.last_activity_at = time.time()

    def reset(self) -> None:
        """Back to IDLE with all collected data cleared."""
        self.phase = Phase.idle
        self.recipient_address = None
        self.intent_text = None
        self.drafts = []

    def await_recipient(self) -> None:
        self.reset()
        self.phase = Phase.awaiting_recipient

    def await_intent(self, recipient: str) -> None:
        self.recipient_address = recipient
        self.intent_text = None
        self.drafts = []
        self.phase = Phase.awaiting_intent

    def await_selection(self, intent: str, drafts: list[Draft]) -> None:
        if not drafts:
            raise ValueError("Cannot await a selection without drafts")
        self.intent_text = intent
        self.drafts = list(drafts)
        self.phase = Phase.awaiting_selection

    def snapshot(self) -> "ConversationState":
        return replace(self, drafts=list(self.drafts))

    def restore(self, saved: "ConversationState") -> None:
        """Roll phase and collected data back to ``saved``."""
        self.phase = saved.phase
        self.recipient_address = saved.recipient_address
        self.intent_text = saved.intent_text
        self.drafts = list(saved.drafts)

    def draft(self, number: int) -> Draft:
        """Return the draft for a 1-based selection number."""
        return self.drafts[number - 1]
