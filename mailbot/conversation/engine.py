"""Per-user state machine for the send-mail workflow.

IDLE → AWAITING_RECIPIENT → AWAITING_INTENT → AWAITING_SELECTION → IDLE

Every inbound text produces exactly one reply. External calls (drafting,
sending) complete before any state is mutated, so a failed call leaves the
conversation in a consistent phase:

- GenerationError while drafting: back to AWAITING_INTENT, recipient kept.
- GenerationError while composing the send action: stays in AWAITING_SELECTION.
- SendError: stays in AWAITING_SELECTION with the same drafts, so the same
  number can be sent again.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from mailbot.conversation import replies
from mailbot.conversation.inputs import parse_recipient, parse_selection
from mailbot.conversation.state import ConversationState, EmailAction, Phase
from mailbot.conversation.store import ConversationStore
from mailbot.core.config import settings
from mailbot.core.exceptions import GenerationError, InputValidationError, SendError
from mailbot.core.observability import observe

if TYPE_CHECKING:
    from mailbot.drafting.generator import DraftGenerator
    from mailbot.mail.dispatcher import EmailDispatcher

logger = logging.getLogger(__name__)

# Where a conversation resumes after drafting fails. Drafts are never kept.
GENERATION_FAILURE_PHASE = Phase.awaiting_intent


class ConversationEngine:
    def __init__(
        self,
        generator: DraftGenerator,
        dispatcher: EmailDispatcher,
        store: ConversationStore | None = None,
        *,
        trigger_phrases: list[str] | None = None,
        cancel_keywords: list[str] | None = None,
        structured_dispatch: bool | None = None,
        preview_chars: int | None = None,
    ) -> None:
        self.generator = generator
        self.dispatcher = dispatcher
        self.store = store if store is not None else ConversationStore(ttl_s=settings.session_ttl_s)
        self.trigger_phrases = [
            p.lower() for p in (trigger_phrases or settings.trigger_phrases)
        ]
        self.cancel_keywords = [
            k.lower() for k in (cancel_keywords or settings.cancel_keywords)
        ]
        self.structured_dispatch = (
            settings.structured_dispatch if structured_dispatch is None else structured_dispatch
        )
        self.preview_chars = preview_chars or settings.draft_preview_chars

    @property
    def _trigger(self) -> str:
        return self.trigger_phrases[0]

    @property
    def _cancel(self) -> str:
        return self.cancel_keywords[0]

    def _is_trigger(self, text: str) -> bool:
        low = text.lower()
        return any(phrase in low for phrase in self.trigger_phrases)

    def _is_cancel(self, text: str) -> bool:
        return text.lower() in self.cancel_keywords

    @observe(name="conversation_turn")
    async def handle(self, identifier: str, text: str) -> str:
        """Process one inbound message and return the reply text."""
        async with self.store.lock(identifier):
            state = self.store.get_or_create(identifier)
            before = state.phase
            saved = state.snapshot()
            try:
                reply = await self._step(state, (text or "").strip())
            except Exception as e:
                logger.error(
                    "Unhandled error for %s in phase %s: %s",
                    identifier,
                    before.value,
                    e,
                    exc_info=True,
                )
                # A half-applied transition must not outlive the failed turn
                state.restore(saved)
                reply = replies.generic_failure()

            if state.phase == Phase.idle:
                self.store.remove(identifier)
            else:
                state.touch()
                self.store.set(identifier, state)

            if state.phase != before:
                logger.info(
                    "Conversation %s: %s -> %s", identifier, before.value, state.phase.value
                )
            return reply

    async def _step(self, state: ConversationState, text: str) -> str:
        if state.phase != Phase.idle and self._is_cancel(text):
            state.reset()
            return replies.cancelled()

        match state.phase:
            case Phase.idle:
                return self._on_idle(state, text)
            case Phase.awaiting_recipient:
                return self._on_recipient(state, text)
            case Phase.awaiting_intent:
                return await self._on_intent(state, text)
            case Phase.awaiting_selection:
                return await self._on_selection(state, text)
        raise ValueError(f"Unknown phase: {state.phase}")

    def _on_idle(self, state: ConversationState, text: str) -> str:
        if text and self._is_trigger(text):
            state.await_recipient()
            return replies.ask_recipient()
        return replies.help_text(self._trigger, self._cancel)

    def _on_recipient(self, state: ConversationState, text: str) -> str:
        if not text:
            return replies.ask_recipient()
        try:
            recipient = parse_recipient(text)
        except InputValidationError:
            return replies.invalid_recipient(text)
        state.await_intent(recipient)
        return replies.ask_intent(recipient)

    async def _on_intent(self, state: ConversationState, text: str) -> str:
        if not text:
            return replies.empty_intent()

        try:
            drafts = await self.generator.generate(state.recipient_address, text)
        except GenerationError as e:
            logger.warning("Draft generation failed for %s: %s", state.identifier, e)
            if GENERATION_FAILURE_PHASE == Phase.idle:
                state.reset()
            else:
                state.await_intent(state.recipient_address)
            return replies.generation_failed()

        menu = replies.drafts_menu(text, drafts, self.preview_chars)
        state.await_selection(text, drafts)
        return menu

    async def _on_selection(self, state: ConversationState, text: str) -> str:
        try:
            number = parse_selection(text, len(state.drafts))
        except InputValidationError:
            return replies.invalid_selection(len(state.drafts), self._cancel)

        draft = state.draft(number)
        recipient = state.recipient_address

        if self.structured_dispatch:
            try:
                action = await self.generator.compose_action(recipient, draft)
            except GenerationError as e:
                logger.warning("Send action failed for %s: %s", state.identifier, e)
                return replies.compose_failed(number, self._cancel)
        else:
            action = EmailAction(recipient=recipient, subject=draft.subject, body=draft.body)

        try:
            await self.dispatcher.send(action.recipient, action.subject, action.body)
        except SendError as e:
            logger.warning(
                "Send failed for %s (%s), keeping drafts for retry", state.identifier, e.kind.value
            )
            return replies.send_failed(e, number, self._cancel)

        # Rendered before the reset so nothing after a delivered send can fail
        reply = replies.sent(number, action.subject, action.recipient)
        state.reset()
        return reply
