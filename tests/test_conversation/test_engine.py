"""Tests for the conversation state machine."""

import asyncio
import time
from unittest.mock import AsyncMock, patch

import pytest

from mailbot.conversation.engine import ConversationEngine
from mailbot.conversation.state import ConversationState, Draft, EmailAction, Phase
from mailbot.core.exceptions import GenerationError, SendError, SendFailure
from mailbot.mail.dispatcher import EmailDispatcher

USER = "U123"


async def _drive(engine, *texts, identifier=USER):
    replies = []
    for text in texts:
        replies.append(await engine.handle(identifier, text))
    return replies


def _phase(store, identifier=USER):
    state = store.get(identifier)
    return state.phase if state else Phase.idle


# --- IDLE ---


@pytest.mark.asyncio
async def test_idle_without_trigger_replies_help(engine, store):
    reply = await engine.handle(USER, "hello")
    assert "send mail" in reply
    assert store.get(USER) is None


@pytest.mark.asyncio
async def test_trigger_asks_for_recipient(engine, store):
    reply = await engine.handle(USER, "Please SEND MAIL for me")
    assert "email address" in reply
    assert _phase(store) == Phase.awaiting_recipient


@pytest.mark.asyncio
async def test_cancel_in_idle_is_just_help(engine, store):
    reply = await engine.handle(USER, "cancel")
    assert "send mail" in reply
    assert store.get(USER) is None


# --- AWAITING_RECIPIENT ---


@pytest.mark.asyncio
async def test_invalid_recipient_reprompts(engine, store):
    _, reply = await _drive(engine, "send mail", "not-an-email")
    assert "doesn't look like an email" in reply
    assert _phase(store) == Phase.awaiting_recipient
    assert store.get(USER).recipient_address is None


@pytest.mark.asyncio
async def test_valid_recipient_moves_to_intent(engine, store):
    _, reply = await _drive(engine, "send mail", "a@b.com")
    state = store.get(USER)
    assert state.phase == Phase.awaiting_intent
    assert state.recipient_address == "a@b.com"
    assert "What should the email say" in reply


@pytest.mark.asyncio
async def test_cancel_while_collecting_recipient(engine, store):
    _, reply = await _drive(engine, "send mail", "取消")
    assert "Cancelled" in reply
    assert store.get(USER) is None


# --- AWAITING_INTENT ---


@pytest.mark.asyncio
async def test_empty_intent_reprompts_without_calling_provider(engine, store, generator):
    _, _, reply = await _drive(engine, "send mail", "a@b.com", "   ")
    assert "describe" in reply
    assert _phase(store) == Phase.awaiting_intent
    generator.generate.assert_not_awaited()


@pytest.mark.asyncio
async def test_intent_generates_drafts(engine, store, generator, three_drafts):
    *_, reply = await _drive(engine, "send mail", "a@b.com", "invoice reminder for 3000")

    generator.generate.assert_awaited_once_with("a@b.com", "invoice reminder for 3000")
    state = store.get(USER)
    assert state.phase == Phase.awaiting_selection
    assert state.intent_text == "invoice reminder for 3000"
    assert state.drafts == three_drafts
    for n in ("【Option 1】", "【Option 2】", "【Option 3】"):
        assert n in reply
    assert "1, 2 or 3" in reply


@pytest.mark.asyncio
async def test_generation_failure_returns_to_intent(engine, store, generator):
    generator.generate.side_effect = GenerationError("empty")
    *_, reply = await _drive(engine, "send mail", "a@b.com", "invoice reminder")

    state = store.get(USER)
    assert "couldn't write the drafts" in reply
    assert state.phase == Phase.awaiting_intent
    assert state.recipient_address == "a@b.com"
    assert state.drafts == []


@pytest.mark.asyncio
async def test_retry_after_generation_failure(engine, store, generator, three_drafts):
    generator.generate.side_effect = [GenerationError("timeout"), three_drafts]
    await _drive(engine, "send mail", "a@b.com", "invoice reminder", "invoice reminder")
    assert _phase(store) == Phase.awaiting_selection
    assert generator.generate.await_count == 2


# --- AWAITING_SELECTION ---


@pytest.mark.asyncio
async def test_full_scenario_sends_selected_draft(engine, store, dispatcher, three_drafts):
    replies = await _drive(
        engine, "send mail", "not-an-email", "a@b.com", "invoice reminder for 3000", "2"
    )

    dispatcher.send.assert_awaited_once_with(
        "a@b.com", three_drafts[1].subject, three_drafts[1].body
    )
    assert "sent to a@b.com" in replies[-1]
    assert three_drafts[1].subject in replies[-1]
    assert store.get(USER) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["0", "4", "two", "2.0", "-1", "", "２"])
async def test_invalid_selection_keeps_state(engine, store, dispatcher, three_drafts, text):
    await _drive(engine, "send mail", "a@b.com", "invoice reminder")
    reply = await engine.handle(USER, text)

    assert "1, 2 or 3" in reply
    state = store.get(USER)
    assert state.phase == Phase.awaiting_selection
    assert state.drafts == three_drafts
    dispatcher.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_cancel_during_selection_clears_state(engine, store, dispatcher):
    *_, reply = await _drive(engine, "send mail", "a@b.com", "invoice reminder", "CANCEL")
    assert "Cancelled" in reply
    assert store.get(USER) is None
    dispatcher.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_fresh_flow_after_cancel_has_no_residue(engine, store):
    await _drive(engine, "send mail", "a@b.com", "invoice reminder", "cancel", "send mail")
    state = store.get(USER)
    assert state.phase == Phase.awaiting_recipient
    assert state.recipient_address is None
    assert state.intent_text is None
    assert state.drafts == []


@pytest.mark.asyncio
async def test_send_failure_keeps_drafts_and_retries(engine, store, dispatcher, three_drafts):
    dispatcher.send.side_effect = [
        SendError("connection reset", SendFailure.transient),
        None,
    ]
    await _drive(engine, "send mail", "a@b.com", "invoice reminder for 3000")

    reply = await engine.handle(USER, "2")
    assert "Sending failed" in reply
    assert "reply 2" in reply
    state = store.get(USER)
    assert state.phase == Phase.awaiting_selection
    assert state.drafts == three_drafts

    reply = await engine.handle(USER, "2")
    assert "sent to a@b.com" in reply
    assert dispatcher.send.await_count == 2
    first, second = dispatcher.send.await_args_list
    assert first.args == second.args == ("a@b.com", three_drafts[1].subject, three_drafts[1].body)
    assert store.get(USER) is None


@pytest.mark.asyncio
async def test_repeated_selection_after_success_does_not_resend(engine, store, dispatcher):
    await _drive(engine, "send mail", "a@b.com", "invoice reminder", "1")
    reply = await engine.handle(USER, "1")
    assert dispatcher.send.await_count == 1
    assert "send mail" in reply


@pytest.mark.asyncio
async def test_two_drafts_bound_selection(engine, store, generator, dispatcher):
    two = [
        Draft(index=1, subject="A", body="Body A"),
        Draft(index=2, subject="B", body="Body B"),
    ]
    generator.generate.return_value = two
    *_, menu = await _drive(engine, "send mail", "a@b.com", "invoice reminder")
    assert "1 or 2" in menu

    reply = await engine.handle(USER, "3")
    assert "1 or 2" in reply
    assert _phase(store) == Phase.awaiting_selection
    dispatcher.send.assert_not_awaited()

    await engine.handle(USER, "2")
    dispatcher.send.assert_awaited_once_with("a@b.com", "B", "Body B")


# --- Structured dispatch ---


@pytest.mark.asyncio
async def test_structured_dispatch_sends_action(generator, dispatcher, store, three_drafts):
    engine = ConversationEngine(generator, dispatcher, store, structured_dispatch=True)
    generator.compose_action.return_value = EmailAction(
        recipient="a@b.com", subject="Polished", body="Polished body"
    )
    await _drive(engine, "send mail", "a@b.com", "invoice reminder", "3")

    generator.compose_action.assert_awaited_once_with("a@b.com", three_drafts[2])
    dispatcher.send.assert_awaited_once_with("a@b.com", "Polished", "Polished body")
    assert store.get(USER) is None


@pytest.mark.asyncio
async def test_structured_dispatch_failure_keeps_selection(generator, dispatcher, store):
    engine = ConversationEngine(generator, dispatcher, store, structured_dispatch=True)
    generator.compose_action.side_effect = GenerationError("plain text")
    *_, reply = await _drive(engine, "send mail", "a@b.com", "invoice reminder", "1")

    assert "Nothing was sent" in reply
    assert _phase(store) == Phase.awaiting_selection
    dispatcher.send.assert_not_awaited()


# --- Unexpected errors ---


@pytest.mark.asyncio
async def test_unexpected_error_gives_generic_reply_and_keeps_phase(engine, store, dispatcher):
    dispatcher.send.side_effect = RuntimeError("boom: secret internals")
    *_, reply = await _drive(engine, "send mail", "a@b.com", "invoice reminder", "1")

    assert "Something went wrong" in reply
    assert "secret internals" not in reply
    assert _phase(store) == Phase.awaiting_selection


@pytest.mark.asyncio
async def test_unexpected_generator_error_does_not_advance(engine, store, generator):
    generator.generate.side_effect = KeyError("weird")
    *_, reply = await _drive(engine, "send mail", "a@b.com", "invoice reminder")
    assert "Something went wrong" in reply
    state = store.get(USER)
    assert state.phase == Phase.awaiting_intent
    assert state.drafts == []


# --- Concurrency ---


@pytest.mark.asyncio
async def test_concurrent_same_user_selection_sends_once(engine, store, dispatcher):
    await _drive(engine, "send mail", "a@b.com", "invoice reminder")

    started = asyncio.Event()
    release = asyncio.Event()

    async def slow_send(recipient, subject, body):
        started.set()
        await release.wait()

    dispatcher.send = AsyncMock(side_effect=slow_send)

    first = asyncio.create_task(engine.handle(USER, "3"))
    await started.wait()
    second = asyncio.create_task(engine.handle(USER, "3"))
    await asyncio.sleep(0)
    release.set()

    r1, r2 = await asyncio.gather(first, second)
    assert dispatcher.send.await_count == 1
    assert "sent to a@b.com" in r1
    assert "send mail" in r2  # second event sees IDLE


@pytest.mark.asyncio
async def test_different_users_run_concurrently(engine, store, generator, three_drafts):
    await _drive(engine, "send mail", "a@b.com", identifier="U1")
    await _drive(engine, "send mail", "c@d.com", identifier="U2")

    release = asyncio.Event()
    both_started = asyncio.Event()
    in_flight = 0

    async def slow_generate(recipient, intent):
        nonlocal in_flight
        in_flight += 1
        if in_flight == 2:
            both_started.set()
        await release.wait()
        return three_drafts

    generator.generate = AsyncMock(side_effect=slow_generate)

    t1 = asyncio.create_task(engine.handle("U1", "topic one"))
    t2 = asyncio.create_task(engine.handle("U2", "topic two"))
    await asyncio.wait_for(both_started.wait(), timeout=1)
    release.set()
    await asyncio.gather(t1, t2)

    assert store.get("U1").phase == Phase.awaiting_selection
    assert store.get("U2").phase == Phase.awaiting_selection


@pytest.mark.asyncio
async def test_same_user_replies_in_arrival_order(engine, store):
    tasks = [
        asyncio.create_task(engine.handle(USER, text))
        for text in ("send mail", "a@b.com", "invoice reminder")
    ]
    r1, r2, r3 = await asyncio.gather(*tasks)
    assert "email address" in r1
    assert "Recipient: a@b.com" in r2
    assert "【Option 1】" in r3


# --- Slow mail relay ---


@pytest.mark.asyncio
async def test_slow_relay_sends_once_and_confirms(generator, store, three_drafts):
    delivered = []

    class SlowRelay:
        is_configured = True

        def deliver(self, message):
            time.sleep(0.3)
            delivered.append(message["Subject"])

    dispatcher = EmailDispatcher(transport=SlowRelay(), sender="bot@example.com")
    engine = ConversationEngine(generator, dispatcher, store, structured_dispatch=False)

    *_, reply = await _drive(engine, "send mail", "a@b.com", "invoice", "2")
    assert "sent to a@b.com" in reply

    again = await engine.handle(USER, "2")
    assert "send mail" in again
    assert delivered == [three_drafts[1].subject]


@pytest.mark.asyncio
async def test_half_applied_transition_is_rolled_back(engine, store, generator, dispatcher):
    def advance_then_fail(self, intent, drafts):
        self.phase = Phase.awaiting_selection
        self.intent_text = intent
        self.drafts = list(drafts)
        raise RuntimeError("boom")

    await _drive(engine, "send mail", "a@b.com")
    with patch.object(ConversationState, "await_selection", advance_then_fail):
        reply = await engine.handle(USER, "invoice reminder")

    assert "Something went wrong" in reply
    state = store.get(USER)
    assert state.phase == Phase.awaiting_intent
    assert state.recipient_address == "a@b.com"
    assert state.intent_text is None
    assert state.drafts == []

    await engine.handle(USER, "1")
    dispatcher.send.assert_not_awaited()
    assert generator.generate.await_count == 2
