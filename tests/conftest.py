"""Test fixtures for Mailbot."""

import os
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment before importing app modules
os.environ.setdefault("LINE_CHANNEL_ACCESS_TOKEN", "test_token")
os.environ.setdefault("LINE_CHANNEL_SECRET", "test_secret")
os.environ.setdefault("MAIL_SENDER", "bot@example.com")
os.environ.setdefault("APP_ENV", "testing")
os.environ.pop("LANGFUSE_PUBLIC_KEY", None)

from mailbot.conversation.engine import ConversationEngine
from mailbot.conversation.state import Draft
from mailbot.conversation.store import ConversationStore
from mailbot.gateway.mock import MockGateway
from mailbot.mail.dispatcher import DeliveryReceipt


@pytest.fixture
def three_drafts():
    """Drafts as the generator returns them for a full response."""
    return [
        Draft(index=1, subject="Invoice 3000 reminder", body="Dear client, ...", style="professional"),
        Draft(index=2, subject="Quick reminder about 3000", body="Hi there! ...", style="friendly"),
        Draft(index=3, subject="Invoice due", body="Please pay 3000.", style="concise"),
    ]


@pytest.fixture
def generator(three_drafts):
    """Draft generator stub returning three drafts."""
    gen = MagicMock()
    gen.generate = AsyncMock(return_value=three_drafts)
    gen.compose_action = AsyncMock()
    return gen


@pytest.fixture
def dispatcher():
    """Email dispatcher stub that always accepts."""
    disp = MagicMock()
    disp.send = AsyncMock(
        side_effect=lambda recipient, subject, body: DeliveryReceipt(
            message_id="<msg-1@example.com>", recipient=recipient, subject=subject
        )
    )
    return disp


@pytest.fixture
def store():
    return ConversationStore()


@pytest.fixture
def engine(generator, dispatcher, store):
    return ConversationEngine(
        generator=generator,
        dispatcher=dispatcher,
        store=store,
        structured_dispatch=False,
    )


@pytest.fixture
def mock_gateway():
    """Mock gateway for testing."""
    return MockGateway()
