"""Asks the LLM for styled email variants and parses them into drafts.

Provider output is untrusted text. ``parse_drafts`` is the only place that
interprets it; anything it cannot turn into at least one draft is a
``GenerationError``.
"""

import asyncio
import logging
import re

from mailbot.conversation.state import Draft, EmailAction
from mailbot.core.config import settings
from mailbot.core.exceptions import GenerationError
from mailbot.core.llm.clients import generate_action, generate_text
from mailbot.core.llm.prompts import (
    COMPOSE_SYSTEM_PROMPT,
    DRAFT_SEPARATOR,
    DRAFT_STYLES,
    DRAFT_SYSTEM_PROMPT,
    build_compose_prompt,
    build_draft_prompt,
)
from mailbot.core.llm.types import ActionInvocation, PlainText, SEND_EMAIL_TOOL
from mailbot.core.observability import observe

logger = logging.getLogger(__name__)

EXPECTED_DRAFTS = len(DRAFT_STYLES)

# RFC 5322 recommends subject lines of at most 78 characters
MAX_SUBJECT_LEN = 78

_SUBJECT_RE = re.compile(r"^\s*(?:\*\*)?(?:subject|主旨)\s*[:：]\s*(.*?)(?:\*\*)?\s*$", re.IGNORECASE)
_HEADING_RE = re.compile(
    r"^\s*(?:#+\s*)?(?:\*\*)?\s*(?:version|option|draft|選項)\s*\d+\b.*$", re.IGNORECASE
)


def _fallback_subject(intent: str) -> str:
    subject = " ".join(f"Re: {intent}".split())
    if len(subject) > MAX_SUBJECT_LEN:
        subject = subject[: MAX_SUBJECT_LEN - 1].rstrip() + "…"
    return subject


def _split_segment(segment: str, intent: str) -> tuple[str, str]:
    """Split one variant into (subject, body)."""
    lines = segment.splitlines()
    while lines and (not lines[0].strip() or _HEADING_RE.match(lines[0])):
        lines.pop(0)

    subject = ""
    if lines:
        m = _SUBJECT_RE.match(lines[0])
        if m:
            subject = m.group(1).strip()
            lines.pop(0)

    body = "\n".join(lines).strip()
    return subject or _fallback_subject(intent), body


def parse_drafts(raw: str, intent: str, expected: int = EXPECTED_DRAFTS) -> list[Draft]:
    """Turn raw provider text into at most ``expected`` drafts.

    Fewer drafts than expected is fine; zero is not.
    """
    if not raw or not raw.strip():
        raise GenerationError("Provider returned empty text")

    drafts: list[Draft] = []
    for segment in raw.split(DRAFT_SEPARATOR):
        segment = segment.strip()
        if not segment:
            continue
        subject, body = _split_segment(segment, intent)
        if not body:
            continue
        position = len(drafts)
        drafts.append(
            Draft(
                index=position + 1,
                subject=subject,
                body=body,
                style=DRAFT_STYLES[position] if position < len(DRAFT_STYLES) else "",
            )
        )
        if len(drafts) == expected:
            break

    if not drafts:
        raise GenerationError("No usable drafts in provider response")
    if len(drafts) < expected:
        logger.warning("Provider returned %d of %d drafts", len(drafts), expected)
    return drafts


class DraftGenerator:
    """Wraps the generative-text provider with the fixed drafting prompt."""

    def __init__(
        self,
        model: str | None = None,
        timeout_s: float | None = None,
        max_tokens: int | None = None,
    ):
        self.model = model or settings.draft_model
        self.timeout_s = timeout_s if timeout_s is not None else settings.llm_timeout_s
        self.max_tokens = max_tokens or settings.draft_max_tokens

    @observe(name="generate_drafts")
    async def generate(self, recipient: str, intent: str) -> list[Draft]:
        prompt = build_draft_prompt(recipient, intent)
        try:
            raw = await asyncio.wait_for(
                generate_text(
                    model=self.model,
                    system=DRAFT_SYSTEM_PROMPT,
                    prompt=prompt,
                    max_tokens=self.max_tokens,
                ),
                timeout=self.timeout_s,
            )
        except TimeoutError as e:
            raise GenerationError(f"Provider timed out after {self.timeout_s}s") from e
        except Exception as e:
            raise GenerationError(f"Provider call failed: {e}") from e

        drafts = parse_drafts(raw, intent)
        logger.info("Generated %d drafts with %s", len(drafts), self.model)
        return drafts

    @observe(name="compose_action")
    async def compose_action(self, recipient: str, draft: Draft) -> EmailAction:
        """Have the model emit a ``send_email`` invocation for an approved draft."""
        prompt = build_compose_prompt(recipient, draft.subject, draft.body)
        try:
            response = await asyncio.wait_for(
                generate_action(
                    model=self.model,
                    system=COMPOSE_SYSTEM_PROMPT,
                    tool=SEND_EMAIL_TOOL,
                    prompt=prompt,
                    max_tokens=self.max_tokens,
                ),
                timeout=self.timeout_s,
            )
        except TimeoutError as e:
            raise GenerationError(f"Provider timed out after {self.timeout_s}s") from e
        except Exception as e:
            raise GenerationError(f"Provider call failed: {e}") from e

        match response:
            case PlainText():
                raise GenerationError("Provider answered with text instead of an action")
            case ActionInvocation(name=SEND_EMAIL_TOOL.name, arguments=args):
                fields = {
                    key: str(args.get(key) or "").strip()
                    for key in SEND_EMAIL_TOOL.parameters
                }
                missing = [key for key, value in fields.items() if not value]
                if missing:
                    raise GenerationError(f"Action is missing {', '.join(missing)}")
                if fields["recipient"].lower() != recipient.lower():
                    raise GenerationError("Action recipient does not match the conversation")
                return EmailAction(
                    recipient=recipient,
                    subject=fields["subject"],
                    body=fields["body"],
                )
            case ActionInvocation(name=name):
                raise GenerationError(f"Unexpected action {name!r}")
