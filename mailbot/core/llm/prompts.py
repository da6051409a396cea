from typing import Any

DRAFT_SEPARATOR = "###DRAFT_SEPARATOR###"

DRAFT_STYLES = ("professional", "friendly", "concise")

DRAFT_SYSTEM_PROMPT = """\
You are an email writing assistant. You write ready-to-send emails on behalf of the user.

Rules:
- Never invent facts that are not in the user's description.
- Output only the emails, no preamble, no closing remarks, no markdown.
- Write in the same language as the user's description."""

DRAFT_PROMPT_TEMPLATE = """\
Recipient: {recipient}
What the email should say: {intent}

Write {count} different versions of this email, in this order:
1. Professional — formal and polished
2. Friendly — warm and personal
3. Concise — short and direct

Format each version exactly like this:
Subject: <subject line>
<email body>

Put the line {separator} between versions. Do not number or title the versions."""

COMPOSE_SYSTEM_PROMPT = """\
You are an email dispatch assistant. The user has approved a draft.
Call the send_email tool exactly once with the recipient, subject and body below.
Do not change the wording of the subject or the body."""

COMPOSE_PROMPT_TEMPLATE = """\
Recipient: {recipient}
Subject: {subject}

{body}"""


class PromptAdapter:
    """Shapes a system prompt plus chat turns into each SDK's request kwargs."""

    @staticmethod
    def for_claude(
        system: str,
        messages: list[dict[str, str]],
        cache: bool = True,
    ) -> dict[str, Any]:
        # Draft and compose instructions repeat verbatim on every call
        block: dict[str, Any] = {"type": "text", "text": system}
        if cache:
            block["cache_control"] = {"type": "ephemeral", "ttl": "1h"}
        return {"system": [block], "messages": messages}

    @staticmethod
    def for_openai(
        system: str,
        messages: list[dict[str, str]],
    ) -> dict[str, Any]:
        return {"messages": [{"role": "system", "content": system}, *messages]}

    @staticmethod
    def for_gemini(
        system: str,
        messages: list[dict[str, str]],
    ) -> dict[str, Any]:
        """A lone user turn is sent as a plain string."""
        if len(messages) == 1:
            contents: Any = messages[0]["content"]
        else:
            contents = [
                {
                    "role": "model" if m["role"] == "assistant" else m["role"],
                    "parts": [{"text": m["content"]}],
                }
                for m in messages
            ]
        return {"system_instruction": system, "contents": contents}


def build_draft_prompt(recipient: str, intent: str, count: int = len(DRAFT_STYLES)) -> str:
    return DRAFT_PROMPT_TEMPLATE.format(
        recipient=recipient,
        intent=intent,
        count=count,
        separator=DRAFT_SEPARATOR,
    )


def build_compose_prompt(recipient: str, subject: str, body: str) -> str:
    return COMPOSE_PROMPT_TEMPLATE.format(recipient=recipient, subject=subject, body=body)
