"""Provider-neutral access to the OpenAI, Anthropic and Google GenAI SDKs.

The provider is chosen from the model id prefix (``gpt-``, ``claude-``,
``gemini-``). Each provider has one request function used by both the plain
text path and the tool-calling path.
"""

import json
import logging
from typing import Any, Literal

from anthropic import AsyncAnthropic
from google import genai
from google.genai import types as genai_types
from openai import AsyncOpenAI

from mailbot.core.config import settings
from mailbot.core.llm.prompts import PromptAdapter
from mailbot.core.llm.types import ActionInvocation, PlainText, ProviderResponse, ToolSpec

logger = logging.getLogger(__name__)

Provider = Literal["openai", "claude", "gemini"]

_PREFIXES: dict[str, Provider] = {
    "gpt-": "openai",
    "claude-": "claude",
    "gemini-": "gemini",
}

_anthropic: AsyncAnthropic | None = None
_openai: AsyncOpenAI | None = None
_google: genai.Client | None = None


def anthropic_client() -> AsyncAnthropic:
    global _anthropic
    if _anthropic is None:
        _anthropic = AsyncAnthropic(api_key=settings.anthropic_api_key)
    return _anthropic


def openai_client() -> AsyncOpenAI:
    global _openai
    if _openai is None:
        _openai = AsyncOpenAI(api_key=settings.openai_api_key)
    return _openai


def google_client() -> genai.Client:
    global _google
    if _google is None:
        _google = genai.Client(api_key=settings.google_ai_api_key)
    return _google


def provider_for(model: str) -> Provider:
    for prefix, provider in _PREFIXES.items():
        if model.startswith(prefix):
            return provider
    raise ValueError(f"Unknown model prefix: {model}")


def _to_messages(
    messages: list[dict[str, str]] | None, prompt: str | None
) -> list[dict[str, str]]:
    if messages is None and prompt is not None:
        return [{"role": "user", "content": prompt}]
    if not messages:
        raise ValueError("Either messages or prompt is required")
    return messages


async def _request_openai(model, system, messages, max_tokens, tool: ToolSpec | None):
    extra: dict[str, Any] = {"tools": [tool.for_openai()]} if tool else {}
    return await openai_client().chat.completions.create(
        model=model,
        max_completion_tokens=max_tokens,
        **PromptAdapter.for_openai(system, messages),
        **extra,
    )


async def _request_claude(model, system, messages, max_tokens, tool: ToolSpec | None):
    extra: dict[str, Any] = {"tools": [tool.for_claude()]} if tool else {}
    return await anthropic_client().messages.create(
        model=model,
        max_tokens=max_tokens,
        **PromptAdapter.for_claude(system, messages),
        **extra,
    )


async def _request_gemini(model, system, messages, max_tokens, tool: ToolSpec | None):
    formatted = PromptAdapter.for_gemini(system, messages)
    config = genai_types.GenerateContentConfig(
        system_instruction=formatted["system_instruction"],
        max_output_tokens=max_tokens,
        tools=[tool.for_gemini()] if tool else None,
    )
    return await google_client().aio.models.generate_content(
        model=model,
        contents=formatted["contents"],
        config=config,
    )


_REQUESTS = {
    "openai": _request_openai,
    "claude": _request_claude,
    "gemini": _request_gemini,
}


async def generate_text(
    model: str,
    system: str,
    messages: list[dict[str, str]] | None = None,
    max_tokens: int = 1024,
    *,
    prompt: str | None = None,
) -> str:
    """Single completion, returned as text.

    Pass either ``messages`` (chat history) or ``prompt`` (one user turn).
    """
    messages = _to_messages(messages, prompt)
    provider = provider_for(model)
    resp = await _REQUESTS[provider](model, system, messages, max_tokens, None)

    match provider:
        case "openai":
            return resp.choices[0].message.content or ""
        case "claude":
            return resp.content[0].text
        case _:
            return resp.text or ""


def _openai_action(resp) -> ProviderResponse:
    message = resp.choices[0].message
    if not message.tool_calls:
        return PlainText(text=message.content or "")
    call = message.tool_calls[0]
    try:
        arguments = json.loads(call.function.arguments or "{}")
    except json.JSONDecodeError:
        logger.warning("Tool call %s carried unparseable arguments", call.function.name)
        arguments = {}
    return ActionInvocation(name=call.function.name, arguments=arguments)


def _claude_action(resp) -> ProviderResponse:
    for block in resp.content:
        if block.type == "tool_use":
            return ActionInvocation(name=block.name, arguments=dict(block.input or {}))
    return PlainText(text="".join(b.text for b in resp.content if b.type == "text"))


def _gemini_action(resp) -> ProviderResponse:
    calls = resp.function_calls or []
    if not calls:
        return PlainText(text=resp.text or "")
    return ActionInvocation(name=calls[0].name or "", arguments=dict(calls[0].args or {}))


_ACTION_READERS = {
    "openai": _openai_action,
    "claude": _claude_action,
    "gemini": _gemini_action,
}


async def generate_action(
    model: str,
    system: str,
    tool: ToolSpec,
    messages: list[dict[str, str]] | None = None,
    max_tokens: int = 1024,
    *,
    prompt: str | None = None,
) -> ProviderResponse:
    """Completion with ``tool`` declared.

    Returns ``ActionInvocation`` for the first tool call, otherwise
    ``PlainText`` with whatever the model wrote instead.
    """
    messages = _to_messages(messages, prompt)
    provider = provider_for(model)
    resp = await _REQUESTS[provider](model, system, messages, max_tokens, tool)
    return _ACTION_READERS[provider](resp)


async def list_generation_models() -> list[str]:
    """Model IDs the configured Google key can use for text generation."""
    names: list[str] = []
    async for model in await google_client().aio.models.list():
        if "generateContent" in (model.supported_actions or []) and model.name:
            names.append(model.name.removeprefix("models/"))
    return names
