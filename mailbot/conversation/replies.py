"""User-facing reply texts for the conversation engine."""

from mailbot.conversation.state import Draft
from mailbot.core.exceptions import SendError, SendFailure


def help_text(trigger: str, cancel: str) -> str:
    return (
        "👋 I can write and send an email for you.\n"
        f"Type “{trigger}” to start. Type “{cancel}” at any point to stop."
    )


def ask_recipient() -> str:
    return "📮 Who should receive the email? Reply with their email address."


def invalid_recipient(text: str) -> str:
    return f"❌ “{text}” doesn't look like an email address. Please try again."


def ask_intent(recipient: str) -> str:
    return (
        f"✉️ Recipient: {recipient}\n"
        "What should the email say? Describe it in a sentence or a few keywords."
    )


def empty_intent() -> str:
    return "✏️ Please describe what the email should say."


def _preview(body: str, limit: int) -> str:
    flat = " ".join(body.split())
    if len(flat) <= limit:
        return flat
    return flat[:limit].rstrip() + "..."


def drafts_menu(intent: str, drafts: list[Draft], preview_chars: int) -> str:
    lines = [f"🤖 I wrote {len(drafts)} version(s) about “{intent}”:", ""]
    for draft in drafts:
        label = f" ({draft.style})" if draft.style else ""
        lines.append(f"【Option {draft.index}】{label}")
        lines.append(f"Subject: {draft.subject}")
        lines.append(_preview(draft.body, preview_chars))
        lines.append("")
    lines.append(selection_prompt(len(drafts)))
    return "\n".join(lines)


def _choices(count: int) -> str:
    numbers = [str(n) for n in range(1, count + 1)]
    if len(numbers) == 1:
        return numbers[0]
    return ", ".join(numbers[:-1]) + f" or {numbers[-1]}"


def selection_prompt(count: int) -> str:
    return f"👉 Reply {_choices(count)} to send that version."


def invalid_selection(count: int, cancel: str) -> str:
    return f"❌ Please enter {_choices(count)} to choose a version, or “{cancel}” to stop."


def cancelled() -> str:
    return "Cancelled. Nothing was sent."


def sent(number: int, subject: str, recipient: str) -> str:
    return f"🎉 Option {number} was sent to {recipient}!\n(Subject: {subject})"


def generation_failed() -> str:
    return (
        "❌ Sorry, I couldn't write the drafts this time.\n"
        "Please describe the email again to retry."
    )


def send_failed(error: SendError, number: int, cancel: str) -> str:
    match error.kind:
        case SendFailure.recipient_rejected:
            reason = "The mail server rejected the message."
        case SendFailure.auth | SendFailure.misconfigured:
            reason = "The mail service is not available right now."
        case _:
            reason = "The mail server could not be reached."
    return (
        f"⚠️ Sending failed. {reason}\n"
        f"Your drafts are kept: reply {number} to try again, or “{cancel}” to stop."
    )


def compose_failed(number: int, cancel: str) -> str:
    return (
        "⚠️ I couldn't prepare the email for sending. Nothing was sent.\n"
        f"Reply {number} to try again, or “{cancel}” to stop."
    )


def generic_failure() -> str:
    return "❌ Something went wrong. Please try again in a moment."
