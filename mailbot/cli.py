"""Interactive command-line mail composer.

    mailbot-compose [recipient]

Asks what the email should say, shows the drafts, and sends the chosen one.
"""

import argparse
import asyncio
import logging
from collections.abc import Callable

from mailbot.conversation.inputs import parse_recipient, parse_selection
from mailbot.core.config import settings
from mailbot.core.exceptions import GenerationError, InputValidationError, SendError
from mailbot.core.observability import flush_traces
from mailbot.drafting.generator import DraftGenerator
from mailbot.mail.dispatcher import EmailDispatcher

logger = logging.getLogger(__name__)

RULE = "-" * 48


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mailbot-compose",
        description="Draft an email with AI and send the version you pick.",
    )
    parser.add_argument(
        "recipient",
        nargs="?",
        default=None,
        help="Recipient address (default: MAIL_DEFAULT_RECIPIENT or the sender)",
    )
    return parser


async def run(
    recipient: str,
    generator: DraftGenerator,
    dispatcher: EmailDispatcher,
    ask: Callable[[str], str] = input,
) -> int:
    print(RULE)
    print("🚀 AI mail assistant")
    print(f"📨 Recipient: {recipient}")
    print(RULE)

    intent = ask("What should the email say? (e.g. apologise for being late): ").strip()
    if not intent:
        print("❌ Nothing entered, exiting.")
        return 1

    print("\n🤖 Writing drafts, please wait...")
    try:
        drafts = await generator.generate(recipient, intent)
    except GenerationError as e:
        logger.error("Draft generation failed: %s", e)
        print("❌ Could not generate drafts. Please try again later.")
        return 1

    for draft in drafts:
        label = f" ({draft.style})" if draft.style else ""
        print(f"\n【Option {draft.index}】{label}")
        print(f"Subject: {draft.subject}\n")
        print(draft.body)
        print(f"\n{RULE}")

    choice = ask(f"Pick a version to send (1-{len(drafts)}, anything else cancels): ").strip()
    if choice.lower() in (k.lower() for k in settings.cancel_keywords):
        print("🚫 Cancelled, nothing was sent.")
        return 0
    try:
        number = parse_selection(choice, len(drafts))
    except InputValidationError:
        print("🚫 Cancelled, nothing was sent.")
        return 0

    draft = drafts[number - 1]
    print(f"\n✅ Sending option {number}...")
    try:
        receipt = await dispatcher.send(recipient, draft.subject, draft.body)
    except SendError as e:
        print(f"❌ Sending failed ({e.kind.value}).")
        return 1

    print(f"🎉 Sent! Message ID: {receipt.message_id}")
    return 0


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=getattr(logging, settings.log_level))
    args = build_parser().parse_args(argv)

    raw = args.recipient or settings.default_recipient
    try:
        recipient = parse_recipient(raw)
    except InputValidationError:
        print(f"❌ Invalid recipient address: {raw!r}")
        return 2

    try:
        return asyncio.run(run(recipient, DraftGenerator(), EmailDispatcher()))
    except (KeyboardInterrupt, EOFError):
        print("\nBye!")
        return 130
    finally:
        flush_traces()


if __name__ == "__main__":
    raise SystemExit(main())
