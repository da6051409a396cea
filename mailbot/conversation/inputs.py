"""Parsers for the free-text answers the conversation asks for."""

import re

from mailbot.core.exceptions import InputValidationError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def parse_recipient(text: str) -> str:
    """Return the address if ``text`` is a single email-like token."""
    candidate = (text or "").strip().removeprefix("mailto:")
    if not _EMAIL_RE.match(candidate):
        raise InputValidationError("Not an email address", value=text)
    local, _, domain = candidate.partition("@")
    if domain.startswith(".") or domain.endswith(".") or ".." in domain:
        raise InputValidationError("Not an email address", value=text)
    return f"{local}@{domain}"


def parse_selection(text: str, count: int) -> int:
    """Return the 1-based draft number; only plain ASCII integers in [1, count]."""
    candidate = (text or "").strip()
    if not (candidate.isascii() and candidate.isdigit()):
        raise InputValidationError("Selection is not a number", value=text)
    number = int(candidate)
    if not 1 <= number <= count:
        raise InputValidationError(f"Selection must be between 1 and {count}", value=text)
    return number
