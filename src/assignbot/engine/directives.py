"""Minimal scanning of assignment commands in PR bodies and comments."""

from __future__ import annotations

import re

from assignbot.core.models import AssignCommand, AssignUser, Claim, ReleaseAssignment, RequestReview

_REVIEW_DIRECTIVE = re.compile(r"(?:^|\s)r\?\s+(@?[\w./-]+)", re.IGNORECASE)
_CODE_FENCE = re.compile(r"```.*?```", re.DOTALL)
_INLINE_CODE = re.compile(r"`[^`\n]*`")


def _strip_code(text: str) -> str:
    return _INLINE_CODE.sub("", _CODE_FENCE.sub("", text))


def find_review_directive(body: str) -> str | None:
    """Return the name from the first ``r? <name>`` outside code blocks."""
    match = _REVIEW_DIRECTIVE.search(_strip_code(body or ""))
    if not match:
        return None
    return match.group(1).rstrip(".,")


def parse_command(text: str, bot_username: str) -> AssignCommand | None:
    """Parse the first assignment command in ``text``.

    Recognises ``@<bot> claim``, ``@<bot> assign @user``,
    ``@<bot> release-assignment`` and ``r? <name>``.
    """
    cleaned = _strip_code(text or "")
    bot = re.escape(bot_username.lstrip("@"))
    pattern = re.compile(
        rf"@{bot}\s+(claim|release-assignment|assign)(?:\s+(@?[\w-]+))?",
        re.IGNORECASE,
    )
    match = pattern.search(cleaned)
    if match:
        verb = match.group(1).lower()
        if verb == "claim":
            return Claim()
        if verb == "release-assignment":
            return ReleaseAssignment()
        if match.group(2):
            return AssignUser(username=match.group(2).lstrip("@"))
    name = find_review_directive(cleaned)
    if name is not None:
        return RequestReview(name=name)
    return None
