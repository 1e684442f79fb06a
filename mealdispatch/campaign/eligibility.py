"""Recipient address checks.

Addresses are compared in lowercase, whitespace-stripped form.  An
address is *sendable* when it is well-formed and does not match a
known placeholder, test, disposable or system-mailbox pattern -- those
bounce or land nowhere and count against the sender's reputation.

Safety rule: addresses are never logged.
"""
from __future__ import annotations

import re

_EMAIL_SHAPE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_UNSENDABLE_PATTERNS = [
    re.compile(p)
    for p in (
        # test and placeholder mailboxes
        r"^test@", r"^testing@", r"^demo@", r"^example@", r"^sample@",
        r"@test\.", r"@testing\.", r"@example\.", r"@sample\.",
        # disposable domains
        r"@10minutemail\.", r"@guerrillamail\.", r"@mailinator\.", r"@tempmail\.",
        r"@throwaway\.", r"@disposable\.", r"@temp-mail\.", r"@fakeinbox\.",
        r"@yopmail\.", r"@maildrop\.",
        r"@invalid\.", r"@placeholder\.", r"@fake\.", r"@dummy\.",
        r"@localhost$", r"@127\.0\.0\.1$",
        # common typos of large providers
        r"@gmial\.", r"@gmai\.", r"@yahooo\.", r"@hotmial\.", r"@outlok\.",
        # system senders
        r"^noreply@", r"^no-reply@", r"^donotreply@", r"^do-not-reply@", r"^system@",
        r"^admin@.*\.local$", r"^root@.*\.local$",
        # keyboard mashing
        r"asdf", r"qwerty", r"123456", r"abcdef",
        r"^[a-z]@", r"@[a-z]\.",
    )
]


def normalize_email(raw: str | None) -> str:
    """Return *raw* lowercased and stripped; ``""`` for empty input."""
    if not raw:
        return ""
    return raw.strip().lower()


def is_sendable_email(raw: str | None) -> bool:
    email = normalize_email(raw)
    if not email or not _EMAIL_SHAPE.match(email):
        return False
    return not any(pattern.search(email) for pattern in _UNSENDABLE_PATTERNS)
