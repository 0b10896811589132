"""Utility helper functions."""

import re
from datetime import datetime, timezone
from typing import Iterable, Optional


def _as_utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def format_date(now: Optional[datetime] = None) -> str:
    """Format an instant as `YYYY-MM-DD HH:MM:SS` in UTC."""
    now = _as_utc(now or datetime.now(timezone.utc))
    return now.strftime("%Y-%m-%d %H:%M:%S")


def format_iso(now: datetime) -> str:
    """ISO 8601 with millisecond precision and a `Z` suffix."""
    now = _as_utc(now)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def generate_commit_message(template: str, now: Optional[datetime] = None) -> str:
    """
    Render a commit message template.

    Supported tokens: {{date}}, {{datetime}}, {{time}}, {{timestamp}} and
    {{isoDate}}, all resolved against the same instant. Any other text is
    left untouched.

    Args:
        template: Message template
        now: Instant to render; defaults to the current time

    Returns:
        Rendered commit message
    """
    now = _as_utc(now or datetime.now(timezone.utc))

    replacements = {
        "{{date}}": format_date(now),
        "{{datetime}}": format_date(now),
        "{{timestamp}}": str(int(now.timestamp() * 1000)),
        "{{isoDate}}": format_iso(now),
        "{{time}}": now.astimezone().strftime("%H:%M:%S"),
    }

    message = template
    for token, value in replacements.items():
        message = message.replace(token, value)
    return message


def _glob_to_regex(pattern: str) -> "re.Pattern":
    parts = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if pattern.startswith("**", i):
            parts.append(".*")
            i += 2
            continue
        if char == "*":
            parts.append("[^/]*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
        i += 1
    return re.compile("^" + "".join(parts) + "$")


def should_exclude(path: str, patterns: Iterable[str]) -> bool:
    """
    Check if a path matches any exclusion pattern.

    `**` matches across directories, `*` matches within one path segment
    and `?` matches a single character.
    """
    return any(_glob_to_regex(pattern).match(path) for pattern in patterns)
