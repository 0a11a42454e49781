# src/taskdeck/tasks/validation.py

from __future__ import annotations

import re
from datetime import date, datetime, time, timezone

MAX_DESCRIPTION_LEN = 1000

_PROJECT_RE = re.compile(r"^[\w.\-]+$")
_TAG_RE = re.compile(r"^[\w\-]+$")


def validate_description(description: str) -> str:
    text = (description or "").strip()
    if not text:
        raise ValueError("Task description cannot be empty")
    if len(text) > MAX_DESCRIPTION_LEN:
        raise ValueError(f"Task description is too long (max {MAX_DESCRIPTION_LEN} characters)")
    return text


def validate_project(project: str) -> str:
    name = (project or "").strip()
    if not name:
        raise ValueError("Project name cannot be empty")
    if not _PROJECT_RE.match(name):
        raise ValueError(
            "Project name can only contain letters, digits, dots, underscores and hyphens"
        )
    return name


def validate_tag(tag: str) -> str:
    name = (tag or "").strip().lstrip("+")
    if not name:
        raise ValueError("Tag name cannot be empty")
    if not _TAG_RE.match(name):
        raise ValueError("Tag name can only contain letters, digits, underscores and hyphens")
    return name


def parse_date(raw: str) -> datetime:
    """YYYY-MM-DD (midnight UTC) or RFC3339."""
    s = (raw or "").strip()
    try:
        d = date.fromisoformat(s)
        if len(s) == 10:
            return datetime.combine(d, time(0, 0), tzinfo=timezone.utc)
    except ValueError:
        pass
    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        raise ValueError(f"Invalid date {raw!r}. Use YYYY-MM-DD or RFC3339 format") from None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
