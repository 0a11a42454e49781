# src/taskdeck/tasks/urgency.py

"""
Urgency estimate for rows read straight from the TaskChampion database.

`task export` carries Taskwarrior's own urgency; the raw database does not.
This mirrors the default coefficients closely enough for sorting and for the
per-project averages.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from .task_models import Priority, parse_timestamp

_PRIORITY_COEFF = {Priority.HIGH: 6.0, Priority.MEDIUM: 3.9, Priority.LOW: 1.8, Priority.NONE: 0.0}


def estimate_urgency(row: dict[str, Any], now: datetime) -> float:
    urgency = 0.0
    urgency += _PRIORITY_COEFF[Priority.from_raw(row.get("priority"))]

    if row.get("project"):
        urgency += 1.0

    if row.get("start") and not row.get("end"):
        urgency += 4.0

    n_tags = len(row.get("tags") or [])
    urgency += {0: 0.0, 1: 0.8, 2: 0.9}.get(n_tags, 1.0)

    due = parse_timestamp(row.get("due")) if row.get("due") else None
    if due is not None:
        days_until = (due - now).total_seconds() / 86400.0
        if days_until < 0:
            urgency += 12.0
        elif days_until < 7:
            urgency += 5.0
        elif days_until < 30:
            urgency += 2.0

    return round(urgency, 4)
