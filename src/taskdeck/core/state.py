# src/taskdeck/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from ..query.filters import FilterSpec
from .engine import TaskEngine


@dataclass(slots=True)
class AppState:
    # Settings object (real Settings or a test double with the same attributes).
    settings: Any
    engine: TaskEngine

    # Filter applied by report commands that get no filter arguments.
    view: FilterSpec = field(default_factory=FilterSpec.default_view)
    lock: threading.Lock = field(default_factory=threading.Lock)
