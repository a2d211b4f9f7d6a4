# src/mooskine/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..model.models import ObjectId
from ..store.controller import Store


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any
    store: Store

    # Navigation: which notebook / note the user has opened.
    current_notebook_id: ObjectId | None = None
    current_note_id: ObjectId | None = None

    # Open list screens by name ("notebooks", "notes"); closed on navigation/shutdown.
    screens: dict[str, Any] = field(default_factory=dict)
