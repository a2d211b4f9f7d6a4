"""
Persistence subsystem.

Components:
- backend.py: SQLite file (schema, additive migrations, row reads/writes)
- domains.py: foreground (event loop) and background (worker thread) domains
- notifier.py: typed publish/subscribe with Subscription handles
- context.py: ExecutionContext (unit of work, merge policy, change events)
- controller.py: Store (owns backend, both contexts, merge wiring, autosave)
- autosave.py: AutosavePump (cancellable repeating commit of the foreground context)
"""

from .context import ContextChange, ExecutionContext, MergePolicy, SavedChanges
from .controller import Store
from .notifier import ChangeNotifier, Subscription

__all__ = [
    "ChangeNotifier",
    "ContextChange",
    "ExecutionContext",
    "MergePolicy",
    "SavedChanges",
    "Store",
    "Subscription",
]
