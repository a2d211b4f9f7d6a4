"""
Live views over a context.

Components:
- live_query.py: LiveQuery (snapshot + diff) and diff_snapshots()
- data_source.py: ListDataSource[E, C] (LiveQuery deltas -> table view calls)
- observers.py: watch_object() for single-object screens
"""

from .data_source import ListDataSource
from .live_query import LiveQuery, SectionInfo, diff_snapshots
from .observers import watch_object

__all__ = ["ListDataSource", "LiveQuery", "SectionInfo", "diff_snapshots", "watch_object"]
