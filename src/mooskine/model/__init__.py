"""
Data model.

Components:
- models.py: managed objects (Notebook, Note), identities, change-tracked fields
- query.py: QuerySpec / SortKey used by contexts and live queries
"""

from .models import ManagedObject, Note, Notebook, ObjectId
from .query import QuerySpec, SortKey

__all__ = ["ManagedObject", "Note", "Notebook", "ObjectId", "QuerySpec", "SortKey"]
