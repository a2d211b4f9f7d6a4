# src/mooskine/live/observers.py

from __future__ import annotations

import logging
from collections.abc import Callable

from ..model.models import ObjectId
from ..store.context import ContextChange, ExecutionContext
from ..store.notifier import Subscription

logger = logging.getLogger(__name__)


def watch_object(
    context: ExecutionContext,
    object_id: ObjectId,
    on_change: Callable[[frozenset[str]], None],
    on_delete: Callable[[], None] | None = None,
) -> Subscription:
    """
    Call on_change(changed_fields) whenever the object changes in context.

    Used by detail screens (the note editor reloads its text when a background
    transform lands). The caller owns the returned Subscription and must cancel
    it when the screen goes away.
    """

    def _on_context_change(change: ContextChange) -> None:
        if object_id in change.deleted:
            logger.debug("Watched object %s deleted", object_id)
            if on_delete is not None:
                on_delete()
            return
        fields = change.updated.get(object_id)
        if fields:
            on_change(fields)

    return context.objects_did_change.subscribe(_on_context_change)
