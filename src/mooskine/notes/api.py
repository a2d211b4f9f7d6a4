# src/mooskine/notes/api.py

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import Future
from typing import Any

from ..errors import ObjectNotFoundError
from ..model.models import Note, Notebook, ObjectId
from ..model.query import QuerySpec, SortKey
from ..store.context import ExecutionContext
from ..store.controller import Store

logger = logging.getLogger(__name__)

_UNSET: Any = object()

ContentTransform = Callable[[bytes | None], bytes | None]


def notebooks_query() -> QuerySpec:
    """All notebooks, newest first (the notebooks list screen)."""
    return QuerySpec.build(Notebook, order_by=[SortKey("created_at", ascending=False)])


def notes_query(notebook: Notebook | ObjectId | str) -> QuerySpec:
    """Notes of one notebook, oldest first (the notes list screen)."""
    if isinstance(notebook, Notebook):
        key = notebook.id
    elif isinstance(notebook, ObjectId):
        key = notebook.key
    else:
        key = notebook
    return QuerySpec.build(Note, where={"notebook_id": key}, order_by=[SortKey("created_at")])


def add_notebook(store: Store, name: str) -> Notebook:
    name = (name or "").strip()
    if not name:
        raise ValueError("name is required")

    context = store.foreground_context
    notebook = context.insert(Notebook, name=name)
    store.save(context)
    logger.info("Notebook added id=%s name=%r", notebook.id, name)
    return notebook


def delete_notebook(store: Store, notebook: Notebook) -> None:
    """Delete a notebook and, with it, all of its notes."""
    context = store.foreground_context
    context.delete(notebook)
    store.save(context)
    logger.info("Notebook deleted id=%s", notebook.id)


def add_note(store: Store, notebook: Notebook, text: str = "New Note") -> Note:
    context = store.foreground_context
    note = context.insert(Note, notebook_id=notebook.id, text=text)
    store.save(context)
    logger.debug("Note added id=%s notebook=%s", note.id, notebook.id)
    return note


def delete_note(store: Store, note: Note) -> None:
    context = store.foreground_context
    context.delete(note)
    store.save(context)
    logger.debug("Note deleted id=%s", note.id)


def update_note_text(store: Store, note: Note, text: str, *, content: bytes | None = _UNSET) -> None:
    """Editing finished: store the new text (and styled content, if given) and commit."""
    note.text = text
    if content is not _UNSET:
        note.content = content
    store.save(store.foreground_context)


def apply_content_transform(
    store: Store,
    note_id: ObjectId,
    transform: ContentTransform,
    *,
    delay_seconds: float = 0.0,
) -> Future[bool]:
    """
    Rewrite a note's styled content on the background context.

    Only the identity crosses into the background domain; the worker loads its
    own instance, applies `transform` after `delay_seconds` (rendering effects
    are slow) and commits. The Store merges the result into the foreground
    context, where live queries and watchers pick it up. The returned future
    resolves to whether the commit succeeded. It cannot be cancelled once
    started.
    """
    background = store.background_context

    def work(context: ExecutionContext) -> bool:
        try:
            note = context.object_with_id(note_id)
        except ObjectNotFoundError:
            logger.warning("Transform skipped, note %s no longer exists", note_id)
            return False

        if delay_seconds > 0:
            time.sleep(delay_seconds)

        note.content = transform(note.content)
        ok = store.save(context)
        logger.info("Transform applied note=%s saved=%s", note_id, ok)
        return ok

    return background.perform(work)
