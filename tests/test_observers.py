# tests/test_observers.py

from __future__ import annotations

import asyncio

import pytest

from mooskine.live.observers import watch_object
from mooskine.notes.api import add_note, add_notebook, apply_content_transform, delete_note
from mooskine.store.controller import Store


@pytest.mark.asyncio
async def test_watch_reports_changed_fields(store: Store) -> None:
    notebook = add_notebook(store, "n")
    note = add_note(store, notebook, "draft")
    other = add_note(store, notebook, "other")
    changes: list[frozenset[str]] = []

    sub = watch_object(store.foreground_context, note.object_id, changes.append)

    other.text = "not watched"
    note.text = "edited"
    await asyncio.sleep(0)
    assert changes == [frozenset({"text"})]

    await asyncio.wrap_future(apply_content_transform(store, note.object_id, lambda c: b"styled"))
    assert changes[-1] == frozenset({"content"})

    sub.cancel()
    note.text = "unseen"
    await asyncio.sleep(0)
    assert len(changes) == 2


@pytest.mark.asyncio
async def test_watch_reports_delete(store: Store) -> None:
    notebook = add_notebook(store, "n")
    note = add_note(store, notebook, "doomed")
    changes: list[frozenset[str]] = []
    deleted: list[bool] = []

    with watch_object(store.foreground_context, note.object_id, changes.append, lambda: deleted.append(True)):
        delete_note(store, note)

    assert deleted == [True]
    assert changes == []
