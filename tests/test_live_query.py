# tests/test_live_query.py

from __future__ import annotations

import asyncio
import logging
import random
import sqlite3

import pytest

from mooskine.core.ports import ChangeKind, IndexPath
from mooskine.errors import FatalError
from mooskine.live.data_source import ListDataSource
from mooskine.live.live_query import LiveQuery, SectionInfo, diff_snapshots
from mooskine.model.models import Note, ObjectId
from mooskine.model.query import QuerySpec
from mooskine.notes.api import add_note, add_notebook, delete_note, notes_query, update_note_text
from mooskine.store.controller import Store

from .fakes import FakeCell, FakeTableView, RecordingListener


def _oid(key: str) -> ObjectId:
    return ObjectId("Note", key)


@pytest.mark.asyncio
async def test_groceries_rows_and_delete_delta(store: Store) -> None:
    groceries = add_notebook(store, "Groceries")
    add_note(store, groceries, "Milk")
    add_note(store, groceries, "Eggs")

    listener = RecordingListener()
    lq = LiveQuery(store.foreground_context, notes_query(groceries), listener)

    assert lq.section_count() == 1
    assert lq.row_count(0) == 2
    assert lq.entity_at((0, 0)).text == "Milk"
    assert lq.entity_at((0, 1)).text == "Eggs"

    lq.delete_entity(IndexPath(0, 0))

    assert listener.events == [
        ("will",),
        ("row", IndexPath(0, 0), ChangeKind.DELETE, None),
        ("did",),
    ]
    assert lq.row_count(0) == 1
    assert lq.entity_at((0, 0)).text == "Eggs"
    assert store._backend.count("Note") == 1
    lq.close()


@pytest.mark.asyncio
async def test_unsaved_edit_reported_as_update_at_next_turn(store: Store) -> None:
    notebook = add_notebook(store, "n")
    add_note(store, notebook, "one")
    second = add_note(store, notebook, "two")

    listener = RecordingListener()
    with LiveQuery(store.foreground_context, notes_query(notebook), listener):
        second.text = "TWO"
        assert listener.events == []

        await asyncio.sleep(0)

        assert listener.events == [
            ("will",),
            ("row", IndexPath(0, 1), ChangeKind.UPDATE, None),
            ("did",),
        ]


@pytest.mark.asyncio
async def test_empty_ungrouped_result_has_one_section(store: Store) -> None:
    notebook = add_notebook(store, "empty")
    lq = LiveQuery(store.foreground_context, notes_query(notebook))
    assert lq.section_count() == 1
    assert lq.row_count(0) == 0
    assert lq.fetched_objects == []
    with pytest.raises(IndexError):
        lq.entity_at((0, 0))
    with pytest.raises(IndexError):
        lq.row_count(3)
    lq.close()


@pytest.mark.asyncio
async def test_index_path_of(store: Store) -> None:
    notebook = add_notebook(store, "n")
    a = add_note(store, notebook, "a")
    b = add_note(store, notebook, "b")
    lq = LiveQuery(store.foreground_context, notes_query(notebook))
    assert lq.index_path_of(a) == IndexPath(0, 0)
    assert lq.index_path_of(b.object_id) == IndexPath(0, 1)
    assert lq.index_path_of(_oid("missing")) is None
    lq.close()


@pytest.mark.asyncio
async def test_unknown_field_in_query_is_fatal(store: Store) -> None:
    spec = QuerySpec.build(Note, order_by=["color"])
    with pytest.raises(FatalError):
        LiveQuery(store.foreground_context, spec)


@pytest.mark.asyncio
async def test_section_key_must_lead_the_sort(store: Store) -> None:
    spec = QuerySpec.build(Note, order_by=["created_at"], section_key="notebook_id")
    with pytest.raises(FatalError):
        LiveQuery(store.foreground_context, spec)


@pytest.mark.asyncio
async def test_sections_appear_and_disappear_before_row_changes(store: Store) -> None:
    first = add_notebook(store, "first")
    add_note(store, first, "only")

    spec = QuerySpec.build(Note, order_by=["notebook_id", "created_at"], section_key="notebook_id")
    listener = RecordingListener()
    lq = LiveQuery(store.foreground_context, spec, listener)
    assert lq.section_count() == 1
    assert lq.sections[0].name == first.id

    second = add_notebook(store, "second")
    new_note = add_note(store, second, "fresh")

    kinds = [e[0] for e in listener.events]
    assert kinds == ["will", "section", "row", "did"]
    section_index = listener.events[1][1]
    assert listener.events[1][2] == ChangeKind.INSERT
    assert listener.events[2][2] == ChangeKind.INSERT
    assert listener.events[2][3] == IndexPath(section_index, 0)
    assert lq.section_count() == 2
    assert lq.index_path_of(new_note) == IndexPath(section_index, 0)

    listener.clear()
    delete_note(store, new_note)

    kinds = [e[0] for e in listener.events]
    assert kinds == ["will", "section", "row", "did"]
    assert listener.events[1] == ("section", section_index, ChangeKind.DELETE)
    assert listener.events[2] == ("row", IndexPath(section_index, 0), ChangeKind.DELETE, None)
    assert lq.section_count() == 1
    lq.close()


@pytest.mark.asyncio
async def test_snapshot_matches_fresh_fetch_after_random_edits(store: Store) -> None:
    rng = random.Random(7)
    notebook = add_notebook(store, "shuffle")
    # Sorted by text so renames move rows around.
    spec = QuerySpec.build(Note, where={"notebook_id": notebook.id}, order_by=["text", "created_at"])

    view = FakeTableView()
    lq = LiveQuery(store.foreground_context, spec)
    ListDataSource(view, lq, FakeCell, lambda note, cell: setattr(cell, "title", note.text))
    view.resolve = lq.object_id_at
    view.load([s.object_ids for s in lq.sections])

    bg = store.background_context
    words = ["apple", "kiwi", "melon", "pear", "fig", "lime", "plum"]

    for _ in range(40):
        current = lq.fetched_objects
        op = rng.choice(["add", "add", "rename", "delete"]) if current else "add"
        if op == "add":
            add_note(store, notebook, rng.choice(words))
        elif op == "rename":
            update_note_text(store, rng.choice(current), rng.choice(words))
        else:
            delete_note(store, rng.choice(current))

        expected = await asyncio.wrap_future(bg.perform(lambda ctx: [o.object_id for o in ctx.fetch(spec)]))
        assert [oid for s in lq.sections for oid in s.object_ids] == expected
        assert view.rows == [list(s.object_ids) for s in lq.sections]

    lq.close()


@pytest.mark.asyncio
async def test_listener_mutation_runs_a_second_cycle(store: Store) -> None:
    notebook = add_notebook(store, "n")
    listener = RecordingListener()
    lq = LiveQuery(store.foreground_context, notes_query(notebook), listener)

    triggered: list[bool] = []

    def add_follow_up() -> None:
        if not triggered:
            triggered.append(True)
            add_note(store, notebook, "follow-up")

    listener.on_did_change = add_follow_up
    add_note(store, notebook, "first")

    assert listener.events == [
        ("will",),
        ("row", None, ChangeKind.INSERT, IndexPath(0, 0)),
        ("did",),
        ("will",),
        ("row", None, ChangeKind.INSERT, IndexPath(0, 1)),
        ("did",),
    ]
    assert [n.text for n in lq.fetched_objects] == ["first", "follow-up"]
    lq.close()


@pytest.mark.asyncio
async def test_closed_query_stops_listening(store: Store) -> None:
    notebook = add_notebook(store, "n")
    ctx = store.foreground_context
    before = ctx.objects_did_change.subscriber_count

    listener = RecordingListener()
    lq = LiveQuery(ctx, notes_query(notebook), listener)
    assert ctx.objects_did_change.subscriber_count == before + 1

    lq.close()
    lq.close()
    assert lq.is_closed
    assert ctx.objects_did_change.subscriber_count == before

    add_note(store, notebook, "unseen")
    assert listener.events == []


@pytest.mark.asyncio
async def test_other_entities_do_not_trigger_refresh(store: Store) -> None:
    notebook = add_notebook(store, "n")
    listener = RecordingListener()
    lq = LiveQuery(store.foreground_context, notes_query(notebook), listener)

    notebook.name = "renamed"
    store.save(store.foreground_context)

    assert listener.events == []
    lq.close()


def test_diff_keeps_common_order_and_moves_the_rest() -> None:
    a, b, c = _oid("a"), _oid("b"), _oid("c")
    old = (SectionInfo("", (a, b, c)),)
    new = (SectionInfo("", (c, a, b)),)

    diff = diff_snapshots(old, new, updated=[a])

    assert diff.sections == []
    assert diff.rows == [
        (IndexPath(0, 2), ChangeKind.MOVE, IndexPath(0, 0)),
        (IndexPath(0, 0), ChangeKind.UPDATE, None),
    ]


def test_diff_orders_deletes_then_inserts() -> None:
    a, b, c, d = _oid("a"), _oid("b"), _oid("c"), _oid("d")
    old = (SectionInfo("", (a, b, c)),)
    new = (SectionInfo("", (b, d)),)

    diff = diff_snapshots(old, new)

    assert diff.rows == [
        (IndexPath(0, 2), ChangeKind.DELETE, None),
        (IndexPath(0, 0), ChangeKind.DELETE, None),
        (None, ChangeKind.INSERT, IndexPath(0, 1)),
    ]


def test_diff_of_identical_snapshots_is_empty() -> None:
    a = _oid("a")
    snap = (SectionInfo("", (a,)),)
    assert diff_snapshots(snap, snap).is_empty


def test_reordered_sections_are_fatal() -> None:
    a, b = _oid("a"), _oid("b")
    old = (SectionInfo("x", (a,)), SectionInfo("y", (b,)))
    new = (SectionInfo("y", (b,)), SectionInfo("x", (a,)))
    with pytest.raises(FatalError):
        diff_snapshots(old, new)


@pytest.mark.asyncio
async def test_deleted_rows_stay_readable_until_the_next_refresh(store: Store) -> None:
    notebook = add_notebook(store, "n")
    milk = add_note(store, notebook, "Milk")
    scratch = store.foreground_context.insert(Note, notebook_id=notebook.id, text="scratch")
    listener = RecordingListener()
    lq = LiveQuery(store.foreground_context, notes_query(notebook), listener)

    store.foreground_context.delete(milk)
    store.foreground_context.delete(scratch)

    # Not refreshed yet: every reported row can still be drawn.
    assert lq.row_count(0) == 2
    assert lq.entity_at((0, 0)).text == "Milk"
    assert lq.entity_at((0, 1)).text == "scratch"
    assert [n.text for n in lq.fetched_objects] == ["Milk", "scratch"]

    await asyncio.sleep(0)

    assert lq.row_count(0) == 0
    assert [e[2] for e in listener.rows()] == [ChangeKind.DELETE, ChangeKind.DELETE]
    lq.close()


@pytest.mark.asyncio
async def test_refresh_failure_keeps_previous_snapshot(
    store: Store, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    notebook = add_notebook(store, "n")
    milk = add_note(store, notebook, "Milk")
    listener = RecordingListener()
    lq = LiveQuery(store.foreground_context, notes_query(notebook), listener)
    caplog.set_level(logging.ERROR, logger="mooskine.live.live_query")

    def locked(*args, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(store._backend, "fetch_rows", locked)
    milk.text = "Oat milk"
    await asyncio.sleep(0)

    assert "refresh failed" in caplog.text
    assert listener.events == []
    assert lq.entity_at((0, 0)) is milk

    monkeypatch.undo()
    lq.refresh()
    assert lq.row_count(0) == 1
    lq.close()


@pytest.mark.asyncio
async def test_backend_failure_on_first_fetch_is_fatal(
    store: Store, monkeypatch: pytest.MonkeyPatch
) -> None:
    notebook = add_notebook(store, "n")

    def broken(*args, **kwargs):
        raise sqlite3.DatabaseError("file is not a database")

    monkeypatch.setattr(store._backend, "fetch_rows", broken)
    with pytest.raises(FatalError):
        LiveQuery(store.foreground_context, notes_query(notebook))
