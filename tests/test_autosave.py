# tests/test_autosave.py

from __future__ import annotations

import asyncio
import logging
import sqlite3
from pathlib import Path

import pytest

from mooskine.notes.api import add_notebook
from mooskine.store.controller import Store


@pytest.mark.asyncio
async def test_non_positive_interval_is_rejected_and_logged(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.WARNING, logger="mooskine.store.autosave")
    store = Store("Mooskine", data_dir=tmp_path, autosave_interval=0)
    await store.open()
    try:
        assert not store.autosave.running
        assert "non-positive autosave interval" in caplog.text

        assert store.autosave.start(-5) is False
        assert not store.autosave.running

        notebook = add_notebook(store, "n")
        notebook.name = "pending"
        await asyncio.sleep(0.05)
        assert store.autosave.tick_count == 0
        assert store.foreground_context.has_changes
    finally:
        store.close()


@pytest.mark.asyncio
async def test_pending_changes_are_committed_every_interval(store: Store) -> None:
    pump = store.autosave
    assert pump.start(0.02) is True
    assert pump.running

    notebook = add_notebook(store, "n")
    notebook.name = "first edit"
    await asyncio.sleep(0.2)

    assert not store.foreground_context.has_changes
    assert pump.commit_count == 1
    row = store._backend.fetch_row("Notebook", notebook.id)
    assert row is not None and row["name"] == "first edit"

    notebook.name = "second edit"
    await asyncio.sleep(0.2)

    assert pump.commit_count == 2
    assert pump.tick_count > pump.commit_count
    assert store._backend.fetch_row("Notebook", notebook.id)["name"] == "second edit"


@pytest.mark.asyncio
async def test_stop_cancels_the_loop(store: Store) -> None:
    pump = store.autosave
    pump.start(0.02)
    await asyncio.sleep(0.05)
    pump.stop()
    assert not pump.running

    ticks = pump.tick_count
    notebook = add_notebook(store, "n")
    notebook.name = "never autosaved"
    await asyncio.sleep(0.1)

    assert pump.tick_count == ticks
    assert store.foreground_context.has_changes


@pytest.mark.asyncio
async def test_restart_replaces_running_loop(store: Store) -> None:
    pump = store.autosave
    assert pump.running
    pump.start(0.5)
    assert pump.interval == 0.5
    assert pump.running


@pytest.mark.asyncio
async def test_start_outside_foreground_domain_raises(store: Store) -> None:
    with pytest.raises(RuntimeError):
        await asyncio.to_thread(store.autosave.start, 1.0)


@pytest.mark.asyncio
async def test_tick_commits_only_with_pending_changes(store: Store) -> None:
    pump = store.autosave
    pump.stop()
    assert pump.tick() is False

    add_notebook(store, "saved by helper")
    assert pump.tick() is False

    notebook = add_notebook(store, "n")
    notebook.name = "dirty"
    assert pump.tick() is True
    assert pump.commit_count == 1


@pytest.mark.asyncio
async def test_failed_autosave_is_retried_on_next_tick(
    store: Store, monkeypatch: pytest.MonkeyPatch
) -> None:
    pump = store.autosave
    pump.stop()
    notebook = add_notebook(store, "n")
    notebook.name = "retry me"

    def boom(*args, **kwargs) -> None:
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(store._backend, "update_row", boom)
    assert pump.tick() is False
    assert store.foreground_context.has_changes

    monkeypatch.undo()
    assert pump.tick() is True
    assert not store.foreground_context.has_changes


@pytest.mark.asyncio
async def test_close_stops_autosave(tmp_path: Path) -> None:
    store = Store("Mooskine", data_dir=tmp_path, autosave_interval=0.02)
    await store.open()
    assert store.autosave.running
    store.close()
    assert not store.autosave.running
