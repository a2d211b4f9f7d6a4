# tests/test_commands.py

from __future__ import annotations

import asyncio

import pytest

from mooskine.cli.commands import CommandRegistry, registry, shout_content


@pytest.mark.asyncio
async def test_command_registry_routes_2_and_3_params(state) -> None:
    reg = CommandRegistry()
    called = {"h2": 0, "h3": 0}

    def h2(state, args):
        called["h2"] += 1
        return "h2"

    def h3(state, args, emit):
        called["h3"] += 1
        if emit is not None:
            emit("note")
        return "h3"

    reg.register("a", h2, "a")
    reg.register("b", h3, "b", aliases=["bee"])

    emitted: list[str] = []
    assert reg.handle(state, "/a x") == "h2"
    assert reg.handle(state, "/BEE y", emit=emitted.append) == "h3"
    assert called == {"h2": 1, "h3": 1}
    assert emitted == ["note"]
    assert "/b - b" in reg.build_help()


@pytest.mark.asyncio
async def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert reg.handle(state, "hello") is None
    assert "Unknown command" in (reg.handle(state, "/nope") or "")
    assert "Empty command" in (reg.handle(state, "/") or "")


def test_shout_content() -> None:
    assert shout_content(b"moo") == b"MOO"
    assert shout_content(None) == b""


@pytest.mark.asyncio
async def test_notebook_and_note_flow(state) -> None:
    out: list[str] = []

    assert "(empty)" in registry.handle(state, "/notebooks", emit=out.append)
    assert "created" in registry.handle(state, "/new Groceries", emit=out.append)
    assert out == ["[Notebooks] #1 added"]

    listing = registry.handle(state, "/notebooks")
    assert "1. Groceries  (0 pages)" in listing

    assert "Groceries" in registry.handle(state, "/open 1", emit=out.append)
    registry.handle(state, "/add Milk")
    registry.handle(state, "/add Eggs")
    notes = registry.handle(state, "/notes")
    assert "1. Milk" in notes
    assert "2. Eggs" in notes

    assert registry.handle(state, "/edit 2 Brown eggs") == "Note updated."
    assert "2. Brown eggs" in registry.handle(state, "/notes")

    assert registry.handle(state, "/rm 1") == "Note deleted."
    notes = registry.handle(state, "/notes")
    assert "Milk" not in notes
    assert "1. Brown eggs" in notes

    assert "(1 page)" in registry.handle(state, "/notebooks")
    assert "Nothing to save." == registry.handle(state, "/save")


@pytest.mark.asyncio
async def test_commands_need_an_open_notebook(state) -> None:
    assert "No notebook open" in registry.handle(state, "/notes")
    assert "No notebook open" in registry.handle(state, "/add x")
    assert "Usage" in registry.handle(state, "/open")
    assert "No notebook #3" in registry.handle(state, "/open 3")


@pytest.mark.asyncio
async def test_deleting_open_notebook_closes_its_screen(state) -> None:
    registry.handle(state, "/new Work")
    registry.handle(state, "/open 1")
    registry.handle(state, "/add todo")
    assert "notes" in state.screens

    assert "deleted" in registry.handle(state, "/rmbook 1")

    assert "notes" not in state.screens
    assert state.current_notebook_id is None
    assert "(empty)" in registry.handle(state, "/notebooks")
    assert state.store._backend.count("Note") == 0


@pytest.mark.asyncio
async def test_shout_runs_in_background_and_updates_list(state) -> None:
    out: list[str] = []
    registry.handle(state, "/new Moo")
    registry.handle(state, "/open 1", emit=out.append)
    registry.handle(state, "/add quiet cow")
    out.clear()

    reply = registry.handle(state, "/shout 1", emit=out.append)
    assert "Transform started" in reply

    listing = ""
    for _ in range(200):
        listing = registry.handle(state, "/notes")
        if "QUIET COW" in listing and any("done" in line for line in out):
            break
        await asyncio.sleep(0.01)

    assert "1. quiet cow  (QUIET COW)" in listing
    assert any("changed" in line for line in out)
    assert any(line.startswith("[transform]") and line.endswith("done.") for line in out)


@pytest.mark.asyncio
async def test_status(state) -> None:
    status = registry.handle(state, "/status")
    assert str(state.store.path) in status
    assert "Unsaved changes: no" in status
