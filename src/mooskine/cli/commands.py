# src/mooskine/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from typing import cast

from ..connectors.console_screens import ListScreen, TextCell
from ..core.state import AppState
from ..errors import ObjectNotFoundError
from ..model.models import Note, Notebook, ObjectId
from ..notes.api import (
    add_note,
    add_notebook,
    apply_content_transform,
    delete_notebook,
    notebooks_query,
    notes_query,
    update_note_text,
)

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /notes, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- screens ----


def _configure_notebook(notebook: Notebook, cell: TextCell) -> None:
    count = len(notebook.notes)
    cell.title = notebook.name
    cell.detail = f"{count} page" if count == 1 else f"{count} pages"


def _configure_note(note: Note, cell: TextCell) -> None:
    cell.title = note.text or ""
    if note.content:
        preview = bytes(note.content).decode("utf-8", errors="replace")
        cell.detail = preview if len(preview) <= 40 else preview[:37] + "..."


def _notebooks_screen(state: AppState, emit: CommandEmitter | None) -> ListScreen[Notebook]:
    screen = state.screens.get("notebooks")
    if screen is None:
        screen = ListScreen(
            "Notebooks",
            state.store.foreground_context,
            notebooks_query(),
            _configure_notebook,
            emit=emit,
        )
        state.screens["notebooks"] = screen
    return screen


def _close_notes_screen(state: AppState) -> None:
    screen = state.screens.pop("notes", None)
    if screen is not None:
        screen.close()
    state.current_notebook_id = None
    state.current_note_id = None


def _current_notebook(state: AppState) -> Notebook | None:
    if state.current_notebook_id is None:
        return None
    try:
        return cast(Notebook, state.store.foreground_context.object_with_id(state.current_notebook_id))
    except ObjectNotFoundError:
        _close_notes_screen(state)
        return None


def _parse_number(raw: str) -> int | None:
    try:
        return int(raw)
    except ValueError:
        return None


# ---- commands ----


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    store = state.store
    context = store.foreground_context
    autosave = store.autosave
    every = f"every {autosave.interval:.0f}s" if autosave.running and autosave.interval else "OFF"
    notebook = _current_notebook(state)
    return (
        "Status:\n"
        f"  Store: {store.path}\n"
        f"  Autosave: {every} (commits: {autosave.commit_count})\n"
        f"  Unsaved changes: {'yes' if context.has_changes else 'no'}\n"
        f"  Open notebook: {notebook.name if notebook else '-'}"
    )


def cmd_notebooks(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return _notebooks_screen(state, emit).render()


def cmd_new(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/new <name>  -> create a notebook"""
    name = " ".join(args).strip()
    if not name:
        return "Usage: /new <notebook name>"
    _notebooks_screen(state, emit)
    notebook = add_notebook(state.store, name)
    return f"Notebook created: {notebook.name}"


def cmd_open(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/open <n>  -> open notebook #n of /notebooks"""
    number = _parse_number(args[0]) if args else None
    if number is None:
        return "Usage: /open <notebook #>"
    try:
        notebook = _notebooks_screen(state, emit).object_at(number)
    except IndexError:
        return f"No notebook #{number}. Use /notebooks to list them."

    _close_notes_screen(state)
    state.current_notebook_id = notebook.object_id
    screen = ListScreen(
        notebook.name,
        state.store.foreground_context,
        notes_query(notebook),
        _configure_note,
        emit=emit,
    )
    state.screens["notes"] = screen
    return screen.render()


def cmd_rmbook(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/rmbook <n>  -> delete notebook #n and all of its notes"""
    number = _parse_number(args[0]) if args else None
    if number is None:
        return "Usage: /rmbook <notebook #>"
    try:
        notebook = _notebooks_screen(state, emit).object_at(number)
    except IndexError:
        return f"No notebook #{number}."

    name = notebook.name
    if state.current_notebook_id == notebook.object_id:
        _close_notes_screen(state)
    delete_notebook(state.store, notebook)
    return f"Notebook deleted: {name}"


def _notes_screen(state: AppState) -> ListScreen[Note] | None:
    if _current_notebook(state) is None:
        return None
    return state.screens.get("notes")


def cmd_notes(state: AppState, args: list[str]) -> str:
    screen = _notes_screen(state)
    if screen is None:
        return "No notebook open. Use /open <notebook #>."
    return screen.render()


def cmd_add(state: AppState, args: list[str]) -> str:
    """/add [text]  -> add a note to the open notebook"""
    notebook = _current_notebook(state)
    if notebook is None:
        return "No notebook open. Use /open <notebook #>."
    text = " ".join(args).strip() or "New Note"
    note = add_note(state.store, notebook, text)
    state.current_note_id = note.object_id
    return f"Note added to {notebook.name}."


def _note_at(state: AppState, args: list[str]) -> tuple[Note | None, str]:
    screen = _notes_screen(state)
    if screen is None:
        return None, "No notebook open. Use /open <notebook #>."
    number = _parse_number(args[0]) if args else None
    if number is None:
        return None, "Missing note #."
    try:
        return screen.object_at(number), ""
    except IndexError:
        return None, f"No note #{number}. Use /notes to list them."


def cmd_edit(state: AppState, args: list[str]) -> str:
    """/edit <n> <text>  -> replace the text of note #n"""
    note, error = _note_at(state, args)
    if note is None:
        return error or "Usage: /edit <note #> <text>"
    text = " ".join(args[1:]).strip()
    if not text:
        return "Usage: /edit <note #> <text>"
    state.current_note_id = note.object_id
    update_note_text(state.store, note, text)
    return "Note updated."


def cmd_rm(state: AppState, args: list[str]) -> str:
    """/rm <n>  -> delete note #n (same path as swipe-to-delete)"""
    screen = _notes_screen(state)
    if screen is None:
        return "No notebook open. Use /open <notebook #>."
    number = _parse_number(args[0]) if args else None
    if number is None:
        return "Usage: /rm <note #>"
    try:
        screen.delete_at(number)
    except IndexError:
        return f"No note #{number}."
    return "Note deleted."


def shout_content(content: bytes | None) -> bytes:
    return (content or b"").upper()


def cmd_shout(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/shout <n>  -> upper-case note #n's styled content in the background"""
    note, error = _note_at(state, args)
    if note is None:
        return error or "Usage: /shout <note #>"

    if note.content is None:
        update_note_text(state.store, note, note.text, content=(note.text or "").encode("utf-8"))

    note_id: ObjectId = note.object_id
    delay = float(getattr(state.settings, "transform_delay", 0.0) or 0.0)
    future = apply_content_transform(state.store, note_id, shout_content, delay_seconds=delay)

    def _done(fut) -> None:
        if emit is None:
            return
        if fut.cancelled() or fut.exception() is not None or not fut.result():
            emit(f"[transform] {note_id.key[:8]} failed, see log.")
        else:
            emit(f"[transform] {note_id.key[:8]} done.")

    future.add_done_callback(_done)
    return f"Transform started ({delay:.0f}s). Keep editing; the list updates when it lands."


def cmd_save(state: AppState, args: list[str]) -> str:
    context = state.store.foreground_context
    if not context.has_changes:
        return "Nothing to save."
    if state.store.save(context):
        return "Saved."
    return "Save failed, changes are kept in memory. See log for details."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show store path, autosave and unsaved changes.")
registry.register("notebooks", cmd_notebooks, help_text="List notebooks (newest first).", aliases=["nb"])
registry.register("new", cmd_new, help_text="Create a notebook: /new <name>.")
registry.register("open", cmd_open, help_text="Open a notebook: /open <n>.")
registry.register("rmbook", cmd_rmbook, help_text="Delete a notebook and its notes: /rmbook <n>.")
registry.register("notes", cmd_notes, help_text="List notes of the open notebook.", aliases=["ls"])
registry.register("add", cmd_add, help_text="Add a note: /add [text].")
registry.register("edit", cmd_edit, help_text="Edit a note: /edit <n> <text>.")
registry.register("rm", cmd_rm, help_text="Delete a note: /rm <n>.")
registry.register("shout", cmd_shout, help_text="Background content transform: /shout <n>.")
registry.register("save", cmd_save, help_text="Save pending changes now.")
