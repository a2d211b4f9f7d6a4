# src/mooskine/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the live-query layer.

The layer depends on Protocols instead of concrete views.
This keeps screens swappable (console, a GUI toolkit, a test fake) and makes testing easier.
"""

from collections.abc import Sequence
from enum import StrEnum
from typing import ClassVar, NamedTuple, Protocol


class IndexPath(NamedTuple):
    section: int
    row: int


class ChangeKind(StrEnum):
    INSERT = "insert"
    DELETE = "delete"
    UPDATE = "update"
    MOVE = "move"


class ChangeListener(Protocol):
    """
    Consumer of LiveQuery deltas. One cycle is always:

        will_change()
        section_changed(...)*   # insert/delete only
        row_changed(...)*
        did_change()
    """

    def will_change(self) -> None: ...
    def section_changed(self, index: int, kind: ChangeKind) -> None: ...
    def row_changed(self, path: IndexPath | None, kind: ChangeKind, new_path: IndexPath | None) -> None: ...
    def did_change(self) -> None: ...


class Cell(Protocol):
    """A reusable row view. `reuse_identifier` names the pool it is dequeued from."""

    reuse_identifier: ClassVar[str]


class TableView(Protocol):
    """Display target of a ListDataSource (the table of a list screen)."""

    def dequeue_cell(self, reuse_identifier: str, path: IndexPath) -> Cell: ...

    def begin_updates(self) -> None: ...
    def end_updates(self) -> None: ...

    def insert_sections(self, indexes: Sequence[int]) -> None: ...
    def delete_sections(self, indexes: Sequence[int]) -> None: ...

    def insert_rows(self, paths: Sequence[IndexPath]) -> None: ...
    def delete_rows(self, paths: Sequence[IndexPath]) -> None: ...
    def reload_rows(self, paths: Sequence[IndexPath]) -> None: ...
    def move_row(self, source: IndexPath, destination: IndexPath) -> None: ...
