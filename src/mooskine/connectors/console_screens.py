# src/mooskine/connectors/console_screens.py

from __future__ import annotations

"""
Text-mode list screens.

A ListScreen is the console counterpart of a table screen: a LiveQuery bound
through a ListDataSource to a ConsoleTableView. The view keeps no rows of its
own; it renders by asking the data source, and reports batch updates (for
example a background transform landing) through `emit`.
"""

import logging
from collections.abc import Callable, Sequence
from typing import Generic, TypeVar

from ..core.ports import IndexPath
from ..live.data_source import ListDataSource
from ..live.live_query import LiveQuery
from ..model.models import ManagedObject
from ..model.query import QuerySpec
from ..store.context import ExecutionContext

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=ManagedObject)

Emitter = Callable[[str], None]


class TextCell:
    reuse_identifier = "TextCell"

    def __init__(self) -> None:
        self.title = ""
        self.detail = ""

    def render(self, number: int) -> str:
        line = f"{number:>3}. {self.title}"
        if self.detail:
            line += f"  ({self.detail})"
        return line


class ConsoleTableView:
    """Collects one batch of updates and emits a one-line summary when it ends."""

    def __init__(self, title: str, emit: Emitter | None = None) -> None:
        self.title = title
        self._emit = emit
        self._depth = 0
        self._pending: list[str] = []

    def dequeue_cell(self, reuse_identifier: str, path: IndexPath) -> TextCell:
        return TextCell()

    def begin_updates(self) -> None:
        self._depth += 1

    def end_updates(self) -> None:
        self._depth -= 1
        if self._depth > 0 or not self._pending:
            return
        summary, self._pending = ", ".join(self._pending), []
        logger.debug("%s updated: %s", self.title, summary)
        if self._emit is not None:
            self._emit(f"[{self.title}] {summary}")

    def insert_sections(self, indexes: Sequence[int]) -> None:
        self._pending.extend(f"section {i} added" for i in indexes)

    def delete_sections(self, indexes: Sequence[int]) -> None:
        self._pending.extend(f"section {i} removed" for i in indexes)

    def insert_rows(self, paths: Sequence[IndexPath]) -> None:
        self._pending.extend(f"#{p.row + 1} added" for p in paths)

    def delete_rows(self, paths: Sequence[IndexPath]) -> None:
        self._pending.extend(f"#{p.row + 1} removed" for p in paths)

    def reload_rows(self, paths: Sequence[IndexPath]) -> None:
        self._pending.extend(f"#{p.row + 1} changed" for p in paths)

    def move_row(self, source: IndexPath, destination: IndexPath) -> None:
        self._pending.append(f"#{source.row + 1} moved to #{destination.row + 1}")


class ListScreen(Generic[E]):
    def __init__(
        self,
        title: str,
        context: ExecutionContext,
        spec: QuerySpec,
        configure: Callable[[E, TextCell], None],
        *,
        emit: Emitter | None = None,
    ) -> None:
        self.title = title
        self.view = ConsoleTableView(title, emit)
        self.query: LiveQuery[E] = LiveQuery(context, spec)
        self.data_source: ListDataSource[E, TextCell] = ListDataSource(self.view, self.query, TextCell, configure)

    def object_at(self, number: int) -> E:
        """1-based row number as shown by render(); first section only."""
        if number < 1:
            raise IndexError(f"no row #{number}")
        return self.query.entity_at(IndexPath(0, number - 1))

    def delete_at(self, number: int) -> None:
        if number < 1:
            raise IndexError(f"no row #{number}")
        self.data_source.commit_edit("delete", IndexPath(0, number - 1))

    def render(self) -> str:
        if self.data_source.is_empty():
            return f"{self.title}: (empty)"
        lines = [f"{self.title}:"]
        n = 0
        for s in range(self.data_source.number_of_sections()):
            for r in range(self.data_source.number_of_rows(s)):
                n += 1
                lines.append(self.data_source.cell_for_row(IndexPath(s, r)).render(n))
        return "\n".join(lines)

    def close(self) -> None:
        self.data_source.close()
