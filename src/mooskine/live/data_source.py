# src/mooskine/live/data_source.py

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

from ..core.ports import Cell, ChangeKind, IndexPath, TableView
from ..errors import fatal_error
from ..model.models import ManagedObject
from .live_query import LiveQuery

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=ManagedObject)
C = TypeVar("C", bound=Cell)


class ListDataSource(Generic[E, C]):
    """
    Binds a LiveQuery to a table-like view.

    E is the entity type (Notebook, Note), C the cell type it is rendered
    into. `configure(obj, cell)` fills a dequeued cell. The data source
    registers itself as the query's listener and turns every delta into the
    matching batch-update call on the view.
    """

    def __init__(
        self,
        view: TableView,
        live_query: LiveQuery[E],
        cell_type: type[C],
        configure: Callable[[E, C], None],
        *,
        on_content_changed: Callable[[], None] | None = None,
    ) -> None:
        self.view = view
        self.live_query = live_query
        self.cell_type = cell_type
        self.configure = configure
        self.on_content_changed = on_content_changed
        live_query.listener = self

    # ---- data source ----

    def number_of_sections(self) -> int:
        return self.live_query.section_count()

    def number_of_rows(self, section: int) -> int:
        return self.live_query.row_count(section)

    def is_empty(self) -> bool:
        return all(self.number_of_rows(s) == 0 for s in range(self.number_of_sections()))

    def cell_for_row(self, path: IndexPath) -> C:
        obj = self.live_query.entity_at(path)
        cell = self.view.dequeue_cell(self.cell_type.reuse_identifier, path)
        if not isinstance(cell, self.cell_type):
            raise TypeError(
                f"View returned {type(cell).__name__} for {self.cell_type.reuse_identifier!r}, "
                f"expected {self.cell_type.__name__}"
            )
        self.configure(obj, cell)
        return cell

    def commit_edit(self, style: str, path: IndexPath) -> None:
        if style == "delete":
            self.delete_object(path)
        else:
            logger.debug("Unsupported edit style %r at %s", style, path)

    def delete_object(self, path: IndexPath) -> None:
        self.live_query.delete_entity(path)

    # ---- LiveQuery listener ----

    def will_change(self) -> None:
        self.view.begin_updates()

    def did_change(self) -> None:
        self.view.end_updates()
        if self.on_content_changed is not None:
            self.on_content_changed()

    def section_changed(self, index: int, kind: ChangeKind) -> None:
        if kind == ChangeKind.INSERT:
            self.view.insert_sections([index])
        elif kind == ChangeKind.DELETE:
            self.view.delete_sections([index])
        else:
            fatal_error(f"Invalid section change {str(kind)!r} at {index}; only insert or delete are possible")

    def row_changed(self, path: IndexPath | None, kind: ChangeKind, new_path: IndexPath | None) -> None:
        if kind == ChangeKind.INSERT and new_path is not None:
            self.view.insert_rows([new_path])
        elif kind == ChangeKind.DELETE and path is not None:
            self.view.delete_rows([path])
        elif kind == ChangeKind.UPDATE and path is not None:
            self.view.reload_rows([path])
        elif kind == ChangeKind.MOVE and path is not None and new_path is not None:
            self.view.move_row(path, new_path)
        else:
            logger.warning("Ignoring malformed row change kind=%s path=%s new_path=%s", kind, path, new_path)

    def close(self) -> None:
        self.live_query.close()
