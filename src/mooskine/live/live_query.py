# src/mooskine/live/live_query.py

from __future__ import annotations

"""
LiveQuery: a fetched, ordered, optionally sectioned result that follows its context.

- runs the QuerySpec immediately (a spec that cannot run is a programmer error: fatal)
- listens to the context's objects_did_change
- on every relevant change: re-fetch, diff against the previous snapshot and
  report the delta to the listener as one will_change/did_change cycle
- a refresh the backend refuses is logged and the previous snapshot kept
"""

import difflib
import logging
import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from ..core.ports import ChangeKind, ChangeListener, IndexPath
from ..errors import CommitError, InvalidQueryError, fatal_error
from ..model.models import ManagedObject, ObjectId
from ..model.query import QuerySpec
from ..store.context import ContextChange, ExecutionContext
from ..store.notifier import Subscription

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=ManagedObject)

RowChange = tuple[IndexPath | None, ChangeKind, IndexPath | None]


@dataclass(frozen=True, slots=True)
class SectionInfo:
    name: str
    object_ids: tuple[ObjectId, ...]

    @property
    def number_of_objects(self) -> int:
        return len(self.object_ids)


@dataclass(slots=True)
class SnapshotDiff:
    sections: list[tuple[int, ChangeKind]] = field(default_factory=list)
    rows: list[RowChange] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.sections or self.rows)


def _positions(snapshot: tuple[SectionInfo, ...]) -> dict[ObjectId, IndexPath]:
    return {
        oid: IndexPath(s, r)
        for s, section in enumerate(snapshot)
        for r, oid in enumerate(section.object_ids)
    }


def diff_snapshots(
    old: tuple[SectionInfo, ...],
    new: tuple[SectionInfo, ...],
    updated: Iterable[ObjectId] = (),
) -> SnapshotDiff:
    """
    Delta that turns `old` into `new`.

    Paths follow batch-update rules: deletes, move sources and updates use
    old paths; inserts and move destinations use new paths. Objects that keep
    their relative order (a common subsequence per section) are left alone;
    the rest of the survivors are reported as moves.
    """
    diff = SnapshotDiff()

    old_names = [s.name for s in old]
    new_names = [s.name for s in new]
    old_set, new_set = set(old_names), set(new_names)
    if [n for n in old_names if n in new_set] != [n for n in new_names if n in old_set]:
        fatal_error("Sections changed order; only section inserts and deletes are possible")

    for i, name in enumerate(old_names):
        if name not in new_set:
            diff.sections.append((i, ChangeKind.DELETE))
    for i, name in enumerate(new_names):
        if name not in old_set:
            diff.sections.append((i, ChangeKind.INSERT))

    old_pos = _positions(old)
    new_pos = _positions(new)

    deletes = sorted((p for oid, p in old_pos.items() if oid not in new_pos), reverse=True)
    inserts = sorted(p for oid, p in new_pos.items() if oid not in old_pos)

    stable: set[ObjectId] = set()
    new_by_name = {s.name: s for s in new}
    for section in old:
        target = new_by_name.get(section.name)
        if target is None:
            continue
        target_ids = set(target.object_ids)
        a = [oid for oid in section.object_ids if oid in target_ids]
        source_ids = set(a)
        b = [oid for oid in target.object_ids if oid in source_ids]
        matcher = difflib.SequenceMatcher(None, a, b, autojunk=False)
        for block in matcher.get_matching_blocks():
            stable.update(a[block.a : block.a + block.size])

    moves = sorted(
        ((old_pos[oid], new_pos[oid]) for oid in old_pos if oid in new_pos and oid not in stable),
        key=lambda m: m[1],
    )
    updates = sorted(old_pos[oid] for oid in set(updated) if oid in stable)

    diff.rows.extend((p, ChangeKind.DELETE, None) for p in deletes)
    diff.rows.extend((None, ChangeKind.INSERT, p) for p in inserts)
    diff.rows.extend((src, ChangeKind.MOVE, dst) for src, dst in moves)
    diff.rows.extend((p, ChangeKind.UPDATE, None) for p in updates)
    return diff


class LiveQuery(Generic[E]):
    """
    Cached query result kept in sync with one ExecutionContext.

    Must be closed (or used as a context manager) when its screen goes away,
    so the context stops calling into it.
    """

    def __init__(
        self,
        context: ExecutionContext,
        spec: QuerySpec,
        listener: ChangeListener | None = None,
    ) -> None:
        self._context = context
        self.spec = spec
        self.listener = listener
        self._sections: tuple[SectionInfo, ...] = ()
        self._pending_updates: set[ObjectId] = set()
        self._refreshing = False
        self._needs_refresh = False

        try:
            self._sections = self._perform_fetch()
        except sqlite3.Error as e:
            fatal_error(f"The fetch could not be performed: {e}")
        self._subscription: Subscription | None = context.objects_did_change.subscribe(self._context_did_change)
        logger.debug(
            "LiveQuery %s ready sections=%d objects=%d",
            spec.entity_name,
            len(self._sections),
            sum(s.number_of_objects for s in self._sections),
        )

    # ---- fetch ----

    def _perform_fetch(self) -> tuple[SectionInfo, ...]:
        try:
            objects = self._context.fetch(self.spec)
        except InvalidQueryError as e:
            fatal_error(f"The fetch could not be performed: {e}")

        if self.spec.section_key is None:
            return (SectionInfo("", tuple(o.object_id for o in objects)),)

        groups: dict[str, list[ObjectId]] = {}
        for obj in objects:
            groups.setdefault(self.spec.section_name(obj), []).append(obj.object_id)
        return tuple(SectionInfo(name, tuple(ids)) for name, ids in groups.items())

    # ---- data access ----

    @property
    def context(self) -> ExecutionContext:
        return self._context

    @property
    def sections(self) -> tuple[SectionInfo, ...]:
        return self._sections

    @property
    def is_closed(self) -> bool:
        return self._subscription is None

    def section_count(self) -> int:
        if self.spec.section_key is None:
            return max(1, len(self._sections))
        return len(self._sections)

    def row_count(self, section: int) -> int:
        if section < 0:
            raise IndexError(f"section {section} out of range")
        return self._sections[section].number_of_objects

    def object_id_at(self, path: IndexPath | tuple[int, int]) -> ObjectId:
        section, row = path
        if section < 0 or row < 0:
            raise IndexError(f"index path {tuple(path)} out of range")
        try:
            return self._sections[section].object_ids[row]
        except IndexError:
            raise IndexError(f"index path {tuple(path)} out of range") from None

    def entity_at(self, path: IndexPath | tuple[int, int]) -> E:
        return self._context.snapshot_object(self.object_id_at(path))  # type: ignore[return-value]

    def index_path_of(self, item: ManagedObject | ObjectId) -> IndexPath | None:
        oid = item.object_id if isinstance(item, ManagedObject) else item
        for s, section in enumerate(self._sections):
            for r, candidate in enumerate(section.object_ids):
                if candidate == oid:
                    return IndexPath(s, r)
        return None

    @property
    def fetched_objects(self) -> list[E]:
        return [
            self._context.snapshot_object(oid)  # type: ignore[misc]
            for section in self._sections
            for oid in section.object_ids
        ]

    # ---- editing ----

    def delete_entity(self, path: IndexPath | tuple[int, int]) -> None:
        """
        Delete the object at path and commit.

        A failed commit is logged only; the snapshot follows the in-memory
        delete either way.
        """
        obj = self.entity_at(path)
        self._context.delete(obj)
        try:
            self._context.save()
        except CommitError:
            logger.exception("Delete of %s could not be saved", obj.object_id)

    # ---- change tracking ----

    def _context_did_change(self, change: ContextChange) -> None:
        if self._subscription is None or not change.touches(self.spec.entity_name):
            return
        self._pending_updates.update(change.updated)
        if self._refreshing:
            # A listener mutated the context mid-cycle; finish this cycle first.
            self._needs_refresh = True
            return

        self._refreshing = True
        try:
            while True:
                self._needs_refresh = False
                updated, self._pending_updates = self._pending_updates, set()
                self._refresh(updated)
                if not self._needs_refresh:
                    break
        finally:
            self._refreshing = False

    def refresh(self) -> None:
        """Re-fetch now and report whatever changed."""
        self._refresh(set())

    def _refresh(self, updated: set[ObjectId]) -> None:
        old = self._sections
        try:
            self._sections = self._perform_fetch()
        except sqlite3.Error:
            logger.exception("LiveQuery %s refresh failed; keeping the previous snapshot", self.spec.entity_name)
            self._pending_updates.update(updated)
            return
        diff = diff_snapshots(old, self._sections, updated)
        if diff.is_empty or self.listener is None:
            return

        listener = self.listener
        listener.will_change()
        for index, kind in diff.sections:
            listener.section_changed(index, kind)
        for path, kind, new_path in diff.rows:
            listener.row_changed(path, kind, new_path)
        listener.did_change()

    # ---- teardown ----

    def close(self) -> None:
        sub, self._subscription = self._subscription, None
        if sub is not None:
            sub.cancel()
        self.listener = None

    def __enter__(self) -> LiveQuery[E]:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
