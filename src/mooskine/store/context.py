# src/mooskine/store/context.py

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, TypeVar

from ..errors import CommitError, DomainViolationError, ObjectNotFoundError
from ..model.models import ManagedObject, ObjectId, creation_timestamp, entity_class, new_key
from ..model.query import QuerySpec
from .backend import SQLiteBackend
from .domains import Domain
from .notifier import ChangeNotifier

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=ManagedObject)
T = TypeVar("T")


class MergePolicy(StrEnum):
    """
    Per-property conflict resolution.

    OBJECT_TRUMP: the context's own pending value wins over the store (on save)
                  and over incoming merged values (on merge).
    STORE_TRUMP:  the persisted / incoming value wins; the pending edit of that
                  property is dropped.

    Either way only properties that actually conflict are affected; untouched
    properties always take the newest value.
    """

    OBJECT_TRUMP = "object_trump"
    STORE_TRUMP = "store_trump"


@dataclass(frozen=True, slots=True)
class ContextChange:
    """Objects that changed in a context since its previous notification."""

    inserted: frozenset[ObjectId] = frozenset()
    updated: dict[ObjectId, frozenset[str]] = field(default_factory=dict)
    deleted: frozenset[ObjectId] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not (self.inserted or self.updated or self.deleted)

    def touches(self, entity: str) -> bool:
        return any(
            oid.entity == entity for oid in (*self.inserted, *self.updated, *self.deleted)
        )


@dataclass(frozen=True, slots=True)
class SavedChanges:
    """What one successful save wrote. Plain values only: safe to hand to the other domain."""

    context_name: str
    inserted: dict[ObjectId, dict[str, Any]] = field(default_factory=dict)
    updated: dict[ObjectId, dict[str, Any]] = field(default_factory=dict)
    deleted: frozenset[ObjectId] = frozenset()


class ExecutionContext:
    """
    Unit of work against the backend.

    Holds an identity map of the objects it has handed out, and pending
    inserts / per-property updates / deletes until save() or rollback().
    Mutations are coalesced into one ContextChange and published on
    `objects_did_change` at the next turn of the context's domain.
    Successful saves are published on `did_save`.
    """

    def __init__(
        self,
        *,
        name: str,
        backend: SQLiteBackend,
        domain: Domain,
        merge_policy: MergePolicy = MergePolicy.OBJECT_TRUMP,
        check_domains: bool = True,
    ) -> None:
        self.name = name
        self.merge_policy = merge_policy
        self._backend = backend
        self._domain = domain
        self._check_domains = check_domains

        self._objects: dict[ObjectId, ManagedObject] = {}
        # Last values known to be persisted, per object (conflict detection base).
        self._committed: dict[ObjectId, dict[str, Any]] = {}
        self._inserted: dict[ObjectId, None] = {}
        self._changed: dict[ObjectId, set[str]] = {}
        self._deleted: dict[ObjectId, ManagedObject] = {}
        # Dropped from the identity map since the last notification; snapshots may still list them.
        self._retired: dict[ObjectId, ManagedObject] = {}

        self._note_inserted: set[ObjectId] = set()
        self._note_updated: dict[ObjectId, set[str]] = {}
        self._note_deleted: set[ObjectId] = set()
        self._flush_scheduled = False

        self.objects_did_change: ChangeNotifier[ContextChange] = ChangeNotifier(f"{name}.objects_did_change")
        self.did_save: ChangeNotifier[SavedChanges] = ChangeNotifier(f"{name}.did_save")

    def __repr__(self) -> str:
        return f"<ExecutionContext {self.name}>"

    # ---- domain ----

    @property
    def domain(self) -> Domain:
        return self._domain

    def _check_domain(self) -> None:
        if self._check_domains and not self._domain.is_current():
            raise DomainViolationError(
                f"{self.name} context accessed from thread {threading.current_thread().name!r}; "
                f"use perform() to enter the {self._domain.name} domain"
            )

    def perform(self, fn: Callable[[ExecutionContext], T]) -> Future[T]:
        """Run fn(self) inside this context's domain; pending changes are announced when it returns."""

        def run() -> T:
            try:
                return fn(self)
            finally:
                self.process_pending_changes()

        return self._domain.submit(run)

    # ---- state ----

    @property
    def has_changes(self) -> bool:
        return bool(self._inserted or self._deleted or any(self._changed.values()))

    def is_deleted(self, obj: ManagedObject) -> bool:
        return obj.object_id in self._deleted

    def changed_fields(self, obj: ManagedObject) -> frozenset[str]:
        return frozenset(self._changed.get(obj.object_id, ()))

    # ---- reads ----

    def object_with_id(self, object_id: ObjectId) -> ManagedObject:
        """This context's instance for an identity; loads it from the backend if needed."""
        self._check_domain()
        if object_id in self._deleted:
            raise ObjectNotFoundError(object_id)
        obj = self._objects.get(object_id)
        if obj is not None:
            return obj
        row = self._backend.fetch_row(object_id.entity, object_id.key)
        if row is None:
            raise ObjectNotFoundError(object_id)
        return self._materialize(entity_class(object_id.entity), row)

    def snapshot_object(self, object_id: ObjectId) -> ManagedObject:
        """
        Like object_with_id, but objects deleted since the last change
        notification are still returned (read-only), so a list drawn from a
        not yet refreshed snapshot can render every row it reports.
        """
        self._check_domain()
        obj = self._objects.get(object_id)
        if obj is None:
            obj = self._retired.get(object_id)
        if obj is not None:
            return obj
        return self.object_with_id(object_id)

    def fetch(self, spec: QuerySpec) -> list[Any]:
        """
        Persisted rows merged with this context's pending state, filtered and sorted.

        Pending inserts are included, pending deletes excluded, and in-memory
        values (not the persisted ones) decide filtering and order.
        """
        self._check_domain()
        spec.validate()

        candidates: dict[ObjectId, ManagedObject] = {}
        for row in self._backend.fetch_rows(spec.entity_name, spec.where):
            obj = self._materialize(spec.entity, row)
            candidates[obj.object_id] = obj
        # Objects whose in-memory values now match although the persisted row does not.
        for oid, obj in self._objects.items():
            if oid.entity == spec.entity_name:
                candidates.setdefault(oid, obj)

        live = [o for oid, o in candidates.items() if oid not in self._deleted and spec.matches(o)]
        return spec.sort(live)

    def count(self, spec: QuerySpec) -> int:
        return len(self.fetch(spec))

    def _materialize(self, entity: type[E], row: dict[str, Any]) -> E:
        oid = ObjectId(entity.ENTITY, str(row["id"]))
        existing = self._objects.get(oid)
        if existing is not None:
            return existing  # type: ignore[return-value]
        values = {f: row.get(f) for f in entity.FIELDS}
        obj = entity(oid, values, self)
        self._objects[oid] = obj
        self._committed[oid] = dict(values)
        return obj

    # ---- writes ----

    def insert(self, entity: type[E], **values: Any) -> E:
        self._check_domain()
        unknown = sorted(set(values) - set(entity.FIELDS))
        if unknown:
            raise ValueError(f"{entity.ENTITY} has no field(s): {', '.join(unknown)}")

        merged = {**entity.DEFAULTS, **values}
        for name in entity.REQUIRED:
            if merged.get(name) is None:
                raise ValueError(f"{entity.ENTITY}.{name} is required")
        for name, target in entity.REFERENCES.items():
            if merged.get(name) is not None:
                self._require_live(ObjectId(target, merged[name]))
        if merged.get("created_at") is None and "created_at" in entity.FIELDS:
            merged["created_at"] = creation_timestamp()

        oid = ObjectId(entity.ENTITY, new_key())
        obj = entity(oid, merged, self)
        self._objects[oid] = obj
        self._inserted[oid] = None
        self._note(inserted=oid)
        logger.debug("%s insert %s", self.name, oid)
        return obj

    def delete(self, obj: ManagedObject) -> None:
        """Mark obj (and everything its entity cascades to) as deleted."""
        self._check_domain()
        if obj.context is not self:
            raise ValueError(f"{obj!r} belongs to another context")
        oid = obj.object_id
        if oid in self._deleted or oid not in self._objects:
            return

        for child_entity, child_field in obj.CASCADE:
            child_spec = QuerySpec.build(entity_class(child_entity), where={child_field: obj.id})
            for child in self.fetch(child_spec):
                self.delete(child)

        if oid in self._inserted:
            # Never persisted: forget it entirely.
            del self._inserted[oid]
            self._retire(oid)
        else:
            # Edits stay in _changed so rollback() can revert them.
            self._deleted[oid] = obj
        self._note(deleted=oid)
        logger.debug("%s delete %s", self.name, oid)

    def _retire(self, oid: ObjectId) -> ManagedObject | None:
        obj = self._objects.pop(oid, None)
        self._committed.pop(oid, None)
        self._changed.pop(oid, None)
        if obj is not None:
            self._retired[oid] = obj
        return obj

    def _forget_deleted_elsewhere(self, oid: ObjectId) -> None:
        """Drop an object another context deleted, plus whatever here still references it."""
        self._inserted.pop(oid, None)
        self._deleted.pop(oid, None)
        if self._retire(oid) is not None:
            self._note(deleted=oid)

        for child_entity, child_field in entity_class(oid.entity).CASCADE:
            orphans = [
                child_oid
                for child_oid, child in self._objects.items()
                if child_oid.entity == child_entity and child._values.get(child_field) == oid.key
            ]
            for child_oid in orphans:
                logger.debug("%s drops %s with %s", self.name, child_oid, oid)
                self._forget_deleted_elsewhere(child_oid)

    def _require_live(self, object_id: ObjectId) -> None:
        try:
            self.object_with_id(object_id)
        except ObjectNotFoundError:
            raise ValueError(f"{object_id} does not exist or is deleted") from None

    def _record_change(self, obj: ManagedObject, name: str, value: Any) -> None:
        self._check_domain()
        oid = obj.object_id
        if oid in self._deleted:
            raise ValueError(f"{oid} is deleted")
        if value is None and name in obj.REQUIRED:
            raise ValueError(f"{obj.ENTITY}.{name} is required")
        if value is not None and name in obj.REFERENCES:
            self._require_live(ObjectId(obj.REFERENCES[name], value))
        if obj._values.get(name) == value:
            return

        obj._values[name] = value
        if oid not in self._inserted:
            self._changed.setdefault(oid, set()).add(name)
        self._note(updated=oid, key=name)

    def rollback(self) -> None:
        """Discard every pending change; objects go back to their last persisted values."""
        self._check_domain()
        for oid in list(self._inserted):
            self._retire(oid)
            self._note(deleted=oid)
        for oid, keys in self._changed.items():
            obj = self._objects.get(oid)
            base = self._committed.get(oid, {})
            if obj is None:
                continue
            for k in keys:
                obj._values[k] = base.get(k)
                self._note(updated=oid, key=k)
        for oid, obj in self._deleted.items():
            # Merges may have moved the baseline while the object was deleted here.
            for k, v in self._committed.get(oid, {}).items():
                obj._values[k] = v
            self._note(inserted=oid)

        self._inserted.clear()
        self._changed.clear()
        self._deleted.clear()
        self.process_pending_changes()

    # ---- save ----

    def save(self) -> SavedChanges | None:
        """
        Write pending changes in one transaction.

        Raises CommitError if the backend refuses them; nothing is cleared in
        that case, so the in-memory state stays as the user left it and a later
        save can retry. Returns None when there was nothing to save.
        """
        self._check_domain()
        self.process_pending_changes()
        if not self.has_changes:
            return None

        try:
            saved = self._commit()
        except sqlite3.Error as e:
            raise CommitError(f"{self.name} context failed to save: {e}") from e

        logger.debug(
            "%s saved inserted=%d updated=%d deleted=%d",
            self.name,
            len(saved.inserted),
            len(saved.updated),
            len(saved.deleted),
        )
        self.did_save.publish(saved)
        # Values adopted from the store under STORE_TRUMP.
        self.process_pending_changes()
        return saved

    def _commit(self) -> SavedChanges:
        inserted = [self._objects[oid] for oid in self._inserted]
        updated = {
            oid: set(keys) for oid, keys in self._changed.items() if keys and oid not in self._deleted
        }
        deleted = list(self._deleted)

        written: dict[ObjectId, dict[str, Any]] = {}
        adopted: dict[ObjectId, dict[str, Any]] = {}

        with self._backend.transaction() as conn:
            for obj in inserted:
                self._backend.insert_row(conn, obj.ENTITY, obj.id, obj.values())

            for oid, keys in updated.items():
                obj = self._objects[oid]
                current = self._backend.read_row(conn, oid.entity, oid.key)
                if current is None:
                    logger.debug("%s update dropped, %s no longer exists", self.name, oid)
                    continue
                base = self._committed.get(oid, {})
                to_write: dict[str, Any] = {}
                for k in sorted(keys):
                    conflict = current.get(k) != base.get(k)
                    if conflict and self.merge_policy is MergePolicy.STORE_TRUMP:
                        adopted.setdefault(oid, {})[k] = current.get(k)
                        continue
                    to_write[k] = obj.value(k)
                if to_write:
                    self._backend.update_row(conn, oid.entity, oid.key, to_write)
                    written[oid] = to_write

            for oid in deleted:
                self._backend.delete_row(conn, oid.entity, oid.key)

        # Committed: fold pending state into the persisted baseline.
        for obj in inserted:
            self._committed[obj.object_id] = obj.values()
        for oid, vals in written.items():
            self._committed.setdefault(oid, {}).update(vals)
        for oid, vals in adopted.items():
            obj = self._objects[oid]
            obj._values.update(vals)
            self._committed.setdefault(oid, {}).update(vals)
            for k in vals:
                self._note(updated=oid, key=k)
        for oid in deleted:
            self._objects.pop(oid, None)
            self._committed.pop(oid, None)

        self._inserted.clear()
        self._changed.clear()
        self._deleted.clear()

        return SavedChanges(
            context_name=self.name,
            inserted={obj.object_id: obj.values() for obj in inserted},
            updated=written,
            deleted=frozenset(deleted),
        )

    # ---- merge ----

    def merge_changes(self, saved: SavedChanges) -> None:
        """
        Apply another context's save to this one, property by property.

        A property with a pending edit here is resolved by merge_policy; all
        other properties take the value now persisted (which may be newer than
        the one in `saved`).
        """
        self._check_domain()

        for oid in saved.deleted:
            self._forget_deleted_elsewhere(oid)

        for oid, values in saved.updated.items():
            obj = self._objects.get(oid)
            if obj is None:
                continue
            # A later save may already have overwritten what this one wrote.
            row = self._backend.fetch_row(oid.entity, oid.key)
            if row is None:
                continue
            pending = self._changed.get(oid, set())
            committed = self._committed.setdefault(oid, {})
            for k in values:
                v = row.get(k)
                committed[k] = v
                if oid in self._deleted:
                    # Only the rollback baseline moves.
                    continue
                if k in pending:
                    if self.merge_policy is MergePolicy.OBJECT_TRUMP:
                        continue
                    pending.discard(k)
                if obj._values.get(k) != v:
                    obj._values[k] = v
                    self._note(updated=oid, key=k)

        for oid in saved.inserted:
            if oid not in self._objects:
                # Materialized on the next fetch; listeners only need to know it exists.
                self._note(inserted=oid)

        self.process_pending_changes()

    # ---- notifications ----

    def _note(
        self,
        *,
        inserted: ObjectId | None = None,
        deleted: ObjectId | None = None,
        updated: ObjectId | None = None,
        key: str | None = None,
    ) -> None:
        if inserted is not None:
            self._note_inserted.add(inserted)
        if deleted is not None:
            self._note_deleted.add(deleted)
        if updated is not None and key is not None:
            self._note_updated.setdefault(updated, set()).add(key)

        if not self._flush_scheduled:
            self._flush_scheduled = True
            self._domain.call_soon(self.process_pending_changes)

    def process_pending_changes(self) -> ContextChange | None:
        """Publish the coalesced ContextChange now (if any). Called automatically each domain turn."""
        self._check_domain()
        self._flush_scheduled = False
        self._retired.clear()

        inserted = set(self._note_inserted)
        deleted = set(self._note_deleted)
        updated = {oid: set(keys) for oid, keys in self._note_updated.items()}
        self._note_inserted.clear()
        self._note_deleted.clear()
        self._note_updated.clear()

        # Inserted and deleted before anyone heard of it: it never existed.
        transient = inserted & deleted
        inserted -= transient
        deleted -= transient
        for oid in (*transient, *inserted, *deleted):
            updated.pop(oid, None)

        change = ContextChange(
            inserted=frozenset(inserted),
            updated={oid: frozenset(keys) for oid, keys in updated.items() if keys},
            deleted=frozenset(deleted),
        )
        if change.is_empty:
            return None
        self.objects_did_change.publish(change)
        return change
