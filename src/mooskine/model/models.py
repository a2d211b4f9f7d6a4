# src/mooskine/model/models.py

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from .query import QuerySpec, SortKey

if TYPE_CHECKING:
    from ..store.context import ExecutionContext

_clock_lock = threading.Lock()
_last_ts = 0.0


def creation_timestamp() -> float:
    """
    Wall-clock timestamp that never repeats within the process.

    Two inserts in the same clock tick still get distinct, ordered values, so
    "order by created_at" is a total order.
    """
    global _last_ts
    with _clock_lock:
        now = time.time()
        if now <= _last_ts:
            now = _last_ts + 1e-6
        _last_ts = now
        return now


def new_key() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class ObjectId:
    """Identity of a managed object, stable across contexts and safe to pass between domains."""

    entity: str
    key: str

    def __str__(self) -> str:
        return f"{self.entity}/{self.key}"


class Field:
    """Persisted attribute. Reads come from the object's values, writes go through its context."""

    def __init__(self, *, immutable: bool = False) -> None:
        self.immutable = immutable
        self.name = ""

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, obj: ManagedObject | None, owner: type | None = None) -> Any:
        if obj is None:
            return self
        return obj._values.get(self.name)

    def __set__(self, obj: ManagedObject, value: Any) -> None:
        if self.immutable and obj._values.get(self.name) is not None:
            raise AttributeError(f"{type(obj).__name__}.{self.name} is assigned once and cannot change")
        obj._set_value(self.name, value)


class ManagedObject:
    """
    Base class for persisted entities.

    An instance belongs to exactly one ExecutionContext. Attribute writes are
    recorded by that context as pending, per-property changes.
    """

    ENTITY: ClassVar[str] = ""
    FIELDS: ClassVar[tuple[str, ...]] = ()
    DEFAULTS: ClassVar[dict[str, Any]] = {}
    REQUIRED: ClassVar[tuple[str, ...]] = ()
    # field -> entity it points at
    REFERENCES: ClassVar[dict[str, str]] = {}
    # (child entity, child field) deleted together with this object
    CASCADE: ClassVar[tuple[tuple[str, str], ...]] = ()

    __slots__ = ("object_id", "_values", "_context")

    def __init__(self, object_id: ObjectId, values: dict[str, Any], context: ExecutionContext | None) -> None:
        self.object_id = object_id
        self._values = {f: values.get(f) for f in self.FIELDS}
        self._context = context

    @property
    def id(self) -> str:
        return self.object_id.key

    @property
    def context(self) -> ExecutionContext | None:
        return self._context

    def value(self, name: str) -> Any:
        if name == "id":
            return self.object_id.key
        if name not in self.FIELDS:
            raise AttributeError(f"{self.ENTITY} has no field {name!r}")
        return self._values.get(name)

    def values(self) -> dict[str, Any]:
        return dict(self._values)

    def _set_value(self, name: str, value: Any) -> None:
        if self._context is None:
            self._values[name] = value
            return
        self._context._record_change(self, name, value)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.object_id.key[:8]}>"


class Notebook(ManagedObject):
    ENTITY = "Notebook"
    FIELDS = ("name", "created_at")
    DEFAULTS = {"name": ""}
    CASCADE = (("Note", "notebook_id"),)

    __slots__ = ()

    name = Field()
    created_at = Field(immutable=True)

    @property
    def notes(self) -> list[Note]:
        """Notes owned by this notebook, oldest first (as seen by the owning context)."""
        if self._context is None:
            return []
        spec = QuerySpec.build(Note, where={"notebook_id": self.id}, order_by=[SortKey("created_at")])
        return self._context.fetch(spec)

    def __repr__(self) -> str:
        return f"<Notebook {self.object_id.key[:8]} name={self.name!r}>"


class Note(ManagedObject):
    ENTITY = "Note"
    FIELDS = ("notebook_id", "text", "content", "created_at")
    DEFAULTS = {"text": "New Note", "content": None}
    REQUIRED = ("notebook_id",)
    REFERENCES = {"notebook_id": "Notebook"}

    __slots__ = ()

    notebook_id = Field()
    text = Field()
    # Styled text, serialized by the editor. Opaque here.
    content = Field()
    created_at = Field(immutable=True)

    @property
    def notebook(self) -> Notebook:
        if self._context is None:
            raise RuntimeError("Note is not attached to a context")
        return self._context.object_with_id(ObjectId(Notebook.ENTITY, self.notebook_id))

    def __repr__(self) -> str:
        return f"<Note {self.object_id.key[:8]} text={self.text!r}>"


ENTITIES: dict[str, type[ManagedObject]] = {
    Notebook.ENTITY: Notebook,
    Note.ENTITY: Note,
}


def entity_class(name: str) -> type[ManagedObject]:
    try:
        return ENTITIES[name]
    except KeyError:
        raise ValueError(f"Unknown entity: {name}") from None
