# src/mooskine/model/query.py

from __future__ import annotations

"""
Query specifications.

A QuerySpec is the SELECT of the store:
- where     -> equality filters (WHERE field = value AND ...)
- order_by  -> ORDER BY, ties broken by id so results are a total order
- section_key -> optional grouping for sectioned lists

Specs are frozen: a LiveQuery built from one keeps it for its whole life.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..errors import InvalidQueryError

if TYPE_CHECKING:
    from .models import ManagedObject


@dataclass(frozen=True, slots=True)
class SortKey:
    field: str
    ascending: bool = True

    @classmethod
    def parse(cls, raw: SortKey | str) -> SortKey:
        """Accept SortKey or a string; a leading '-' means descending."""
        if isinstance(raw, SortKey):
            return raw
        name = raw.strip()
        if name.startswith("-"):
            return cls(name[1:], ascending=False)
        return cls(name)


def _sortable(value: Any) -> tuple[bool, Any]:
    # None sorts after every real value (ascending).
    return (value is None, value if value is not None else 0)


@dataclass(frozen=True, slots=True)
class QuerySpec:
    entity: type[ManagedObject]
    where: tuple[tuple[str, Any], ...] = ()
    order_by: tuple[SortKey, ...] = ()
    section_key: str | None = None

    @classmethod
    def build(
        cls,
        entity: type[ManagedObject],
        *,
        where: Mapping[str, Any] | None = None,
        order_by: Iterable[SortKey | str] = (),
        section_key: str | None = None,
    ) -> QuerySpec:
        return cls(
            entity=entity,
            where=tuple((where or {}).items()),
            order_by=tuple(SortKey.parse(k) for k in order_by),
            section_key=section_key,
        )

    @property
    def entity_name(self) -> str:
        return self.entity.ENTITY

    def validate(self) -> None:
        known = {"id", *self.entity.FIELDS}
        names = [f for f, _ in self.where] + [k.field for k in self.order_by]
        if self.section_key is not None:
            names.append(self.section_key)
        unknown = sorted({n for n in names if n not in known})
        if unknown:
            raise InvalidQueryError(f"{self.entity_name} has no field(s): {', '.join(unknown)}")
        # Sections are contiguous runs of the first sort key, so they can only appear/disappear.
        if self.section_key is not None and (not self.order_by or self.order_by[0].field != self.section_key):
            raise InvalidQueryError(f"section_key {self.section_key!r} must be the first order_by field")

    def matches(self, obj: ManagedObject) -> bool:
        return all(obj.value(f) == v for f, v in self.where)

    def sort(self, objects: Iterable[ManagedObject]) -> list[ManagedObject]:
        ordered = sorted(objects, key=lambda o: o.id)
        # Stable sorts applied from the least significant key up.
        for key in reversed(self.order_by):
            ordered.sort(key=lambda o, f=key.field: _sortable(o.value(f)), reverse=not key.ascending)
        return ordered

    def section_name(self, obj: ManagedObject) -> str:
        if self.section_key is None:
            return ""
        value = obj.value(self.section_key)
        return "" if value is None else str(value)
