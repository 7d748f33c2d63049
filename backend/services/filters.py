"""Closed, tagged filters for list queries.

A filter is a tuple of clauses, each one of three known operators:

- `Contains`: case-insensitive substring match on a text field
- `Equals`: exact match (enum fields, ids)
- `AnyOf`: a free-text group whose clauses are OR-ed together

Top-level clauses are AND-ed.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union
from uuid import UUID

from pydantic import BaseModel, field_validator
from sqlalchemy import and_, or_
from sqlalchemy.sql.elements import ColumnElement

from db.order import Order, OrderStatus
from db.record import Record, RecordCategory, RecordFormat, normalize_key


@dataclass(frozen=True)
class Contains:
    field: str
    value: str


@dataclass(frozen=True)
class Equals:
    field: str
    value: Any


@dataclass(frozen=True)
class AnyOf:
    clauses: Tuple["Clause", ...]


Clause = Union[Contains, Equals, AnyOf]


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _compile_clause(model, clause: Clause) -> ColumnElement:
    if isinstance(clause, Contains):
        column = getattr(model, clause.field)
        return column.ilike(f"%{_escape_like(clause.value)}%", escape="\\")
    if isinstance(clause, Equals):
        return getattr(model, clause.field) == clause.value
    if isinstance(clause, AnyOf):
        return or_(*(_compile_clause(model, c) for c in clause.clauses))
    raise TypeError(f"unknown filter clause: {clause!r}")


def compile_clauses(model, clauses: Tuple[Clause, ...]) -> Optional[ColumnElement]:
    """Build a WHERE expression for `model`, or None when there is nothing to filter on."""
    if not clauses:
        return None
    return and_(*(_compile_clause(model, c) for c in clauses))


def _blank_to_none(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


class RecordFilter(BaseModel):
    q: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    format: Optional[RecordFormat] = None
    category: Optional[RecordCategory] = None

    @field_validator("q", "artist", "album")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)

    def clauses(self) -> Tuple[Clause, ...]:
        out = []
        # Names match on their casefolded keys; SQLite only folds ASCII case itself
        if self.q:
            out.append(AnyOf((
                Contains("artist_key", normalize_key(self.q)),
                Contains("album_key", normalize_key(self.q)),
                Contains("category", self.q),
            )))
        if self.artist:
            out.append(Contains("artist_key", normalize_key(self.artist)))
        if self.album:
            out.append(Contains("album_key", normalize_key(self.album)))
        if self.format:
            out.append(Equals("format", self.format.value))
        if self.category:
            out.append(Equals("category", self.category.value))
        return tuple(out)

    def where(self) -> Optional[ColumnElement]:
        return compile_clauses(Record, self.clauses())

    def cache_params(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class OrderFilter(BaseModel):
    status: Optional[OrderStatus] = None
    record_id: Optional[UUID] = None

    def clauses(self) -> Tuple[Clause, ...]:
        out = []
        if self.status:
            out.append(Equals("status", self.status.value))
        if self.record_id:
            out.append(Equals("record_id", self.record_id))
        return tuple(out)

    def where(self) -> Optional[ColumnElement]:
        return compile_clauses(Order, self.clauses())

    def cache_params(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
