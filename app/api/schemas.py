"""Shared request/response building blocks.

Wire format is camelCase (``firstName``, ``trainingAreaId``); request
bodies also accept the snake_case field names.
"""

from __future__ import annotations

from typing import Annotated, Any, Generic, TypeVar

from fastapi import Query
from pydantic import BaseModel, ConfigDict, StringConstraints
from pydantic.alias_generators import to_camel

T = TypeVar("T")

# Trimmed, non-empty text; "  " is rejected like "".
NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Envelope(CamelModel, Generic[T]):
    success: bool = True
    message: str
    data: T | None = None


class PageMeta(CamelModel):
    limit: int | None
    offset: int
    count: int


class PagedEnvelope(Envelope[T], Generic[T]):
    meta: PageMeta


class Message(CamelModel):
    success: bool = True
    message: str


class Pagination(BaseModel):
    limit: int | None = None
    offset: int = 0


def pagination(
    limit: Annotated[int | None, Query(ge=1, le=100)] = None,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> Pagination:
    """Dependency: optional limit (1..100) and offset (>= 0) query params."""
    return Pagination(limit=limit, offset=offset)


def ok(message: str, data: Any = None) -> dict[str, Any]:
    return {"success": True, "message": message, "data": data}


def paged(message: str, data: list[Any], page: Pagination) -> dict[str, Any]:
    return {
        "success": True,
        "message": message,
        "data": data,
        "meta": {"limit": page.limit, "offset": page.offset, "count": len(data)},
    }


def dump(model: type[CamelModel], rows: Any) -> Any:
    """Validate ORM rows (or a single row) into response models."""
    if rows is None:
        return None
    if isinstance(rows, list):
        return [model.model_validate(r) for r in rows]
    return model.model_validate(rows)
