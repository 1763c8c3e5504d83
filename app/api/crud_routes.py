"""Route factory for the plain CRUD tables.

Taxonomy and training tables all expose the same five routes:

    POST   /{path}            admin, 201
    GET    /{path}            public, paginated
    GET    /{path}/{row_id}   public
    PUT    /{path}/{row_id}   admin, partial update
    DELETE /{path}/{row_id}   admin

The service module passed in provides ``create``, ``list_all``,
``require``, ``update`` and ``delete`` with the signatures used by
app.services.taxonomy_service and app.services.training_service.

Annotations stay runtime objects in this module because the endpoint
functions close over the models passed to the factory.
"""

import logging
from types import ModuleType
from typing import Annotated, Any

from fastapi import APIRouter, Depends, status

from app.api.dependencies import AdminUser, DbSession
from app.api.schemas import (
    CamelModel,
    Envelope,
    Message,
    PagedEnvelope,
    Pagination,
    dump,
    ok,
    paged,
    pagination,
)
from app.db.engine import Base

logger = logging.getLogger(__name__)


def partial_changes(row_type: type[Base], payload: CamelModel) -> dict[str, Any]:
    """Fields the client sent, minus nulls aimed at NOT NULL columns."""
    columns = row_type.__table__.columns  # type: ignore[attr-defined]
    return {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or (key in columns and columns[key].nullable)
    }


def register_crud(
    router: APIRouter,
    service: ModuleType,
    path: str,
    row_type: type[Base],
    create_model: type[CamelModel],
    update_model: type[CamelModel],
    out_model: type[CamelModel],
    plural: str,
) -> None:
    label = service.LABELS[row_type]
    name = path.replace("-", "_")

    async def create_row(
        payload: create_model,  # type: ignore[valid-type]
        session: DbSession,
        _admin: AdminUser,
    ) -> dict:
        row = await service.create(session, row_type, payload.model_dump())
        return ok(f"{label} created successfully", dump(out_model, row))

    async def list_rows(
        session: DbSession, page: Annotated[Pagination, Depends(pagination)]
    ) -> dict:
        rows = await service.list_all(
            session, row_type, limit=page.limit, offset=page.offset
        )
        return paged(f"{plural} retrieved successfully", dump(out_model, rows), page)

    async def get_row(row_id: int, session: DbSession) -> dict:
        row = await service.require(session, row_type, row_id)
        return ok(f"{label} retrieved successfully", dump(out_model, row))

    async def update_row(
        row_id: int,
        payload: update_model,  # type: ignore[valid-type]
        session: DbSession,
        _admin: AdminUser,
    ) -> dict:
        changes = partial_changes(row_type, payload)
        row = await service.update(session, row_type, row_id, changes)
        return ok(f"{label} updated successfully", dump(out_model, row))

    async def delete_row(row_id: int, session: DbSession, _admin: AdminUser) -> dict:
        await service.delete(session, row_type, row_id)
        return {"success": True, "message": f"{label} deleted successfully"}

    router.add_api_route(
        f"/{path}",
        create_row,
        methods=["POST"],
        status_code=status.HTTP_201_CREATED,
        response_model=Envelope[out_model],
        name=f"create_{name}",
    )
    router.add_api_route(
        f"/{path}",
        list_rows,
        methods=["GET"],
        response_model=PagedEnvelope[list[out_model]],
        name=f"list_{name}",
    )
    router.add_api_route(
        f"/{path}/{{row_id}}",
        get_row,
        methods=["GET"],
        response_model=Envelope[out_model],
        name=f"get_{name}",
    )
    router.add_api_route(
        f"/{path}/{{row_id}}",
        update_row,
        methods=["PUT"],
        response_model=Envelope[out_model],
        name=f"update_{name}",
    )
    router.add_api_route(
        f"/{path}/{{row_id}}",
        delete_row,
        methods=["DELETE"],
        response_model=Message,
        name=f"delete_{name}",
    )
