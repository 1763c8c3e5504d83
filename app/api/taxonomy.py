"""Reference-data endpoints under /api/users: assets, organizations, roles.

Reads are public (registration forms load them before sign-in); writes
are admin-only. Every table gets the standard CRUD routes from
``register_crud``; the parent filters are declared by hand below, before
the generic ``/{row_id}`` routes.
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter

from app.api.crud_routes import register_crud
from app.api.dependencies import DbSession
from app.api.schemas import CamelModel, Envelope, NonEmptyStr, dump, ok
from app.db.tables import (
    AssetRow,
    OrganizationRow,
    RoleCategoryRow,
    RoleRow,
    SeniorityLevelRow,
    SubAssetRow,
    SubOrganizationRow,
)
from app.services import taxonomy_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["taxonomy"])


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class NamedIn(CamelModel):
    name: NonEmptyStr


class NamedUpdate(CamelModel):
    name: NonEmptyStr | None = None


class NamedOut(CamelModel):
    id: int
    name: str
    created_at: datetime | None = None


class SubAssetIn(NamedIn):
    asset_id: int


class SubAssetUpdate(NamedUpdate):
    asset_id: int | None = None


class SubAssetOut(NamedOut):
    asset_id: int


class OrganizationIn(NamedIn):
    asset_id: int
    sub_asset_id: int


class OrganizationUpdate(NamedUpdate):
    asset_id: int | None = None
    sub_asset_id: int | None = None


class OrganizationOut(NamedOut):
    asset_id: int | None
    sub_asset_id: int | None


class SubOrganizationIn(NamedIn):
    asset_id: int
    sub_asset_id: int
    organization_id: int


class SubOrganizationUpdate(NamedUpdate):
    asset_id: int | None = None
    sub_asset_id: int | None = None
    organization_id: int | None = None


class SubOrganizationOut(NamedOut):
    asset_id: int
    sub_asset_id: int
    organization_id: int


class RoleIn(NamedIn):
    category_id: int


class RoleUpdate(NamedUpdate):
    category_id: int | None = None


class RoleOut(NamedOut):
    category_id: int


# ---------------------------------------------------------------------------
# Parent filters (declared before the generic /{row_id} routes)
# ---------------------------------------------------------------------------


@router.get(
    "/sub-assets/by-asset/{asset_id}", response_model=Envelope[list[SubAssetOut]]
)
async def sub_assets_by_asset(asset_id: int, session: DbSession) -> dict:
    rows = await taxonomy_service.sub_assets_by_asset(session, asset_id)
    return ok("Sub-assets retrieved successfully", dump(SubAssetOut, rows))


@router.get(
    "/organizations/by-asset/{asset_id}/{sub_asset_id}",
    response_model=Envelope[list[OrganizationOut]],
)
async def organizations_by_asset(
    asset_id: int, sub_asset_id: int, session: DbSession
) -> dict:
    rows = await taxonomy_service.organizations_by_asset(session, asset_id, sub_asset_id)
    return ok("Organizations retrieved successfully", dump(OrganizationOut, rows))


@router.get(
    "/sub-organizations/by-organization/{organization_id}",
    response_model=Envelope[list[SubOrganizationOut]],
)
async def sub_organizations_by_organization(
    organization_id: int, session: DbSession
) -> dict:
    rows = await taxonomy_service.sub_organizations_by_organization(
        session, organization_id
    )
    return ok("Sub-organizations retrieved successfully", dump(SubOrganizationOut, rows))


@router.get("/roles/by-category/{category_id}", response_model=Envelope[list[RoleOut]])
async def roles_by_category(category_id: int, session: DbSession) -> dict:
    rows = await taxonomy_service.roles_by_category(session, category_id)
    return ok("Roles retrieved successfully", dump(RoleOut, rows))


register_crud(
    router, taxonomy_service, "assets", AssetRow, NamedIn, NamedUpdate, NamedOut, "Assets"
)
register_crud(
    router,
    taxonomy_service,
    "sub-assets",
    SubAssetRow,
    SubAssetIn,
    SubAssetUpdate,
    SubAssetOut,
    "Sub-assets",
)
register_crud(
    router,
    taxonomy_service,
    "organizations",
    OrganizationRow,
    OrganizationIn,
    OrganizationUpdate,
    OrganizationOut,
    "Organizations",
)
register_crud(
    router,
    taxonomy_service,
    "sub-organizations",
    SubOrganizationRow,
    SubOrganizationIn,
    SubOrganizationUpdate,
    SubOrganizationOut,
    "Sub-organizations",
)
register_crud(
    router,
    taxonomy_service,
    "role-categories",
    RoleCategoryRow,
    NamedIn,
    NamedUpdate,
    NamedOut,
    "Role categories",
)
register_crud(
    router, taxonomy_service, "roles", RoleRow, RoleIn, RoleUpdate, RoleOut, "Roles"
)
register_crud(
    router,
    taxonomy_service,
    "seniority-levels",
    SeniorityLevelRow,
    NamedIn,
    NamedUpdate,
    NamedOut,
    "Seniority levels",
)
