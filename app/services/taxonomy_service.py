"""Organizational reference data: assets, organizations, roles, seniority.

These tables feed the registration forms and the unit role assignments.
Names are unique where the business treats them as identifiers (assets,
organizations, role categories, seniority levels); child rows are unique
only within their parent and are not checked.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import BadRequestError, ConflictError, NotFoundError
from app.db.engine import Base
from app.db.tables import (
    AssetRow,
    OrganizationRow,
    RoleCategoryRow,
    RoleRow,
    SeniorityLevelRow,
    SubAssetRow,
    SubOrganizationRow,
)
from app.repos.crud import CrudRepo
from app.services.cache import reports_changed

logger = logging.getLogger(__name__)

# Human-readable labels used in error messages.
LABELS: dict[type[Base], str] = {
    AssetRow: "Asset",
    SubAssetRow: "Sub-asset",
    OrganizationRow: "Organization",
    SubOrganizationRow: "Sub-organization",
    RoleCategoryRow: "Role category",
    RoleRow: "Role",
    SeniorityLevelRow: "Seniority level",
}

_UNIQUE_NAME = (AssetRow, OrganizationRow, RoleCategoryRow, SeniorityLevelRow)


async def require(session: AsyncSession, row_type: type[Base], row_id: int) -> Any:
    row = await CrudRepo(session, row_type).get(row_id)
    if row is None:
        raise NotFoundError(f"{LABELS[row_type]} not found")
    return row


async def _check_name(
    session: AsyncSession,
    row_type: type[Base],
    name: str,
    exclude_id: int | None = None,
) -> None:
    if row_type not in _UNIQUE_NAME:
        return
    where = [row_type.name == name]  # type: ignore[attr-defined]
    if exclude_id is not None:
        where.append(row_type.id != exclude_id)  # type: ignore[attr-defined]
    if await CrudRepo(session, row_type).exists(*where):
        raise ConflictError(f"{LABELS[row_type]} name already exists")


async def _check_sub_asset(
    session: AsyncSession, asset_id: int, sub_asset_id: int
) -> None:
    await require(session, AssetRow, asset_id)
    sub_asset = await require(session, SubAssetRow, sub_asset_id)
    if sub_asset.asset_id != asset_id:
        raise BadRequestError("Sub-asset does not belong to the specified asset")


async def _check_parents(
    session: AsyncSession, row_type: type[Base], values: dict[str, Any]
) -> None:
    """Validate the parent references present in *values*."""
    if row_type is SubAssetRow and "asset_id" in values:
        await require(session, AssetRow, values["asset_id"])
    elif row_type is RoleRow and "category_id" in values:
        await require(session, RoleCategoryRow, values["category_id"])
    elif row_type in (OrganizationRow, SubOrganizationRow):
        if values.get("asset_id") is not None and values.get("sub_asset_id") is not None:
            await _check_sub_asset(session, values["asset_id"], values["sub_asset_id"])
        elif values.get("asset_id") is not None:
            await require(session, AssetRow, values["asset_id"])
        elif values.get("sub_asset_id") is not None:
            await require(session, SubAssetRow, values["sub_asset_id"])
        if values.get("organization_id") is not None:
            await require(session, OrganizationRow, values["organization_id"])


# ---------------------------------------------------------------------------
# Generic operations
# ---------------------------------------------------------------------------


async def create(
    session: AsyncSession, row_type: type[Base], values: dict[str, Any]
) -> Any:
    values["name"] = values["name"].strip()
    await _check_parents(session, row_type, values)
    await _check_name(session, row_type, values["name"])
    row = await CrudRepo(session, row_type).add(**values)
    reports_changed(session)
    logger.info("Created %s id=%d", LABELS[row_type].lower(), row.id)
    return row


async def list_all(
    session: AsyncSession,
    row_type: type[Base],
    *where: Any,
    limit: int | None = None,
    offset: int = 0,
) -> list[Any]:
    return await CrudRepo(session, row_type).find_all(
        *where, limit=limit, offset=offset
    )


async def update(
    session: AsyncSession, row_type: type[Base], row_id: int, changes: dict[str, Any]
) -> Any:
    row = await require(session, row_type, row_id)
    if changes.get("name") is not None:
        changes["name"] = changes["name"].strip()
        await _check_name(session, row_type, changes["name"], exclude_id=row_id)

    # Validate the merged parent set so a lone subAssetId is checked
    # against the row's current asset.
    if row_type in (OrganizationRow, SubOrganizationRow) and (
        "asset_id" in changes or "sub_asset_id" in changes
    ):
        merged = {
            "asset_id": changes.get("asset_id", row.asset_id),
            "sub_asset_id": changes.get("sub_asset_id", row.sub_asset_id),
        }
        await _check_parents(session, row_type, merged)
        if "organization_id" in changes:
            await _check_parents(
                session, row_type, {"organization_id": changes["organization_id"]}
            )
    else:
        await _check_parents(session, row_type, changes)

    row = await CrudRepo(session, row_type).update(row, changes)
    reports_changed(session)
    return row


async def delete(session: AsyncSession, row_type: type[Base], row_id: int) -> None:
    await require(session, row_type, row_id)
    await CrudRepo(session, row_type).delete_by_id(row_id)
    reports_changed(session)
    logger.info("Deleted %s id=%d", LABELS[row_type].lower(), row_id)


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


async def sub_assets_by_asset(session: AsyncSession, asset_id: int) -> list[SubAssetRow]:
    await require(session, AssetRow, asset_id)
    return await CrudRepo(session, SubAssetRow).find_all(SubAssetRow.asset_id == asset_id)


async def organizations_by_asset(
    session: AsyncSession, asset_id: int, sub_asset_id: int
) -> list[OrganizationRow]:
    return await CrudRepo(session, OrganizationRow).find_all(
        OrganizationRow.asset_id == asset_id,
        OrganizationRow.sub_asset_id == sub_asset_id,
        order_by=[OrganizationRow.name],
    )


async def sub_organizations_by_organization(
    session: AsyncSession, organization_id: int
) -> list[SubOrganizationRow]:
    await require(session, OrganizationRow, organization_id)
    return await CrudRepo(session, SubOrganizationRow).find_all(
        SubOrganizationRow.organization_id == organization_id,
        order_by=[SubOrganizationRow.name],
    )


async def roles_by_category(session: AsyncSession, category_id: int) -> list[RoleRow]:
    await require(session, RoleCategoryRow, category_id)
    return await CrudRepo(session, RoleRow).find_all(RoleRow.category_id == category_id)
