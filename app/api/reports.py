"""Dashboard reports, readable by admins and sub-admins."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter

from app.api.dependencies import DbSession, StaffUser
from app.api.schemas import Envelope, ok
from app.services import report_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reports", tags=["reports"])

Report = Envelope[dict[str, Any]]


@router.get("/overall-analytics", response_model=Report)
async def overall_analytics(session: DbSession, _staff: StaffUser) -> dict:
    data = await report_service.overall_analytics(session)
    return ok("Overall analytics retrieved successfully", data)


@router.get("/training-area/{training_area_id}", response_model=Report)
async def training_area_report(
    training_area_id: int, session: DbSession, _staff: StaffUser
) -> dict:
    data = await report_service.training_area_report(session, training_area_id)
    return ok("Training area report retrieved successfully", data)


@router.get("/certificates", response_model=Report)
async def certificate_report(session: DbSession, _staff: StaffUser) -> dict:
    data = await report_service.certificate_report(session)
    return ok("Certificate report retrieved successfully", data)


@router.get("/users", response_model=Report)
async def users_report(session: DbSession, _staff: StaffUser) -> dict:
    data = await report_service.users_report(session)
    return ok("Users report retrieved successfully", data)


@router.get("/organizations", response_model=Report)
async def organizations_report(session: DbSession, _staff: StaffUser) -> dict:
    data = await report_service.organizations_report(session)
    return ok("Organizations report retrieved successfully", data)


@router.get("/sub-organizations", response_model=Report)
async def sub_organizations_report(session: DbSession, _staff: StaffUser) -> dict:
    data = await report_service.sub_organizations_report(session)
    return ok("Sub-organizations report retrieved successfully", data)


@router.get("/sub-admins", response_model=Report)
async def sub_admins_report(session: DbSession, _staff: StaffUser) -> dict:
    data = await report_service.sub_admins_report(session)
    return ok("Sub-admins report retrieved successfully", data)


@router.get("/frontliners", response_model=Report)
async def frontliners_report(session: DbSession, _staff: StaffUser) -> dict:
    data = await report_service.frontliners_report(session)
    return ok("Frontliners report retrieved successfully", data)


@router.get("/dashboard-stats", response_model=Report)
async def dashboard_stats(session: DbSession, _staff: StaffUser) -> dict:
    data = await report_service.dashboard_stats(session)
    return ok("Dashboard stats retrieved successfully", data)
