"""Fixed-shape report payloads for the admin and sub-admin dashboards.

Each public function returns plain JSON-ready data (ISO strings for
timestamps) and goes through the read-through report cache. Rows are
fetched with portable queries; period bucketing (``YYYY-MM``), weekday
grouping and cumulative sums happen here in Python so the same code runs
on PostgreSQL and SQLite. Admin accounts never appear in any report.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from collections.abc import Iterable
from datetime import datetime, timedelta
from itertools import accumulate
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError
from app.core.timeutil import as_utc, utcnow
from app.db.tables import (
    AssessmentAttemptRow,
    AssessmentRow,
    AssetRow,
    CertificateRow,
    CourseRow,
    ModuleRow,
    NormalUserRow,
    OrganizationRow,
    SubAdminRow,
    SubAssetRow,
    SubOrganizationRow,
    TrainingAreaRow,
    UserCourseProgressRow,
    UserRow,
    UserTrainingAreaProgressRow,
)
from app.models.progress import COMPLETED
from app.services.cache import REPORTS_PREFIX, cached_json

logger = logging.getLogger(__name__)

ACTIVE_WINDOW = timedelta(days=30)
# Organizations and sub-admins count as active on a shorter window.
ORG_ACTIVE_WINDOW = timedelta(days=15)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _iso(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value is not None else None


def _period(value: datetime | None) -> str | None:
    return as_utc(value).strftime("%Y-%m") if value is not None else None


def _is_recent(value: datetime | None, window: timedelta) -> bool:
    return value is not None and as_utc(value) >= utcnow() - window


def _round(value: float) -> float:
    return round(value, 2)


def _share(part: int, whole: int) -> float:
    return _round(part * 100 / whole) if whole else 0.0


def _options(values: Iterable[Any]) -> list[dict[str, Any]]:
    """Distinct, sorted ``{value, label}`` pairs for dashboard filter widgets."""
    distinct = sorted({v for v in values if v not in (None, "")}, key=str)
    return [{"value": v, "label": v} for v in distinct]


def _sub_org_label(value: list[str] | None) -> str:
    return ", ".join(value) if value else "N/A"


def _distribution(counts: Counter, key_name: str) -> list[dict[str, Any]]:
    total = sum(counts.values())
    return [
        {key_name: key, "userCount": n, "percentage": _share(n, total)}
        for key, n in counts.most_common()
    ]


async def _count(session: AsyncSession, row_type: Any, *where: Any) -> int:
    stmt = select(func.count()).select_from(row_type).where(*where)
    return int((await session.execute(stmt)).scalar_one())


async def _non_admin_users(session: AsyncSession) -> list[UserRow]:
    result = await session.execute(
        select(UserRow)
        .where(UserRow.user_type != "admin")
        .order_by(UserRow.created_at, UserRow.id)
    )
    return list(result.scalars().all())


async def _frontliners(session: AsyncSession) -> list[tuple[UserRow, NormalUserRow]]:
    """Registered learners: users with a normal-user profile."""
    result = await session.execute(
        select(UserRow, NormalUserRow)
        .join(NormalUserRow, NormalUserRow.user_id == UserRow.id)
        .where(UserRow.user_type != "admin")
        .order_by(UserRow.created_at, UserRow.id)
    )
    return [(u, n) for u, n in result.all()]


async def _sub_admins(session: AsyncSession) -> list[tuple[UserRow, SubAdminRow]]:
    result = await session.execute(
        select(UserRow, SubAdminRow)
        .join(SubAdminRow, SubAdminRow.user_id == UserRow.id)
        .order_by(UserRow.created_at, UserRow.id)
    )
    return [(u, s) for u, s in result.all()]


async def _names(session: AsyncSession, column: Any) -> list[str]:
    return list((await session.execute(select(column))).scalars().all())


async def _common_filters(
    session: AsyncSession, frontliners: list[tuple[UserRow, NormalUserRow]]
) -> dict[str, Any]:
    return {
        "assets": _options(await _names(session, AssetRow.name)),
        "subAssets": _options(await _names(session, SubAssetRow.name)),
        "organizations": _options(await _names(session, OrganizationRow.name)),
        "subOrganizations": _options(
            _sub_org_label(u.sub_organization) for u, _ in frontliners
        ),
        "roleCategories": _options(n.role_category for _, n in frontliners),
    }


def _frontliner_row(user: UserRow, profile: NormalUserRow) -> dict[str, Any]:
    return {
        "userId": user.id,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "email": user.email,
        "eid": profile.eid,
        "phoneNumber": profile.phone_number,
        "asset": user.asset,
        "subAsset": user.sub_asset,
        "organization": user.organization,
        "subOrganization": _sub_org_label(user.sub_organization),
        "roleCategory": profile.role_category,
        "role": profile.role,
        "seniority": profile.seniority,
        "frontlinerType": "Existing" if profile.existing else "New",
        "vxPoints": user.xp,
        "registrationDate": _iso(user.created_at),
        "lastLoginDate": _iso(user.last_login),
    }


async def _area_progress(
    session: AsyncSession, training_area_id: int | None = None
) -> list[UserTrainingAreaProgressRow]:
    stmt = select(UserTrainingAreaProgressRow)
    if training_area_id is not None:
        stmt = stmt.where(UserTrainingAreaProgressRow.training_area_id == training_area_id)
    return list((await session.execute(stmt)).scalars().all())


async def _average_progress(session: AsyncSession, frontliner_count: int) -> float:
    """Sum of training-area completion over the number of learners."""
    total = sum(
        float(p.completion_percentage) for p in await _area_progress(session)
    )
    return _round(total / frontliner_count) if frontliner_count else 0.0


async def _key_metrics(session: AsyncSession) -> dict[str, Any]:
    frontliners = await _frontliners(session)
    now = utcnow()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return {
        "totalUsers": await _count(session, UserRow, UserRow.user_type != "admin"),
        "totalFrontliners": len(frontliners),
        "newFrontliners": sum(
            1 for u, _ in frontliners if as_utc(u.created_at) >= month_start
        ),
        "totalOrganizations": await _count(session, OrganizationRow),
        "totalSubOrganizations": await _count(session, SubOrganizationRow),
        "certificatesIssued": await _count(session, CertificateRow),
        "totalSubAdmins": await _count(session, UserRow, UserRow.user_type == "sub_admin"),
        "averageProgress": await _average_progress(session, len(frontliners)),
    }


# ---------------------------------------------------------------------------
# Overall analytics
# ---------------------------------------------------------------------------


def _user_growth(users: list[UserRow]) -> list[dict[str, Any]]:
    per_period = Counter(_period(u.created_at) for u in users)
    periods = sorted(per_period)
    totals = accumulate(per_period[p] for p in periods)
    return [
        {"period": p, "newUsers": per_period[p], "totalUsers": total}
        for p, total in zip(periods, totals)
    ]


def _active_inactive(users: list[UserRow]) -> list[dict[str, Any]]:
    buckets: dict[str, Counter] = defaultdict(Counter)
    for user in users:
        bucket = buckets[_period(user.last_login) or "never"]
        bucket["active" if _is_recent(user.last_login, ACTIVE_WINDOW) else "inactive"] += 1
    return [
        {
            "period": period,
            "activeUsers": c["active"],
            "inactiveUsers": c["inactive"],
            "totalUsers": c["active"] + c["inactive"],
        }
        for period, c in sorted(buckets.items())
    ]


def _peak_usage(users: list[UserRow]) -> list[dict[str, Any]]:
    per_day = Counter(
        as_utc(u.last_login).strftime("%A") for u in users if u.last_login is not None
    )
    return [
        {"dayOfWeek": day, "loginCount": n, "uniqueUsers": n}
        for day, n in per_day.most_common()
    ]


async def _passed_attempts(
    session: AsyncSession,
) -> list[tuple[AssessmentAttemptRow, UserRow, str | None]]:
    result = await session.execute(
        select(AssessmentAttemptRow, UserRow, TrainingAreaRow.name)
        .join(UserRow, UserRow.id == AssessmentAttemptRow.user_id)
        .join(AssessmentRow, AssessmentRow.id == AssessmentAttemptRow.assessment_id)
        .outerjoin(TrainingAreaRow, TrainingAreaRow.id == AssessmentRow.training_area_id)
        .where(AssessmentAttemptRow.passed.is_(True), UserRow.user_type != "admin")
    )
    return [(a, u, name) for a, u, name in result.all()]


def _score_trend(
    rows: Iterable[tuple[str | None, str | None, int]], key_name: str
) -> list[dict[str, Any]]:
    groups: dict[tuple[str | None, str | None], list[int]] = defaultdict(list)
    for period, key, score in rows:
        groups[(period, key)].append(score)
    return [
        {
            "period": period,
            key_name: key,
            "certificatesEarned": len(scores),
            "averageScore": _round(sum(scores) / len(scores)),
        }
        for (period, key), scores in sorted(
            groups.items(), key=lambda item: (item[0][0] or "", str(item[0][1]))
        )
    ]


async def _training_area_charts(
    session: AsyncSession, frontliners: list[tuple[UserRow, NormalUserRow]]
) -> dict[str, list[dict[str, Any]]]:
    area_rows = (
        await session.execute(
            select(UserTrainingAreaProgressRow, TrainingAreaRow.name)
            .join(
                TrainingAreaRow,
                TrainingAreaRow.id == UserTrainingAreaProgressRow.training_area_id,
            )
            .join(UserRow, UserRow.id == UserTrainingAreaProgressRow.user_id)
            .where(UserRow.user_type != "admin")
        )
    ).all()

    enrollments: dict[tuple[str | None, str], Counter] = defaultdict(Counter)
    heat: dict[str, dict[str, set[int]]] = defaultdict(
        lambda: {"users": set(), "completed": set()}
    )
    for progress, area_name in area_rows:
        bucket = enrollments[(_period(progress.started_at), area_name)]
        bucket["enrollments"] += 1
        bucket["completions"] += progress.status == COMPLETED
        heat[area_name]["users"].add(progress.user_id)
        if progress.status == COMPLETED:
            heat[area_name]["completed"].add(progress.user_id)

    course_rows = (
        await session.execute(
            select(UserCourseProgressRow.status, TrainingAreaRow.name)
            .join(CourseRow, CourseRow.id == UserCourseProgressRow.course_id)
            .join(ModuleRow, ModuleRow.id == CourseRow.module_id)
            .join(TrainingAreaRow, TrainingAreaRow.id == ModuleRow.training_area_id)
            .join(UserRow, UserRow.id == UserCourseProgressRow.user_id)
            .where(UserRow.user_type != "admin")
        )
    ).all()
    courses: dict[str, Counter] = defaultdict(Counter)
    for course_status, area_name in course_rows:
        courses[area_name]["total"] += 1
        courses[area_name]["completed"] += course_status == COMPLETED

    seniority_by_user = {u.id: n.seniority for u, n in frontliners}
    area_seniority: dict[str, Counter] = defaultdict(Counter)
    for progress, area_name in area_rows:
        if progress.user_id in seniority_by_user:
            area_seniority[area_name][seniority_by_user[progress.user_id]] += 1

    completion_rates = [
        {
            "trainingArea": area,
            "totalEnrollments": c["total"],
            "completedCourses": c["completed"],
            "completionRate": _share(c["completed"], c["total"]),
        }
        for area, c in courses.items()
    ]
    heatmap = [
        {
            "trainingArea": area,
            "totalUsers": len(sets["users"]),
            "completedUsers": len(sets["completed"]),
            "completionRate": _share(len(sets["completed"]), len(sets["users"])),
        }
        for area, sets in heat.items()
    ]
    return {
        "trainingAreaEnrollments": [
            {
                "period": period,
                "trainingArea": area,
                "enrollments": c["enrollments"],
                "completions": c["completions"],
            }
            for (period, area), c in sorted(
                enrollments.items(), key=lambda item: (item[0][0] or "", item[0][1])
            )
        ],
        "courseCompletionRates": sorted(
            completion_rates, key=lambda r: r["completionRate"], reverse=True
        ),
        "trainingCompletionHeatmap": sorted(
            heatmap, key=lambda r: r["completionRate"], reverse=True
        ),
        "trainingAreaSeniorityDistribution": [
            {"trainingArea": area, **row}
            for area, counts in area_seniority.items()
            for row in _distribution(counts, "seniority")
        ],
    }


async def _overall_analytics(session: AsyncSession) -> dict[str, Any]:
    users = await _non_admin_users(session)
    frontliners = await _frontliners(session)
    attempts = await _passed_attempts(session)

    return {
        "keyMetrics": await _key_metrics(session),
        "userGrowth": _user_growth(users),
        "assetDistribution": [
            {
                "asset": row["pair"][0],
                "subAsset": row["pair"][1],
                "userCount": row["userCount"],
                "percentage": row["percentage"],
            }
            for row in _distribution(
                Counter((u.asset, u.sub_asset) for u in users), "pair"
            )
        ],
        "roleDistribution": [
            {"asset": asset, "userCount": n}
            for asset, n in Counter(u.asset for u, _ in frontliners).most_common()
        ],
        "seniorityDistribution": _distribution(
            Counter(n.seniority for _, n in frontliners), "seniority"
        ),
        "certificateAnalytics": _score_trend(
            ((_period(a.completed_at), u.asset, a.score) for a, u, _ in attempts),
            "asset",
        ),
        "activeInactiveUsers": _active_inactive(users),
        "peakUsageTimes": _peak_usage(users),
        **await _training_area_charts(session, frontliners),
        "certificateTrends": _score_trend(
            (
                (_period(a.completed_at), area, a.score)
                for a, _, area in attempts
                if area is not None
            ),
            "trainingArea",
        ),
        "organizationRoleDistribution": [
            {"organization": org, "userCount": n}
            for org, n in Counter(u.organization for u, _ in frontliners).most_common()
        ],
    }


# ---------------------------------------------------------------------------
# Training area
# ---------------------------------------------------------------------------

TRAINING_AREA_COLUMNS = [
    "User ID",
    "First Name",
    "Last Name",
    "Email Address",
    "EID",
    "Phone Number",
    "Asset",
    "Asset Sub-Category",
    "Organization",
    "Sub-Organization",
    "Role Category",
    "Role",
    "Seniority",
    "Frontliner Type",
    "Overall Progress",
    "Average Course Progress",
    "VX Points",
    "Registration Date",
    "Last Login Date",
]


async def _training_area(session: AsyncSession, training_area_id: int) -> dict[str, Any]:
    area = await session.get(TrainingAreaRow, training_area_id)
    if area is None:
        raise NotFoundError("Training area not found")

    frontliners = await _frontliners(session)
    progress = {p.user_id: p for p in await _area_progress(session, training_area_id)}

    course_rows = (
        await session.execute(
            select(UserCourseProgressRow.user_id, UserCourseProgressRow.completion_percentage)
            .join(CourseRow, CourseRow.id == UserCourseProgressRow.course_id)
            .join(ModuleRow, ModuleRow.id == CourseRow.module_id)
            .where(ModuleRow.training_area_id == training_area_id)
        )
    ).all()
    course_progress: dict[int, list[float]] = defaultdict(list)
    for user_id, percentage in course_rows:
        course_progress[user_id].append(float(percentage))

    rows = []
    for user, profile in frontliners:
        area_progress = progress.get(user.id)
        courses = course_progress.get(user.id, [])
        rows.append(
            {
                **_frontliner_row(user, profile),
                "overallProgress": (
                    float(area_progress.completion_percentage) if area_progress else 0.0
                ),
                "averageCourseProgress": (
                    _round(sum(courses) / len(courses)) if courses else 0.0
                ),
            }
        )

    certificates = await _count(
        session, CertificateRow, CertificateRow.training_area_id == training_area_id
    )
    total_progress = sum(float(p.completion_percentage) for p in progress.values())
    return {
        "trainingArea": {"id": area.id, "name": area.name},
        "filters": {
            **await _common_filters(session, frontliners),
            "progressStatuses": _options(p.status for p in progress.values()),
        },
        "dataTableColumns": TRAINING_AREA_COLUMNS,
        "dataTableRows": rows,
        "generalStats": {
            "totalFrontliners": len(frontliners),
            "totalOrganizations": len({u.organization for u, _ in frontliners}),
            "totalCertificatesIssued": certificates,
            "totalCompleted": sum(
                1 for p in progress.values() if p.status == COMPLETED
            ),
            "totalVxPointsEarned": sum(u.xp for u, _ in frontliners),
            "overallProgress": (
                _round(total_progress / len(frontliners)) if frontliners else 0.0
            ),
        },
    }


# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------


async def _certificates(session: AsyncSession) -> dict[str, Any]:
    frontliners = await _frontliners(session)
    areas = list(
        (await session.execute(select(TrainingAreaRow).order_by(TrainingAreaRow.id)))
        .scalars()
        .all()
    )
    active = (
        await session.execute(
            select(CertificateRow.user_id, CertificateRow.training_area_id).where(
                CertificateRow.status == "active"
            )
        )
    ).all()
    held = {(user_id, area_id) for user_id, area_id in active}

    area_progress: dict[int, list[float]] = defaultdict(list)
    for p in await _area_progress(session):
        area_progress[p.user_id].append(float(p.completion_percentage))

    rows = []
    for user, profile in frontliners:
        percentages = area_progress.get(user.id, [])
        rows.append(
            {
                **_frontliner_row(user, profile),
                "certificates": {
                    str(area.id): (user.id, area.id) in held for area in areas
                },
                "overallProgress": (
                    _round(sum(percentages) / len(percentages)) if percentages else 0.0
                ),
            }
        )

    return {
        "filters": await _common_filters(session, frontliners),
        "trainingAreas": [{"id": a.id, "name": a.name} for a in areas],
        "dataTableColumns": [
            "User ID",
            "First Name",
            "Last Name",
            "Email Address",
            "EID",
            "Phone Number",
            "Asset",
            "Asset Sub-Category",
            "Organization",
            "Sub-Organization",
            "Role Category",
            "Role",
            "Seniority",
            "Frontliner Type",
            *[f"{a.name} Certificate" for a in areas],
            "Overall Progress",
            "VX Points",
            "Registration Date",
            "Last Login Date",
        ],
        "dataTableRows": rows,
        "generalStats": {
            "totalCertificatesIssued": await _count(session, CertificateRow),
            "averageOverallProgress": await _average_progress(session, len(frontliners)),
        },
    }


# ---------------------------------------------------------------------------
# Users, organizations, sub-organizations, sub-admins, frontliners
# ---------------------------------------------------------------------------


async def _users(session: AsyncSession) -> dict[str, Any]:
    users = list(
        (await session.execute(select(UserRow).order_by(UserRow.created_at, UserRow.id)))
        .scalars()
        .all()
    )
    profiles: dict[int, Any] = {
        p.user_id: p
        for p in (await session.execute(select(NormalUserRow))).scalars().all()
    }
    profiles.update(
        {
            s.user_id: s
            for s in (await session.execute(select(SubAdminRow))).scalars().all()
        }
    )
    rows = []
    for user in users:
        profile = profiles.get(user.id)
        rows.append(
            {
                "userId": user.id,
                "firstName": user.first_name,
                "lastName": user.last_name,
                "email": user.email,
                "eid": profile.eid if profile else None,
                "phoneNumber": profile.phone_number if profile else None,
                "userType": user.user_type,
                "organization": user.organization,
                "subOrganization": _sub_org_label(user.sub_organization),
                "registrationDate": _iso(user.created_at),
                "lastLoginDate": _iso(user.last_login),
            }
        )
    types = Counter(u.user_type for u in users)
    return {
        "filters": {
            "userTypes": _options(types),
            "organizations": _options(u.organization for u in users),
            "registrationDates": _options(_period(u.created_at) for u in users),
        },
        "dataTableColumns": [
            "User ID",
            "First Name",
            "Last Name",
            "Email Address",
            "EID",
            "Phone Number",
            "User Type",
            "Organization",
            "Sub-Organization",
            "Registration Date",
            "Last Login Date",
        ],
        "dataTableRows": rows,
        "userTypeStats": {
            "totalUsers": len(users),
            "totalFrontliners": await _count(session, NormalUserRow),
            "totalSubAdmins": types["sub_admin"],
            "totalAdmins": types["admin"],
        },
    }


async def _organizations(session: AsyncSession) -> dict[str, Any]:
    organizations = (
        await session.execute(
            select(OrganizationRow, AssetRow.name, SubAssetRow.name)
            .outerjoin(AssetRow, AssetRow.id == OrganizationRow.asset_id)
            .outerjoin(SubAssetRow, SubAssetRow.id == OrganizationRow.sub_asset_id)
            .order_by(OrganizationRow.name)
        )
    ).all()
    sub_admins = await _sub_admins(session)
    frontliners = await _frontliners(session)
    sub_org_counts = Counter(
        (await session.execute(select(SubOrganizationRow.organization_id)))
        .scalars()
        .all()
    )

    admin_by_org = {u.organization: (u, s) for u, s in sub_admins}
    registered = Counter(u.organization for u, _ in frontliners)

    rows = []
    for org, asset, sub_asset in organizations:
        admin = admin_by_org.get(org.name)
        if asset is None and admin is not None:
            asset, sub_asset = admin[0].asset, admin[0].sub_asset
        rows.append(
            {
                "id": org.id,
                "name": org.name,
                "asset": asset or "N/A",
                "subAsset": sub_asset or "N/A",
                "subOrganization": sub_org_counts.get(org.id, 0),
                "totalFrontliners": (admin[1].total_frontliners or 0) if admin else 0,
                "hasSubAdmin": admin is not None,
                "status": (
                    "active"
                    if admin is not None
                    and _is_recent(admin[0].last_login, ORG_ACTIVE_WINDOW)
                    else "inactive"
                ),
                "registeredFrontliners": registered.get(org.name, 0),
            }
        )

    return {
        "filters": {
            "assets": _options(await _names(session, AssetRow.name)),
            "subAssets": _options(await _names(session, SubAssetRow.name)),
        },
        "organizations": rows,
        "generalStats": {
            "totalOrganizations": len(rows),
            "activeOrganizations": sum(1 for r in rows if r["status"] == "active"),
            "totalFrontliners": sum(r["totalFrontliners"] for r in rows),
            "registeredFrontliners": len(frontliners),
        },
    }


async def _sub_organizations(session: AsyncSession) -> dict[str, Any]:
    result = await session.execute(
        select(SubOrganizationRow, OrganizationRow.name, AssetRow.name, SubAssetRow.name)
        .join(OrganizationRow, OrganizationRow.id == SubOrganizationRow.organization_id)
        .outerjoin(AssetRow, AssetRow.id == SubOrganizationRow.asset_id)
        .outerjoin(SubAssetRow, SubAssetRow.id == SubOrganizationRow.sub_asset_id)
        .order_by(OrganizationRow.name, SubOrganizationRow.name)
    )
    frontliners = await _frontliners(session)

    rows = []
    for sub_org, org_name, asset_name, sub_asset_name in result.all():
        members = [
            u
            for u, _ in frontliners
            if u.organization == org_name and sub_org.name in (u.sub_organization or [])
        ]
        rows.append(
            {
                "id": sub_org.id,
                "name": sub_org.name,
                "organization": org_name,
                "asset": asset_name or "N/A",
                "subAsset": sub_asset_name or "N/A",
                "registeredFrontliners": len(members),
                "status": (
                    "active"
                    if any(_is_recent(u.last_login, ORG_ACTIVE_WINDOW) for u in members)
                    else "inactive"
                ),
            }
        )

    active_orgs = {r["organization"] for r in rows if r["status"] == "active"}
    return {
        "filters": {
            "assets": _options(await _names(session, AssetRow.name)),
            "subAssets": _options(await _names(session, SubAssetRow.name)),
        },
        "subOrganizations": rows,
        "generalStats": {
            "totalOrganizations": await _count(session, OrganizationRow),
            "activeOrganizations": len(active_orgs),
            "totalSubOrganizations": len(rows),
            "activeSubOrganizations": sum(1 for r in rows if r["status"] == "active"),
        },
    }


async def _sub_admin_report(session: AsyncSession) -> dict[str, Any]:
    sub_admins = await _sub_admins(session)
    registered = Counter(u.organization for u, _ in await _frontliners(session))
    rows = [
        {
            "userId": user.id,
            "firstName": user.first_name,
            "lastName": user.last_name,
            "email": user.email,
            "eid": profile.eid,
            "phoneNumber": profile.phone_number,
            "jobTitle": profile.job_title,
            "asset": user.asset,
            "subAsset": user.sub_asset,
            "organization": user.organization,
            "subOrganization": _sub_org_label(user.sub_organization),
            "totalFrontliners": profile.total_frontliners or 0,
            "registeredFrontliners": registered.get(user.organization, 0),
            "registrationDate": _iso(user.created_at),
            "lastLoginDate": _iso(user.last_login),
        }
        for user, profile in sub_admins
    ]
    return {
        "filters": {
            "assets": _options(u.asset for u, _ in sub_admins),
            "subAssets": _options(u.sub_asset for u, _ in sub_admins),
            "organizations": _options(u.organization for u, _ in sub_admins),
        },
        "dataTableColumns": [
            "User ID",
            "First Name",
            "Last Name",
            "Email Address",
            "EID",
            "Phone Number",
            "Job Title",
            "Asset",
            "Asset Sub-Category",
            "Organization",
            "Sub-Organization",
            "Total Frontliners",
            "Registered Frontliners",
            "Registration Date",
            "Last Login Date",
        ],
        "dataTableRows": rows,
        "generalStats": {
            "totalSubAdmins": len(rows),
            "activeSubAdmins": sum(
                1 for u, _ in sub_admins if _is_recent(u.last_login, ORG_ACTIVE_WINDOW)
            ),
        },
    }


async def _frontliner_report(session: AsyncSession) -> dict[str, Any]:
    frontliners = await _frontliners(session)
    certificates = Counter(
        (await session.execute(select(CertificateRow.user_id))).scalars().all()
    )
    area_progress: dict[int, list[float]] = defaultdict(list)
    for p in await _area_progress(session):
        area_progress[p.user_id].append(float(p.completion_percentage))

    rows = []
    for user, profile in frontliners:
        percentages = area_progress.get(user.id, [])
        rows.append(
            {
                **_frontliner_row(user, profile),
                "certificates": certificates.get(user.id, 0),
                "overallProgress": (
                    _round(sum(percentages) / len(percentages)) if percentages else 0.0
                ),
            }
        )

    return {
        "filters": await _common_filters(session, frontliners),
        "frontliners": rows,
        "generalStats": {
            "totalFrontliners": len(rows),
            "activeFrontliners": sum(
                1 for u, _ in frontliners if _is_recent(u.last_login, ACTIVE_WINDOW)
            ),
            "totalCertificates": sum(certificates.values()),
            "averageProgress": (
                _round(sum(r["overallProgress"] for r in rows) / len(rows))
                if rows
                else 0.0
            ),
        },
    }


async def _dashboard_stats(session: AsyncSession) -> dict[str, Any]:
    metrics = await _key_metrics(session)
    metrics["totalCertificates"] = metrics.pop("certificatesIssued")
    return metrics


# ---------------------------------------------------------------------------
# Cached entry points
# ---------------------------------------------------------------------------


async def overall_analytics(session: AsyncSession) -> dict[str, Any]:
    return await cached_json(
        f"{REPORTS_PREFIX}overall-analytics", lambda: _overall_analytics(session)
    )


async def training_area_report(
    session: AsyncSession, training_area_id: int
) -> dict[str, Any]:
    return await cached_json(
        f"{REPORTS_PREFIX}training-area:{training_area_id}",
        lambda: _training_area(session, training_area_id),
    )


async def certificate_report(session: AsyncSession) -> dict[str, Any]:
    return await cached_json(
        f"{REPORTS_PREFIX}certificates", lambda: _certificates(session)
    )


async def users_report(session: AsyncSession) -> dict[str, Any]:
    return await cached_json(f"{REPORTS_PREFIX}users", lambda: _users(session))


async def organizations_report(session: AsyncSession) -> dict[str, Any]:
    return await cached_json(
        f"{REPORTS_PREFIX}organizations", lambda: _organizations(session)
    )


async def sub_organizations_report(session: AsyncSession) -> dict[str, Any]:
    return await cached_json(
        f"{REPORTS_PREFIX}sub-organizations", lambda: _sub_organizations(session)
    )


async def sub_admins_report(session: AsyncSession) -> dict[str, Any]:
    return await cached_json(
        f"{REPORTS_PREFIX}sub-admins", lambda: _sub_admin_report(session)
    )


async def frontliners_report(session: AsyncSession) -> dict[str, Any]:
    return await cached_json(
        f"{REPORTS_PREFIX}frontliners", lambda: _frontliner_report(session)
    )


async def dashboard_stats(session: AsyncSession) -> dict[str, Any]:
    return await cached_json(
        f"{REPORTS_PREFIX}dashboard-stats", lambda: _dashboard_stats(session)
    )
