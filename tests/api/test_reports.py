from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.db.tables import CertificateRow, UserRow
from tests.conftest import (
    add_course_tree,
    add_frontliner,
    add_sub_admin,
    auth,
    mint_token,
)

REPORT_PATHS = [
    "/api/reports/overall-analytics",
    "/api/reports/certificates",
    "/api/reports/users",
    "/api/reports/organizations",
    "/api/reports/sub-organizations",
    "/api/reports/sub-admins",
    "/api/reports/frontliners",
    "/api/reports/dashboard-stats",
]


@pytest.mark.parametrize("path", REPORT_PATHS)
def test_reports_are_staff_only(
    client: TestClient, learner_token: str, admin_token: str, path: str
) -> None:
    assert client.get(path).status_code == 401
    assert client.get(path, headers=auth(learner_token)).status_code == 403
    resp = client.get(path, headers=auth(admin_token))
    assert resp.status_code == 200
    assert resp.json()["success"] is True


def test_sub_admins_can_read_reports(client: TestClient, db: Session) -> None:
    sub_admin = add_sub_admin(db, email="lead@example.com", eid="EID-9")
    token = mint_token(sub_admin.id, ["sub_admin"])
    assert client.get("/api/reports/dashboard-stats", headers=auth(token)).status_code == 200


def test_dashboard_stats_excludes_admins(
    client: TestClient, db: Session, learner: UserRow, admin_token: str
) -> None:
    add_sub_admin(db, email="lead@example.com", eid="EID-9")
    data = client.get("/api/reports/dashboard-stats", headers=auth(admin_token)).json()[
        "data"
    ]
    assert data["totalUsers"] == 2
    assert data["totalFrontliners"] == 1
    assert data["totalSubAdmins"] == 1
    assert data["totalCertificates"] == 0
    assert "certificatesIssued" not in data


def test_overall_analytics_sections(
    client: TestClient, learner: UserRow, admin_token: str
) -> None:
    data = client.get("/api/reports/overall-analytics", headers=auth(admin_token)).json()[
        "data"
    ]
    for key in (
        "keyMetrics",
        "userGrowth",
        "assetDistribution",
        "seniorityDistribution",
        "activeInactiveUsers",
        "peakUsageTimes",
        "certificateTrends",
    ):
        assert key in data
    assert data["keyMetrics"]["totalFrontliners"] == 1


def test_training_area_report(
    client: TestClient, db: Session, learner: UserRow, admin_token: str
) -> None:
    tree = add_course_tree(db)
    resp = client.get(
        f"/api/reports/training-area/{tree['training_area_id']}",
        headers=auth(admin_token),
    )
    data = resp.json()["data"]
    assert data["trainingArea"] == {
        "id": tree["training_area_id"],
        "name": "Service Excellence",
    }
    [row] = data["dataTableRows"]
    assert row["userId"] == learner.id
    assert row["overallProgress"] == 0.0
    assert data["generalStats"]["totalFrontliners"] == 1


def test_unknown_training_area_is_404(client: TestClient, admin_token: str) -> None:
    resp = client.get("/api/reports/training-area/999", headers=auth(admin_token))
    assert resp.status_code == 404
    assert resp.json()["message"] == "Training area not found"


def test_certificate_columns_follow_training_areas(
    client: TestClient, db: Session, learner: UserRow, admin_token: str
) -> None:
    tree = add_course_tree(db)
    db.add(
        CertificateRow(
            user_id=learner.id,
            training_area_id=tree["training_area_id"],
            certificate_number="CERT-1",
            status="active",
        )
    )
    db.commit()
    data = client.get("/api/reports/certificates", headers=auth(admin_token)).json()["data"]
    assert "Service Excellence Certificate" in data["dataTableColumns"]
    [row] = data["dataTableRows"]
    assert row["certificates"] == {str(tree["training_area_id"]): True}
    assert data["generalStats"]["totalCertificatesIssued"] == 1


def test_reports_are_cached_until_progress_changes(
    client: TestClient, db: Session, learner: UserRow, learner_token: str, admin_token: str
) -> None:
    tree = add_course_tree(db)
    path = "/api/reports/dashboard-stats"
    assert client.get(path, headers=auth(admin_token)).json()["data"]["totalFrontliners"] == 1

    add_frontliner(db, email="second@example.com", eid="EID-2")
    cached = client.get(path, headers=auth(admin_token)).json()["data"]
    assert cached["totalFrontliners"] == 1

    client.post(
        "/api/progress/learning-blocks/complete",
        json={"userId": learner.id, "learningBlockId": tree["block_ids"][0]},
        headers=auth(learner_token),
    )
    fresh = client.get(path, headers=auth(admin_token)).json()["data"]
    assert fresh["totalFrontliners"] == 2


def _dashboard(client: TestClient, token: str) -> dict:
    return client.get("/api/reports/dashboard-stats", headers=auth(token)).json()["data"]


def test_signup_and_delete_refresh_cached_reports(
    client: TestClient, learner: UserRow, admin_token: str
) -> None:
    assert _dashboard(client, admin_token)["totalUsers"] == 1

    signup = {
        "firstName": "Noor",
        "lastName": "Saleh",
        "email": "noor@example.com",
        "password": "secret123",
        "organization": "Acme",
        "asset": "Hospitality",
        "subAsset": "Hotels",
    }
    created = client.post("/api/users", json=signup)
    assert created.status_code == 201
    assert _dashboard(client, admin_token)["totalUsers"] == 2

    user_id = created.json()["user"]["id"]
    client.delete(f"/api/users/{user_id}", headers=auth(admin_token))
    assert _dashboard(client, admin_token)["totalUsers"] == 1


def test_taxonomy_writes_refresh_cached_reports(
    client: TestClient, admin_token: str
) -> None:
    assert _dashboard(client, admin_token)["totalOrganizations"] == 0

    asset = client.post(
        "/api/users/assets", json={"name": "Retail"}, headers=auth(admin_token)
    ).json()["data"]
    sub_asset = client.post(
        "/api/users/sub-assets",
        json={"name": "Malls", "assetId": asset["id"]},
        headers=auth(admin_token),
    ).json()["data"]
    resp = client.post(
        "/api/users/organizations",
        json={"name": "Globex", "assetId": asset["id"], "subAssetId": sub_asset["id"]},
        headers=auth(admin_token),
    )
    assert resp.status_code == 201
    assert _dashboard(client, admin_token)["totalOrganizations"] == 1
