"""Training hierarchy CRUD, course content sequencing and certificates."""

from __future__ import annotations

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.core.timeutil import utcnow
from app.db.tables import (
    AssessmentRow,
    CertificateRow,
    CourseRow,
    LearningBlockRow,
    ModuleRow,
    UserLearningBlockProgressRow,
    UserRow,
)
from tests.conftest import add_course_tree, add_user, auth, mint_token


def test_build_hierarchy_through_the_api(client: TestClient, admin_token: str) -> None:
    headers = auth(admin_token)
    area = client.post(
        "/api/training/training-areas", json={"name": "Guest Service"}, headers=headers
    )
    assert area.status_code == 201
    area_id = area.json()["data"]["id"]

    module = client.post(
        "/api/training/modules",
        json={"name": "Greeting", "trainingAreaId": area_id},
        headers=headers,
    ).json()["data"]
    course = client.post(
        "/api/training/courses",
        json={"name": "First Impressions", "moduleId": module["id"]},
        headers=headers,
    ).json()["data"]
    assert course["level"] == "beginner"
    assert course["showDuration"] is True

    unit = client.post(
        "/api/training/units", json={"name": "Smile"}, headers=headers
    ).json()["data"]
    assert unit["xpPoints"] == 100

    link = {"courseId": course["id"], "unitId": unit["id"]}
    assert (
        client.post("/api/training/course-units", json=link, headers=headers).status_code
        == 201
    )
    dup = client.post("/api/training/course-units", json=link, headers=headers)
    assert dup.status_code == 409

    modules = client.get(f"/api/training/modules/training-area/{area_id}").json()["data"]
    assert [m["name"] for m in modules] == ["Greeting"]
    published = client.get("/api/training/courses/published").json()["data"]
    assert [c["id"] for c in published] == [course["id"]]


def test_create_with_missing_parent_is_404(client: TestClient, admin_token: str) -> None:
    resp = client.post(
        "/api/training/modules",
        json={"name": "Orphan", "trainingAreaId": 42},
        headers=auth(admin_token),
    )
    assert resp.status_code == 404
    assert resp.json()["message"] == "Training area not found"


def test_invalid_block_type_is_400(client: TestClient, db: Session, admin_token: str) -> None:
    tree = add_course_tree(db)
    resp = client.post(
        "/api/training/learning-blocks",
        json={"unitId": tree["unit_id"], "type": "podcast", "title": "Listen"},
        headers=auth(admin_token),
    )
    assert resp.status_code == 400


def test_catalogue_reads_are_public_and_paginated(
    client: TestClient, db: Session
) -> None:
    add_course_tree(db, name="Service")
    add_course_tree(db, name="Safety")
    resp = client.get("/api/training/training-areas?limit=1&offset=1")
    assert resp.status_code == 200
    body = resp.json()
    assert [a["name"] for a in body["data"]] == ["Safety Excellence"]
    assert body["meta"] == {"limit": 1, "offset": 1, "count": 1}


def test_partial_update_keeps_unsent_fields(
    client: TestClient, db: Session, admin_token: str
) -> None:
    tree = add_course_tree(db)
    resp = client.put(
        f"/api/training/courses/{tree['course_id']}",
        json={"description": "Updated"},
        headers=auth(admin_token),
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["description"] == "Updated"
    assert data["name"] == "Service 101"


def test_deleting_training_area_cascades_and_detaches_assessments(
    client: TestClient, db: Session, admin_token: str
) -> None:
    tree = add_course_tree(db)
    db.add(AssessmentRow(title="Final", course_id=tree["course_id"]))
    db.commit()

    resp = client.delete(
        f"/api/training/training-areas/{tree['training_area_id']}",
        headers=auth(admin_token),
    )
    assert resp.status_code == 200

    db.expire_all()
    assert db.query(ModuleRow).count() == 0
    assert db.query(CourseRow).count() == 0
    # Units are shared and survive; their blocks stay with them.
    assert db.query(LearningBlockRow).count() == 2
    assessment = db.query(AssessmentRow).one()
    assert assessment.course_id is None


def test_course_content_unlocks_in_order(
    client: TestClient, db: Session, learner: UserRow, learner_token: str
) -> None:
    tree = add_course_tree(db, blocks=3)
    first, second, third = tree["block_ids"]
    db.add(
        UserLearningBlockProgressRow(
            user_id=learner.id,
            learning_block_id=first,
            status="completed",
        )
    )
    db.add(AssessmentRow(title="Unit quiz", unit_id=tree["unit_id"]))
    db.commit()

    resp = client.get(
        f"/api/training/courses/{tree['course_id']}/content",
        headers=auth(learner_token),
    )
    assert resp.status_code == 200
    items = resp.json()["data"]
    assert [(i["kind"], i["id"]) for i in items[:3]] == [
        ("learning_block", first),
        ("learning_block", second),
        ("learning_block", third),
    ]
    assert items[3]["kind"] == "assessment"
    assert [i["accessible"] for i in items] == [True, True, False, False]
    assert items[0]["status"] == "completed"


def test_course_content_for_another_learner_is_forbidden(
    client: TestClient, db: Session, learner_token: str
) -> None:
    tree = add_course_tree(db)
    other = add_user(db, email="other@example.com")
    resp = client.get(
        f"/api/training/courses/{tree['course_id']}/content?userId={other.id}",
        headers=auth(learner_token),
    )
    assert resp.status_code == 403


def test_certificates_are_owner_or_staff_only(
    client: TestClient, db: Session, learner: UserRow, learner_token: str, admin_token: str
) -> None:
    tree = add_course_tree(db)
    cert = CertificateRow(
        user_id=learner.id,
        training_area_id=tree["training_area_id"],
        certificate_number="CERT-TEST-1",
        issue_date=utcnow(),
    )
    db.add(cert)
    db.commit()

    own = client.get(
        f"/api/training/certificates/training-area/{tree['training_area_id']}"
        f"/user/{learner.id}",
        headers=auth(learner_token),
    )
    assert [c["certificateNumber"] for c in own.json()["data"]] == ["CERT-TEST-1"]

    other = add_user(db, email="other@example.com")
    stranger = mint_token(other.id, ["user"])
    assert (
        client.get(
            f"/api/training/certificates/{cert.id}", headers=auth(stranger)
        ).status_code
        == 403
    )
    assert (
        client.get(
            f"/api/training/certificates/{cert.id}", headers=auth(admin_token)
        ).status_code
        == 200
    )
