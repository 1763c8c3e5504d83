from __future__ import annotations

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.db.tables import UserRow
from tests.conftest import add_course_tree, add_user, auth


def _enroll(client: TestClient, token: str, user_id: int, course_id: int, **extra: str):
    return client.post(
        "/api/enrollments",
        json={"userId": user_id, "courseId": course_id, **extra},
        headers=auth(token),
    )


def test_enroll_list_and_unenroll(
    client: TestClient,
    db: Session,
    learner: UserRow,
    learner_token: str,
    admin_token: str,
) -> None:
    tree = add_course_tree(db)
    resp = _enroll(client, learner_token, learner.id, tree["course_id"])
    assert resp.status_code == 201
    assert resp.json()["data"]["enrollmentSource"] == "manual"

    dup = _enroll(client, learner_token, learner.id, tree["course_id"])
    assert dup.status_code == 409

    mine = client.get(f"/api/enrollments/user/{learner.id}", headers=auth(learner_token))
    assert [e["courseId"] for e in mine.json()["data"]] == [tree["course_id"]]

    roster = client.get(
        f"/api/enrollments/course/{tree['course_id']}", headers=auth(admin_token)
    )
    assert [e["userId"] for e in roster.json()["data"]] == [learner.id]

    path = f"/api/enrollments/user/{learner.id}/course/{tree['course_id']}"
    assert client.delete(path, headers=auth(learner_token)).status_code == 200
    assert client.delete(path, headers=auth(learner_token)).status_code == 404


def test_enroll_unknown_course_is_404(
    client: TestClient, learner: UserRow, learner_token: str
) -> None:
    resp = _enroll(client, learner_token, learner.id, 404)
    assert resp.status_code == 404
    assert resp.json()["message"] == "Course not found"


def test_staff_assigns_courses_to_learners(
    client: TestClient, db: Session, admin_token: str
) -> None:
    tree = add_course_tree(db)
    learner = add_user(db, email="assigned@example.com")
    resp = _enroll(
        client, admin_token, learner.id, tree["course_id"], enrollmentSource="assigned"
    )
    assert resp.status_code == 201
    assert resp.json()["data"]["enrollmentSource"] == "assigned"


def test_course_roster_is_staff_only(
    client: TestClient, db: Session, learner_token: str
) -> None:
    tree = add_course_tree(db)
    resp = client.get(
        f"/api/enrollments/course/{tree['course_id']}", headers=auth(learner_token)
    )
    assert resp.status_code == 403
