"""Block completion, the upward cascade and progress reads."""

from __future__ import annotations

from fastapi.testclient import TestClient
from prometheus_client import REGISTRY
from sqlalchemy.orm import Session

from app.db.tables import (
    CourseUnitRow,
    UnitRoleAssignmentRow,
    UnitRow,
    UserCourseProgressRow,
    UserCourseUnitProgressRow,
    UserLearningBlockProgressRow,
    UserRow,
    UserTrainingAreaProgressRow,
)
from tests.conftest import add_course_tree, add_user, auth


def _complete(client: TestClient, token: str, user_id: int, block_id: int):
    return client.post(
        "/api/progress/learning-blocks/complete",
        json={"userId": user_id, "learningBlockId": block_id},
        headers=auth(token),
    )


def test_partial_completion_stops_at_course_unit(
    client: TestClient, db: Session, learner: UserRow, learner_token: str
) -> None:
    tree = add_course_tree(db, blocks=2)
    resp = _complete(client, learner_token, learner.id, tree["block_ids"][0])
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "completed"

    db.expire_all()
    unit_progress = db.query(UserCourseUnitProgressRow).one()
    assert unit_progress.status == "in_progress"
    assert unit_progress.completion_percentage == 50.0
    assert db.query(UserCourseProgressRow).count() == 0


def test_completing_every_block_cascades_to_training_area(
    client: TestClient, db: Session, learner: UserRow, learner_token: str
) -> None:
    tree = add_course_tree(db, blocks=2)
    before = REGISTRY.get_sample_value("learning_block_completions_total") or 0.0
    for block_id in tree["block_ids"]:
        assert _complete(client, learner_token, learner.id, block_id).status_code == 200

    db.expire_all()
    assert db.query(UserCourseProgressRow).one().status == "completed"
    area = db.query(UserTrainingAreaProgressRow).one()
    assert area.status == "completed"
    assert area.completion_percentage == 100.0
    assert area.completed_at is not None
    assert db.get(UserRow, learner.id).xp == 20
    after = REGISTRY.get_sample_value("learning_block_completions_total") or 0.0
    assert after - before == 2


def test_completing_twice_is_idempotent(
    client: TestClient, db: Session, learner: UserRow, learner_token: str
) -> None:
    tree = add_course_tree(db, blocks=2)
    block_id = tree["block_ids"][0]
    first = _complete(client, learner_token, learner.id, block_id).json()["data"]
    second = _complete(client, learner_token, learner.id, block_id).json()["data"]
    assert first["id"] == second["id"]
    assert first["completedAt"] == second["completedAt"]

    db.expire_all()
    assert db.get(UserRow, learner.id).xp == 10
    assert db.query(UserLearningBlockProgressRow).count() == 1


def test_block_outside_any_course_is_400(
    client: TestClient, db: Session, learner: UserRow, learner_token: str
) -> None:
    tree = add_course_tree(db)
    db.query(CourseUnitRow).delete()
    db.commit()
    resp = _complete(client, learner_token, learner.id, tree["block_ids"][0])
    assert resp.status_code == 400
    assert resp.json()["message"] == "Learning block not found in any course"


def test_unknown_block_is_404(
    client: TestClient, learner: UserRow, learner_token: str
) -> None:
    assert _complete(client, learner_token, learner.id, 999).status_code == 404


def test_learner_cannot_complete_for_others(
    client: TestClient, db: Session, learner_token: str
) -> None:
    tree = add_course_tree(db)
    other = add_user(db, email="other@example.com")
    assert _complete(client, learner_token, other.id, tree["block_ids"][0]).status_code == 403


def test_progress_reads(
    client: TestClient, db: Session, learner: UserRow, learner_token: str
) -> None:
    tree = add_course_tree(db, blocks=1)
    _complete(client, learner_token, learner.id, tree["block_ids"][0])
    headers = auth(learner_token)

    summary = client.get(f"/api/progress/user/{learner.id}", headers=headers)
    data = summary.json()["data"]
    assert len(data["learningBlocks"]) == 1
    assert data["trainingAreas"][0]["trainingAreaId"] == tree["training_area_id"]

    by_course = client.get(
        f"/api/progress/courses/{learner.id}/{tree['course_id']}", headers=headers
    ).json()["data"]
    assert by_course[0]["completionPercentage"] == 100.0

    detailed = client.get(f"/api/progress/user/{learner.id}/detailed", headers=headers)
    courses = detailed.json()["data"]["courses"]
    assert courses[0]["moduleName"] == "Service Basics"
    assert courses[0]["status"] == "completed"


def test_detailed_progress_lists_untouched_courses(
    client: TestClient, db: Session, learner: UserRow, learner_token: str
) -> None:
    add_course_tree(db)
    data = client.get(
        f"/api/progress/user/{learner.id}/detailed", headers=auth(learner_token)
    ).json()["data"]
    assert data["courses"][0]["status"] == "not_started"
    assert data["courses"][0]["completionPercentage"] == 0.0


def test_reset_is_admin_only_and_clears_every_level(
    client: TestClient,
    db: Session,
    learner: UserRow,
    learner_token: str,
    admin_token: str,
) -> None:
    tree = add_course_tree(db, blocks=1)
    _complete(client, learner_token, learner.id, tree["block_ids"][0])

    path = f"/api/progress/user/{learner.id}/reset"
    assert client.delete(path, headers=auth(learner_token)).status_code == 403
    resp = client.delete(path, headers=auth(admin_token))
    assert resp.status_code == 200
    assert resp.json()["data"]["learning-blocks"] == 1

    db.expire_all()
    assert db.query(UserLearningBlockProgressRow).count() == 0
    assert db.query(UserTrainingAreaProgressRow).count() == 0


def test_recalculate_rebuilds_aggregates(
    client: TestClient, db: Session, learner: UserRow, learner_token: str
) -> None:
    tree = add_course_tree(db, blocks=2)
    for block_id in tree["block_ids"]:
        db.add(
            UserLearningBlockProgressRow(
                user_id=learner.id, learning_block_id=block_id, status="completed"
            )
        )
    db.commit()

    resp = client.post(
        f"/api/progress/user/{learner.id}/recalculate", headers=auth(learner_token)
    )
    assert resp.status_code == 200
    assert resp.json()["data"] == {
        "courseUnits": 1,
        "courses": 1,
        "modules": 1,
        "trainingAreas": 1,
    }
    db.expire_all()
    assert db.query(UserTrainingAreaProgressRow).one().status == "completed"


def test_learning_path_treats_null_columns_as_wildcards(
    client: TestClient, db: Session, learner: UserRow, learner_token: str
) -> None:
    tree = add_course_tree(db, blocks=2)
    other_unit = UnitRow(name="Night audit")
    db.add(other_unit)
    db.flush()
    db.add_all(
        [
            UnitRoleAssignmentRow(unit_id=tree["unit_id"]),
            UnitRoleAssignmentRow(unit_id=other_unit.id, role_id=None, asset_id=None),
        ]
    )
    db.commit()
    _complete(client, learner_token, learner.id, tree["block_ids"][0])

    resp = client.post(
        "/api/progress/learning-path-completion",
        json={"userId": learner.id, "assetId": 7},
        headers=auth(learner_token),
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["totalUnits"] == 2
    assert data["completedUnits"] == 0
    first = next(u for u in data["units"] if u["unitId"] == tree["unit_id"])
    assert first["completedBlocks"] == 1
    assert first["status"] == "in_progress"
