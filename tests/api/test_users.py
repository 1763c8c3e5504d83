"""Accounts, profiles, invitations and password resets under /api/users."""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.core.timeutil import utcnow
from app.db.tables import (
    AssessmentAttemptRow,
    AssessmentRow,
    InvitationRow,
    NormalUserRow,
    PasswordResetRow,
    UserLearningBlockProgressRow,
    UserRow,
)
from app.services import token_service
from tests.conftest import (
    PASSWORD,
    add_course_tree,
    add_sub_admin,
    add_user,
    auth,
    mint_token,
)

SIGNUP = {
    "firstName": "Mariam",
    "lastName": "Haddad",
    "email": "Mariam@Example.com",
    "password": "secret123",
    "organization": "Acme",
    "subOrganization": "Downtown",
    "asset": "Hospitality",
    "subAsset": "Hotels",
}


# ---- sign-up and login ----


def test_signup_creates_learner_and_returns_token(client: TestClient) -> None:
    resp = client.post("/api/users", json=SIGNUP)
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["user"]["email"] == "mariam@example.com"
    assert body["user"]["userType"] == "user"
    assert token_service.decode_access_token(body["token"])["roles"] == ["user"]


def test_signup_duplicate_email_is_409_and_writes_nothing(
    client: TestClient, db: Session
) -> None:
    assert client.post("/api/users", json=SIGNUP).status_code == 201
    resp = client.post("/api/users", json={**SIGNUP, "email": " MARIAM@example.com"})
    assert resp.status_code == 409
    assert resp.json() == {
        "success": False,
        "message": "User with this email already exists",
    }
    assert db.query(UserRow).count() == 1


def test_signup_validation_errors(client: TestClient) -> None:
    resp = client.post(
        "/api/users", json={**SIGNUP, "email": "nope", "password": "123"}
    )
    assert resp.status_code == 400
    body = resp.json()
    assert body["message"] == "Validation failed"
    assert len(body["errors"]) == 2


def test_staff_accounts_need_an_admin(client: TestClient, admin_token: str) -> None:
    payload = {**SIGNUP, "userType": "sub_admin"}
    assert client.post("/api/users", json=payload).status_code == 403
    resp = client.post("/api/users", json=payload, headers=auth(admin_token))
    assert resp.status_code == 201
    assert resp.json()["user"]["userType"] == "sub_admin"


def test_login_success_and_failure(client: TestClient, learner: UserRow) -> None:
    resp = client.post(
        "/api/users/login", json={"email": "LEARNER@example.com", "password": PASSWORD}
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Login successful"
    assert body["user"]["normalUserDetails"] == {
        "existing": False,
        "initialAssessment": False,
    }

    bad = client.post(
        "/api/users/login", json={"email": "learner@example.com", "password": "wrong"}
    )
    assert bad.status_code == 401
    assert bad.json()["message"] == "Invalid credentials"


def test_login_is_rate_limited(client: TestClient) -> None:
    statuses = [
        client.post(
            "/api/users/login", json={"email": "x@example.com", "password": "wrong"}
        ).status_code
        for _ in range(12)
    ]
    assert statuses[:10] == [401] * 10
    assert statuses[-1] == 429


# ---- reads and RBAC ----


def test_me_includes_profile(client: TestClient, learner_token: str) -> None:
    resp = client.get("/api/users/me", headers=auth(learner_token))
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["email"] == "learner@example.com"
    assert data["normalUserDetails"]["eid"] == "EID-1"
    assert data["subAdminDetails"] is None


def test_learner_cannot_read_other_users(
    client: TestClient, db: Session, learner_token: str
) -> None:
    other = add_user(db, email="other@example.com")
    resp = client.get(f"/api/users/{other.id}", headers=auth(learner_token))
    assert resp.status_code == 403
    assert resp.json()["message"] == "Insufficient permissions"


def test_list_users_is_staff_only(
    client: TestClient, admin_token: str, learner_token: str
) -> None:
    assert client.get("/api/users", headers=auth(learner_token)).status_code == 403
    resp = client.get("/api/users?limit=1", headers=auth(admin_token))
    assert resp.status_code == 200
    assert resp.json()["meta"] == {"limit": 1, "offset": 0, "count": 1}


def test_invalid_token_is_401(client: TestClient) -> None:
    assert client.get("/api/users/me", headers=auth("garbage")).status_code == 401
    assert (
        client.get("/api/users/me", headers=auth(mint_token("abc"))).status_code == 401
    )


# ---- updates ----


def test_partial_update_keeps_other_fields(
    client: TestClient, db: Session, learner: UserRow, learner_token: str
) -> None:
    resp = client.put(
        f"/api/users/{learner.id}",
        json={"firstName": "Renamed"},
        headers=auth(learner_token),
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["firstName"] == "Renamed"
    assert data["lastName"] == "User"
    assert data["organization"] == "Acme"


def test_update_to_taken_email_is_409(
    client: TestClient, db: Session, learner: UserRow, learner_token: str
) -> None:
    add_user(db, email="taken@example.com")
    resp = client.put(
        f"/api/users/{learner.id}",
        json={"email": "taken@example.com"},
        headers=auth(learner_token),
    )
    assert resp.status_code == 409


def test_learner_cannot_change_own_type(
    client: TestClient, learner: UserRow, learner_token: str
) -> None:
    resp = client.put(
        f"/api/users/{learner.id}",
        json={"userType": "admin"},
        headers=auth(learner_token),
    )
    assert resp.status_code == 403


def test_delete_user_is_admin_only(
    client: TestClient, learner: UserRow, learner_token: str, admin_token: str
) -> None:
    path = f"/api/users/{learner.id}"
    assert client.delete(path, headers=auth(learner_token)).status_code == 403
    assert client.delete(path, headers=auth(admin_token)).status_code == 200
    assert client.delete(path, headers=auth(admin_token)).status_code == 404


def test_delete_user_cascades_to_profile_progress_and_attempts(
    client: TestClient, db: Session, learner: UserRow, admin_token: str
) -> None:
    user_id = learner.id
    tree = add_course_tree(db)
    assessment = AssessmentRow(title="Final", training_area_id=tree["training_area_id"])
    db.add(assessment)
    db.flush()
    db.add_all(
        [
            UserLearningBlockProgressRow(
                user_id=user_id,
                learning_block_id=tree["block_ids"][0],
                status="completed",
            ),
            AssessmentAttemptRow(
                user_id=user_id, assessment_id=assessment.id, score=80, passed=True
            ),
        ]
    )
    db.commit()
    db.expunge_all()

    resp = client.delete(f"/api/users/{user_id}", headers=auth(admin_token))
    assert resp.status_code == 200

    assert db.query(UserRow).filter(UserRow.id == user_id).count() == 0
    assert db.query(NormalUserRow).filter(NormalUserRow.user_id == user_id).count() == 0
    assert (
        db.query(UserLearningBlockProgressRow)
        .filter(UserLearningBlockProgressRow.user_id == user_id)
        .count()
        == 0
    )
    assert (
        db.query(AssessmentAttemptRow)
        .filter(AssessmentAttemptRow.user_id == user_id)
        .count()
        == 0
    )
    assert db.query(AssessmentRow).count() == 1


def test_sub_admin_edits_learners_but_not_staff(
    client: TestClient, db: Session, admin: UserRow, learner: UserRow
) -> None:
    lead = add_sub_admin(db, email="lead@example.com", eid="SA-1")
    peer = add_sub_admin(db, email="peer@example.com", eid="SA-2")
    token = mint_token(lead.id, ["sub_admin"])

    for target in (admin, peer):
        resp = client.put(
            f"/api/users/{target.id}",
            json={"email": "lead-owned@example.com"},
            headers=auth(token),
        )
        assert resp.status_code == 403
    db.expire_all()
    assert db.get(UserRow, admin.id).email == "admin@example.com"

    own = client.put(
        f"/api/users/{lead.id}", json={"firstName": "Lea"}, headers=auth(token)
    )
    assert own.status_code == 200
    managed = client.put(
        f"/api/users/{learner.id}", json={"lastName": "Renamed"}, headers=auth(token)
    )
    assert managed.status_code == 200
    assert managed.json()["data"]["lastName"] == "Renamed"


# ---- profiles ----


def test_register_normal_user_once(
    client: TestClient, db: Session
) -> None:
    user = add_user(db, email="fresh@example.com")
    token = mint_token(user.id, ["user"])
    profile = {
        "roleCategory": "Front Office",
        "role": "Agent",
        "seniority": "Staff",
        "eid": "EID-9",
        "phoneNumber": "+971500000009",
    }
    path = f"/api/users/{user.id}/register-normal-user"
    resp = client.post(path, json=profile, headers=auth(token))
    assert resp.status_code == 201
    assert resp.json()["data"]["eid"] == "EID-9"
    assert client.post(path, json=profile, headers=auth(token)).status_code == 409

    update = client.put(
        f"/api/users/{user.id}/normal-user",
        json={"seniority": "Manager"},
        headers=auth(token),
    )
    assert update.json()["data"]["seniority"] == "Manager"
    assert update.json()["data"]["role"] == "Agent"


def test_sub_admin_registration_flow(client: TestClient, db: Session) -> None:
    user = add_user(db, email="lead@example.com", user_type="sub_admin")
    details = client.get(f"/api/users/sub-admins/registration/{user.id}")
    assert details.status_code == 200
    assert details.json()["data"]["organization"] == "Acme"

    payload = {
        "password": "newpass1",
        "jobTitle": "Training Lead",
        "eid": "SA-1",
        "phoneNumber": "+97150",
    }
    resp = client.post(f"/api/users/sub-admins/register/{user.id}", json=payload)
    assert resp.status_code == 200
    assert resp.json()["user"]["userType"] == "sub_admin"

    again = client.post(f"/api/users/sub-admins/register/{user.id}", json=payload)
    assert again.status_code == 409

    login = client.post(
        "/api/users/login", json={"email": "lead@example.com", "password": "newpass1"}
    )
    assert login.status_code == 200


def test_sub_admin_registration_rejects_learners(
    client: TestClient, learner: UserRow
) -> None:
    resp = client.get(f"/api/users/sub-admins/registration/{learner.id}")
    assert resp.status_code == 400


# ---- invitations ----


def test_invitation_lifecycle(client: TestClient, db: Session) -> None:
    lead = add_sub_admin(db, email="lead@example.com", eid="SA-1", organization="Globex")
    token = mint_token(lead.id, ["sub_admin"])

    resp = client.post(
        "/api/users/invitations",
        json={"type": "new_joiner", "createdBy": lead.id},
        headers=auth(token),
    )
    assert resp.status_code == 201
    link = resp.json()["data"]["invitationLink"]
    raw = link.split("token=", 1)[1]

    stored = db.query(InvitationRow).one()
    assert stored.token_hash == token_service.hash_opaque_token(raw)

    verify = client.get(f"/api/users/invitations/verify/{raw}")
    assert verify.status_code == 200
    assert verify.json()["data"]["subAdmin"]["organization"] == "Globex"

    listing = client.get(
        f"/api/users/invitations/creator/{lead.id}", headers=auth(token)
    )
    assert len(listing.json()["data"]["invitations"]) == 1

    gone = client.delete(f"/api/users/invitations/token/{raw}", headers=auth(token))
    assert gone.status_code == 200
    assert client.get(f"/api/users/invitations/verify/{raw}").status_code == 404


def test_sub_admin_cannot_invite_for_someone_else(
    client: TestClient, db: Session
) -> None:
    lead = add_sub_admin(db, email="lead@example.com", eid="SA-1")
    other = add_sub_admin(db, email="lead2@example.com", eid="SA-2")
    token = mint_token(lead.id, ["sub_admin"])
    resp = client.post(
        "/api/users/invitations",
        json={"type": "existing_joiner", "createdBy": other.id},
        headers=auth(token),
    )
    assert resp.status_code == 403

    raw = token_service.new_opaque_token()
    db.add(
        InvitationRow(
            created_by=other.id,
            type="new_joiner",
            token_hash=token_service.hash_opaque_token(raw),
        )
    )
    db.commit()

    listing = client.get(
        f"/api/users/invitations/creator/{other.id}", headers=auth(token)
    )
    assert listing.status_code == 403
    gone = client.delete(f"/api/users/invitations/token/{raw}", headers=auth(token))
    assert gone.status_code == 404
    assert db.query(InvitationRow).count() == 1


def test_admin_manages_any_sub_admins_invitations(
    client: TestClient, db: Session, admin_token: str
) -> None:
    lead = add_sub_admin(db, email="lead@example.com", eid="SA-1")
    resp = client.post(
        "/api/users/invitations",
        json={"type": "new_joiner", "createdBy": lead.id},
        headers=auth(admin_token),
    )
    assert resp.status_code == 201
    raw = resp.json()["data"]["invitationLink"].split("token=", 1)[1]
    gone = client.delete(
        f"/api/users/invitations/token/{raw}", headers=auth(admin_token)
    )
    assert gone.status_code == 200


# ---- password reset ----


def _reset_token(db: Session, user: UserRow, **values: object) -> str:
    raw = token_service.new_opaque_token()
    db.add(
        PasswordResetRow(
            user_id=user.id,
            token_hash=token_service.hash_opaque_token(raw),
            expires_at=values.pop("expires_at", utcnow() + timedelta(hours=1)),
            **values,
        )
    )
    db.commit()
    return raw


def test_reset_request_answers_the_same_for_unknown_email(
    client: TestClient, db: Session, learner: UserRow
) -> None:
    known = client.post(
        "/api/users/password-reset/request", json={"email": "learner@example.com"}
    )
    unknown = client.post(
        "/api/users/password-reset/request", json={"email": "ghost@example.com"}
    )
    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    assert db.query(PasswordResetRow).count() == 1


def test_reset_password_is_single_use(
    client: TestClient, db: Session, learner: UserRow
) -> None:
    raw = _reset_token(db, learner)
    verify = client.get(f"/api/users/password-reset/verify/{raw}")
    assert verify.json()["data"]["email"] == "learner@example.com"

    resp = client.post(
        "/api/users/password-reset/reset", json={"token": raw, "password": "brandnew1"}
    )
    assert resp.status_code == 200
    again = client.post(
        "/api/users/password-reset/reset", json={"token": raw, "password": "brandnew2"}
    )
    assert again.status_code == 400

    login = client.post(
        "/api/users/login", json={"email": "learner@example.com", "password": "brandnew1"}
    )
    assert login.status_code == 200


@pytest.mark.parametrize("used,expired", [(True, False), (False, True)])
def test_reset_rejects_used_or_expired_tokens(
    client: TestClient, db: Session, learner: UserRow, used: bool, expired: bool
) -> None:
    expires = utcnow() - timedelta(minutes=1) if expired else utcnow() + timedelta(hours=1)
    raw = _reset_token(db, learner, used=used, expires_at=expires)
    resp = client.get(f"/api/users/password-reset/verify/{raw}")
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid or expired password reset token"
