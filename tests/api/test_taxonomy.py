from __future__ import annotations

from fastapi.testclient import TestClient

from tests.conftest import auth


def _create(client: TestClient, token: str, path: str, body: dict) -> dict:
    resp = client.post(f"/api/users/{path}", json=body, headers=auth(token))
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def test_asset_hierarchy_and_filters(client: TestClient, admin_token: str) -> None:
    asset = _create(client, admin_token, "assets", {"name": " Hospitality "})
    assert asset["name"] == "Hospitality"
    hotels = _create(
        client, admin_token, "sub-assets", {"name": "Hotels", "assetId": asset["id"]}
    )
    org = _create(
        client,
        admin_token,
        "organizations",
        {"name": "Acme", "assetId": asset["id"], "subAssetId": hotels["id"]},
    )
    _create(
        client,
        admin_token,
        "sub-organizations",
        {
            "name": "Downtown",
            "assetId": asset["id"],
            "subAssetId": hotels["id"],
            "organizationId": org["id"],
        },
    )

    subs = client.get(f"/api/users/sub-assets/by-asset/{asset['id']}").json()["data"]
    assert [s["name"] for s in subs] == ["Hotels"]
    orgs = client.get(
        f"/api/users/organizations/by-asset/{asset['id']}/{hotels['id']}"
    ).json()["data"]
    assert [o["name"] for o in orgs] == ["Acme"]
    branches = client.get(
        f"/api/users/sub-organizations/by-organization/{org['id']}"
    ).json()["data"]
    assert [b["name"] for b in branches] == ["Downtown"]


def test_duplicate_unique_name_is_409(client: TestClient, admin_token: str) -> None:
    _create(client, admin_token, "seniority-levels", {"name": "Manager"})
    resp = client.post(
        "/api/users/seniority-levels",
        json={"name": "Manager"},
        headers=auth(admin_token),
    )
    assert resp.status_code == 409
    assert resp.json()["message"] == "Seniority level name already exists"


def test_sub_asset_must_belong_to_asset(client: TestClient, admin_token: str) -> None:
    a = _create(client, admin_token, "assets", {"name": "A"})
    b = _create(client, admin_token, "assets", {"name": "B"})
    sub_b = _create(client, admin_token, "sub-assets", {"name": "B1", "assetId": b["id"]})
    resp = client.post(
        "/api/users/organizations",
        json={"name": "Mixed", "assetId": a["id"], "subAssetId": sub_b["id"]},
        headers=auth(admin_token),
    )
    assert resp.status_code == 400


def test_missing_parent_is_404(client: TestClient, admin_token: str) -> None:
    resp = client.post(
        "/api/users/roles",
        json={"name": "Agent", "categoryId": 999},
        headers=auth(admin_token),
    )
    assert resp.status_code == 404
    assert resp.json()["message"] == "Role category not found"


def test_reads_are_public_and_writes_admin_only(
    client: TestClient, admin_token: str, learner_token: str
) -> None:
    category = _create(client, admin_token, "role-categories", {"name": "Front Office"})
    assert client.get("/api/users/role-categories").status_code == 200
    assert client.get(f"/api/users/role-categories/{category['id']}").status_code == 200

    denied = client.post(
        "/api/users/role-categories",
        json={"name": "Back Office"},
        headers=auth(learner_token),
    )
    assert denied.status_code == 403
    assert client.post("/api/users/role-categories", json={"name": "X"}).status_code == 401


def test_update_and_delete_cascade_to_children(
    client: TestClient, admin_token: str
) -> None:
    category = _create(client, admin_token, "role-categories", {"name": "Kitchen"})
    _create(client, admin_token, "roles", {"name": "Chef", "categoryId": category["id"]})

    renamed = client.put(
        f"/api/users/role-categories/{category['id']}",
        json={"name": "Culinary"},
        headers=auth(admin_token),
    )
    assert renamed.json()["data"]["name"] == "Culinary"

    deleted = client.delete(
        f"/api/users/role-categories/{category['id']}", headers=auth(admin_token)
    )
    assert deleted.status_code == 200
    assert client.get("/api/users/roles").json()["data"] == []
