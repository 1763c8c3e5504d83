from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY
from sqlalchemy.orm import Session

from app.db.tables import MediaFileRow, UserRow
from app.services import media_service
from tests.conftest import auth


def _upload(client: TestClient, token: str, name: str, content: bytes, mime: str):
    return client.post(
        "/api/media/upload", files={"file": (name, content, mime)}, headers=auth(token)
    )


def _uploads(category: str) -> float:
    value = REGISTRY.get_sample_value("media_uploads_total", {"category": category})
    return value or 0.0


def test_upload_writes_file_and_row(
    client: TestClient, db: Session, learner: UserRow, learner_token: str
) -> None:
    before = _uploads("images")
    resp = _upload(client, learner_token, "Logo.PNG", b"\x89PNG fake", "image/png")
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["originalName"] == "Logo.PNG"
    assert data["mimeType"] == "image/png"
    assert data["fileSize"] == 9
    assert data["uploadedBy"] == learner.id
    assert data["url"].startswith("/uploads/images/")
    assert data["filename"].endswith(".png")
    assert Path(data["filePath"]).read_bytes() == b"\x89PNG fake"
    assert _uploads("images") - before == 1
    assert db.query(MediaFileRow).count() == 1


def test_upload_requires_login(client: TestClient) -> None:
    resp = client.post(
        "/api/media/upload", files={"file": ("a.txt", b"hi", "text/plain")}
    )
    assert resp.status_code == 401


def test_disallowed_type_is_rejected(
    client: TestClient, db: Session, learner_token: str
) -> None:
    resp = _upload(client, learner_token, "run.sh", b"#!/bin/sh", "application/x-sh")
    assert resp.status_code == 400
    assert resp.json()["message"] == "File type application/x-sh is not allowed"
    assert db.query(MediaFileRow).count() == 0


def test_oversized_upload_is_413_and_leaves_nothing(
    client: TestClient,
    db: Session,
    learner_token: str,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    small = dataclasses.replace(media_service.SETTINGS, max_upload_bytes=4)
    monkeypatch.setattr(media_service, "SETTINGS", small)
    files_before = set(media_service.upload_root().rglob("*"))

    resp = _upload(client, learner_token, "notes.txt", b"too long", "text/plain")
    assert resp.status_code == 413
    assert db.query(MediaFileRow).count() == 0
    assert set(media_service.upload_root().rglob("*")) - files_before <= {
        media_service.upload_root() / "documents"
    }


def test_upload_multiple(client: TestClient, learner_token: str) -> None:
    resp = client.post(
        "/api/media/upload-multiple",
        files=[
            ("files", ("a.txt", b"a", "text/plain")),
            ("files", ("b.csv", b"x,y", "text/csv")),
        ],
        headers=auth(learner_token),
    )
    assert resp.status_code == 201
    assert resp.json()["message"] == "2 files uploaded successfully"
    assert [m["originalName"] for m in resp.json()["data"]] == ["a.txt", "b.csv"]


def test_search_type_and_uploader_filters(
    client: TestClient, learner: UserRow, learner_token: str
) -> None:
    _upload(client, learner_token, "Safety-Guide.pdf", b"%PDF", "application/pdf")
    _upload(client, learner_token, "banner.png", b"png", "image/png")
    _upload(client, learner_token, "intro.mp4", b"mp4", "video/mp4")
    headers = auth(learner_token)

    found = client.get("/api/media/search?filename=safety", headers=headers)
    assert [m["originalName"] for m in found.json()["data"]] == ["Safety-Guide.pdf"]

    images = client.get("/api/media/type/image", headers=headers).json()["data"]
    assert [m["originalName"] for m in images] == ["banner.png"]
    pngs = client.get("/api/media/type/image/png", headers=headers).json()["data"]
    assert len(pngs) == 1

    mine = client.get(f"/api/media/uploader/{learner.id}", headers=headers).json()
    assert len(mine["data"]) == 3

    listed = client.get("/api/media?limit=2", headers=headers).json()
    assert len(listed["data"]) == 2


def test_delete_is_admin_only_and_removes_file(
    client: TestClient, learner_token: str, admin_token: str
) -> None:
    media = _upload(client, learner_token, "old.txt", b"bye", "text/plain").json()["data"]
    path = Path(media["filePath"])

    assert client.delete(f"/api/media/{media['id']}", headers=auth(learner_token)).status_code == 403
    assert client.get(f"/api/media/{media['id']}").status_code == 200

    resp = client.delete(f"/api/media/{media['id']}", headers=auth(admin_token))
    assert resp.status_code == 200
    assert not path.exists()
    assert client.get(f"/api/media/{media['id']}").status_code == 404
