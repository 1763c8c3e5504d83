"""X-Request-ID handling and the per-request summary log line."""

from __future__ import annotations

import logging
import uuid

import pytest
from fastapi.testclient import TestClient


def test_request_id_generated_when_not_provided(client: TestClient) -> None:
    resp = client.get("/health")
    req_id = resp.headers.get("x-request-id")
    assert req_id is not None
    uuid.UUID(req_id)


def test_request_id_echoed_when_provided(client: TestClient) -> None:
    custom_id = "my-custom-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": custom_id})
    assert resp.headers.get("x-request-id") == custom_id


def test_oversized_request_id_is_replaced(client: TestClient) -> None:
    resp = client.get("/health", headers={"X-Request-ID": "x" * 200})
    req_id = resp.headers["x-request-id"]
    assert req_id != "x" * 200
    uuid.UUID(req_id)


def test_request_id_present_on_error_responses(client: TestClient) -> None:
    resp = client.get("/api/users/me")
    assert resp.status_code == 401
    assert resp.headers.get("x-request-id") is not None


def test_summary_line_logged_with_request_id(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.INFO, logger="app.middleware.request_context"):
        client.get("/health", headers={"X-Request-ID": "trace-42"})
    lines = [
        r for r in caplog.records if r.name == "app.middleware.request_context"
    ]
    assert lines
    assert "GET /health -> 200" in lines[-1].getMessage()
    assert lines[-1].status_code == 200
