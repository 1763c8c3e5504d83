from __future__ import annotations

import json
import logging
import sys

import pytest

from app.core.logging import _ContainerFormatter, _JsonFormatter, setup_logging
from app.middleware.request_context import install_request_context_filter


def _record(level: int = logging.INFO, msg: str = "hello", **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="app.test",
        level=level,
        pathname="svc.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def restore_logging() -> None:
    yield
    setup_logging("info")
    install_request_context_filter()


# ---- setup_logging ----


def test_setup_logging_sets_root_level() -> None:
    setup_logging("debug")
    assert logging.getLogger().level == logging.DEBUG

    setup_logging("warning")
    assert logging.getLogger().level == logging.WARNING


def test_setup_logging_defaults_to_info_for_unknown_level() -> None:
    setup_logging("nonexistent")
    assert logging.getLogger().level == logging.INFO


def test_setup_logging_keeps_a_single_handler() -> None:
    setup_logging("info")
    setup_logging("info", json_format=True)
    handlers = logging.getLogger().handlers
    assert len(handlers) == 1
    assert isinstance(handlers[0].formatter, _JsonFormatter)


@pytest.mark.parametrize("name", ["uvicorn.access", "httpx", "aiosqlite"])
def test_setup_logging_quiets_noisy_libraries_at_debug(name: str) -> None:
    setup_logging("debug")
    assert logging.getLogger(name).level == logging.WARNING


def test_setup_logging_allows_libraries_at_error() -> None:
    setup_logging("error")
    assert logging.getLogger("httpx").level == logging.ERROR


# ---- container formatter ----


def test_container_formatter_adds_location_from_warning_up() -> None:
    fmt = _ContainerFormatter()
    assert "[svc.py:42]" not in fmt.format(_record(logging.INFO))
    assert "[svc.py:42]" in fmt.format(_record(logging.WARNING))
    assert "[svc.py:42]" in fmt.format(_record(logging.ERROR))


def test_container_formatter_shows_request_id() -> None:
    fmt = _ContainerFormatter()
    output = fmt.format(_record(request_id="req-7"))
    assert "[req-7] app.test" in output


def test_container_formatter_omits_placeholder_request_id() -> None:
    fmt = _ContainerFormatter()
    output = fmt.format(_record(request_id="-"))
    assert "[-]" not in output
    assert "app.test" in output


def test_container_formatter_is_not_json() -> None:
    output = _ContainerFormatter().format(_record(msg="server started"))
    assert "INFO" in output and "server started" in output
    with pytest.raises(json.JSONDecodeError):
        json.loads(output)


# ---- JSON formatter ----


def test_json_formatter_produces_valid_json() -> None:
    record = logging.LogRecord(
        name="app.reports",
        level=logging.INFO,
        pathname="reports.py",
        lineno=3,
        msg="Built %s",
        args=("overall-analytics",),
        exc_info=None,
    )
    parsed = json.loads(_JsonFormatter().format(record))
    assert parsed["level"] == "INFO"
    assert parsed["logger"] == "app.reports"
    assert parsed["message"] == "Built overall-analytics"
    assert "timestamp" in parsed


def test_json_formatter_lifts_request_context_fields() -> None:
    record = _record(
        request_id="abc-123",
        method="POST",
        path="/api/progress/learning-blocks/complete",
        status_code=200,
        duration_ms=12.5,
    )
    parsed = json.loads(_JsonFormatter().format(record))
    assert parsed["request_id"] == "abc-123"
    assert parsed["method"] == "POST"
    assert parsed["path"] == "/api/progress/learning-blocks/complete"
    assert parsed["status_code"] == 200
    assert parsed["duration_ms"] == 12.5


def test_json_formatter_skips_missing_context() -> None:
    parsed = json.loads(_JsonFormatter().format(_record(request_id="-")))
    assert "request_id" not in parsed
    assert "user_id" not in parsed


def test_json_formatter_includes_exception_info() -> None:
    try:
        raise ValueError("upload failed")
    except ValueError:
        record = logging.LogRecord(
            name="app.media",
            level=logging.ERROR,
            pathname="media.py",
            lineno=1,
            msg="Something failed",
            args=(),
            exc_info=sys.exc_info(),
        )
    parsed = json.loads(_JsonFormatter().format(record))
    assert "ValueError: upload failed" in parsed["exception"]
