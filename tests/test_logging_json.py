# tests/test_logging_json.py

import json
import logging
from io import StringIO

import pytest

from audit_json.crud.audit_log import InMemoryAuditLog
from audit_json.logging_config import JSONLogFormatter
from audit_json.schemas.audit_entry import AuditAction, Granularity, TableRef
from audit_json.services.attachment import AttachmentManager
from audit_json.services.capture import CaptureHook, MutationEvent


@pytest.fixture
def json_stream():
    logger = logging.getLogger("audit_json.capture")

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JSONLogFormatter())

    # On isole ce handler pour le test
    saved = (logger.handlers, logger.level, logger.propagate)
    logger.handlers = [handler]
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    yield stream
    logger.handlers, logger.level, logger.propagate = saved


def _lines(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]


def test_json_log_formatter_produces_valid_json(json_stream):
    logging.getLogger("audit_json.capture").info(
        "audit entry emitted",
        extra={"table": "public.customers", "action": "INSERT", "audit_id": 12},
    )

    [data] = _lines(json_stream)

    # Champs de base
    assert data["message"] == "audit entry emitted"
    assert data["level"] == "INFO"
    assert data["logger"] == "audit_json.capture"
    assert "timestamp" in data

    # Champs extra
    assert data["table"] == "public.customers"
    assert data["action"] == "INSERT"
    assert data["audit_id"] == 12


def test_failed_capture_is_logged_with_traceback(json_stream, audit_context):
    manager = AttachmentManager(lambda ref: ["id"])
    hook = CaptureHook(manager, InMemoryAuditLog())
    event = MutationEvent(
        table=TableRef(schema_name="public", table_name="customers"),
        action=AuditAction.DELETE,
        granularity=Granularity.ROW,
        context=audit_context,
        old_row={"id": 1},
    )

    with pytest.raises(Exception):
        hook.capture(event)

    [data] = _lines(json_stream)
    assert data["level"] == "ERROR"
    assert data["message"] == "capture failed"
    assert data["table"] == "public.customers"
    assert data["action"] == "DELETE"
    assert data["transaction_id"] == 42
    assert "ConfigurationError" in data["exc_info"]


def test_configure_logging_installs_json_handler():
    from audit_json.logging_config import configure_logging

    configure_logging("DEBUG")
    logger = logging.getLogger("audit_json")
    assert logger.level == logging.DEBUG
    assert logger.propagate is False
    assert any(isinstance(h.formatter, JSONLogFormatter) for h in logger.handlers)
    assert logging.getLogger("audit_json.capture").level == logging.DEBUG
