"""Tests for the structured log formatter."""

import json
import logging

from tenantgate.infra.logging import TenantJsonFormatter


def _format(**extra):
    formatter = TenantJsonFormatter("%(asctime)s %(name)s %(levelname)s %(message)s")
    record = logging.makeLogRecord({
        "name": "tenantgate.services.session_manager",
        "levelno": logging.INFO,
        "levelname": "INFO",
        "msg": "Session created",
        **extra,
    })
    return json.loads(formatter.format(record))


def test_context_fields_are_grouped():
    line = _format(tenant_id=3, user_id=7, session_id="s1", ip="10.0.0.1")

    assert line["message"] == "Session created"
    assert line["service"] == "tenantgate"
    assert line["context"] == {"tenant_id": 3, "user_id": 7, "session_id": "s1"}
    assert line["ip"] == "10.0.0.1"
    assert "tenant_id" not in line


def test_empty_context_is_omitted():
    line = _format(request_id=None)

    assert "context" not in line
    assert "request_id" not in line
    assert line["levelname"] == "INFO"
