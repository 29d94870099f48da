"""Unit tests for logging configuration helpers."""

from __future__ import annotations

import logging

import structlog

from service_broker.observability import logging as broker_logging


def test_request_id_added_from_context():
    token = broker_logging.request_id_ctx.set("req-abcdef12")
    try:
        event = broker_logging._add_request_id(None, "info", {"event": "hello"})
    finally:
        broker_logging.request_id_ctx.reset(token)
    assert event["request_id"] == "req-abcdef12"


def test_request_id_absent_outside_request():
    event = broker_logging._add_request_id(None, "info", {"event": "hello"})
    assert "request_id" not in event


def test_record_extras_copied():
    record = logging.LogRecord(
        "service_broker.broker.lifecycle", logging.INFO, __file__, 1,
        "Provisioned %s", ("abc",), None,
    )
    record.instance_id = "abc"
    record.namespace = "ns1"

    event = broker_logging._add_record_extras(
        None, "info", {"event": record.getMessage(), "_record": record},
    )

    assert event["instance_id"] == "abc"
    assert event["namespace"] == "ns1"
    assert "lineno" not in event


def test_configure_logging_uses_given_level(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        broker_logging.configure_logging(level="WARNING", json_output=True)

        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
        structlog.reset_defaults()
