"""Tests for the loguru helpers."""

import pytest
from loguru import logger

from eventdesk.core.logging import log_audit_event, log_debug, log_error, log_info, log_warning


@pytest.fixture
def records():
    captured = []
    handler_id = logger.add(captured.append, level="DEBUG", format="{message}")
    yield captured
    logger.remove(handler_id)


def test_metadata_is_appended_sorted(records):
    log_info("Ticket updated", ticket_id="t-1", actor="u-2")

    message = records[-1].record["message"]
    assert message == "Ticket updated | actor=u-2 ticket_id=t-1"
    assert records[-1].record["extra"]["ticket_id"] == "t-1"


def test_helpers_use_their_levels(records):
    log_debug("debug")
    log_info("info")
    log_warning("warning")
    log_error("error")

    assert [item.record["level"].name for item in records[-4:]] == ["DEBUG", "INFO", "WARNING", "ERROR"]
    assert records[-1].record["message"] == "error"


def test_audit_event_drops_empty_fields_and_is_tagged(records):
    log_audit_event(
        "SUPPORT TICKET",
        "update",
        user_id="u-1",
        user_email=None,
        tenant_id="tenant-1",
        entity_type="ticket",
        entity_id="t-9",
        status=None,
    )

    record = records[-1].record
    assert record["message"] == (
        "SUPPORT TICKET update | entity_id=t-9 entity_type=ticket tenant_id=tenant-1 user_id=u-1"
    )
    assert record["extra"]["audit"] is True


def test_plain_logs_are_not_audit(records):
    log_info("Startup", environment="test")

    assert records[-1].record["extra"]["audit"] is False
