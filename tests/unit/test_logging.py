"""Unit tests for correlation-aware logging helpers."""

import logging

from relay.utils.logging import (
    clear_correlation_id,
    get_correlation_id,
    get_logger,
    log_propagation,
    log_webhook_event,
    set_correlation_id,
)


def test_correlation_id_lifecycle():
    """Test setting, reading and clearing the correlation ID."""
    assert set_correlation_id("req-123") == "req-123"
    assert get_correlation_id() == "req-123"

    clear_correlation_id()
    assert get_correlation_id() is None

    generated = set_correlation_id()
    assert generated
    clear_correlation_id()


def test_get_logger_adds_correlation_filter_once():
    """Test the correlation filter is attached once."""
    logger = get_logger("relay.tests.logging")
    get_logger("relay.tests.logging")

    assert len(logger.filters) == 1


def test_webhook_event_levels(caplog):
    """Test errors log at ERROR and the rest at INFO."""
    logger = logging.getLogger("relay.tests.webhook")

    with caplog.at_level(logging.INFO, logger="relay.tests.webhook"):
        log_webhook_event(logger, "checkout.session.completed", "evt_1", result="success")
        log_webhook_event(logger, "payment_intent.created", "evt_2", result="skipped")
        log_webhook_event(logger, "invoice.payment_succeeded", "evt_3", result="error", error="bad")

    assert [r.levelno for r in caplog.records] == [logging.INFO, logging.WARNING, logging.ERROR]
    assert "error=bad" in caplog.records[2].getMessage()


def test_propagation_message_includes_context(caplog):
    """Test propagation logs carry target and status."""
    logger = logging.getLogger("relay.tests.propagation")

    with caplog.at_level(logging.INFO, logger="relay.tests.propagation"):
        log_propagation(logger, "crm_contact", "error", status_code=422, detail="Invalid phone")

    record = caplog.records[0]
    assert record.levelno == logging.ERROR
    assert "status_code=422" in record.getMessage()
    assert record.target == "crm_contact"
