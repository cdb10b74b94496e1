"""Tests for log formatting and message correlation."""

import json
import logging

from mail_receiver.config.logging_config import JSONFormatter, MessageIdFilter, configure_logging, current_message_id


def make_record(message="hello"):
    return logging.LogRecord("mail_receiver.test", logging.INFO, __file__, 1, message, None, None)


def test_filter_stamps_current_message_id():
    record = make_record()
    token = current_message_id.set("abc@example.com")
    try:
        assert MessageIdFilter().filter(record)
    finally:
        current_message_id.reset(token)

    assert record.message_id == "abc@example.com"


def test_filter_without_message():
    record = make_record()
    MessageIdFilter().filter(record)
    assert record.message_id == "-"


def test_json_formatter():
    record = make_record("Processed with outcome created")
    record.message_id = "abc@example.com"

    data = json.loads(JSONFormatter().format(record))

    assert data["level"] == "INFO"
    assert data["message_id"] == "abc@example.com"
    assert data["message"] == "Processed with outcome created"


def test_configure_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level

    try:
        configure_logging("debug", json_format=True)

        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
    finally:
        root.handlers[:] = handlers
        root.setLevel(level)
