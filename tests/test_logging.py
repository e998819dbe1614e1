import json
import logging

from leave_engine.core.logging import CustomJsonFormatter, correlation_id_var


def _format(message):
    formatter = CustomJsonFormatter("%(timestamp) %(level) %(name) %(message)")
    record = logging.LogRecord("leave_engine.test", logging.WARNING, __file__, 1, message, None, None)
    return json.loads(formatter.format(record))


def test_log_lines_are_json_with_level_and_timestamp():
    line = _format("balance check failed")
    assert line["message"] == "balance check failed"
    assert line["level"] == "WARNING"
    assert line["name"] == "leave_engine.test"
    assert line["timestamp"]


def test_correlation_id_is_attached():
    token = correlation_id_var.set("monthly_accrual:2025-03:1")
    try:
        line = _format("processing")
    finally:
        correlation_id_var.reset(token)
    assert line["correlation_id"] == "monthly_accrual:2025-03:1"


def test_no_correlation_id_outside_a_request():
    assert "correlation_id" not in _format("idle")
