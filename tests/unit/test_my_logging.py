"""
Correlation ids on log records.
"""

import logging

from calsync.utils.my_logging import LOG_FORMAT, CorrelationIdFilter, correlation_id_var


def record(**extra) -> logging.LogRecord:
    return logging.makeLogRecord({"name": "calsync.test", "levelname": "INFO", "msg": "synced", **extra})


class TestCorrelationIdFilter:

    def test_outside_a_request_uses_placeholder(self):
        entry = record()

        assert CorrelationIdFilter().filter(entry) is True
        assert entry.correlation_id == "-"

    def test_current_request_id_is_stamped(self):
        token = correlation_id_var.set("req-123")
        try:
            entry = record()
            CorrelationIdFilter().filter(entry)
        finally:
            correlation_id_var.reset(token)

        assert entry.correlation_id == "req-123"

    def test_explicit_extra_wins(self):
        token = correlation_id_var.set("req-123")
        try:
            entry = record(correlation_id="from-extra")
            CorrelationIdFilter().filter(entry)
        finally:
            correlation_id_var.reset(token)

        assert entry.correlation_id == "from-extra"

    def test_formatted_line_carries_the_id(self):
        entry = record(correlation_id="req-9")

        line = logging.Formatter(LOG_FORMAT).format(entry)

        assert "[req-9] synced" in line
        assert "calsync.test - INFO" in line
