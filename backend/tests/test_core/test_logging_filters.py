"""
Unit tests for logging filters, formatter and context ids
"""
import json
import logging
import uuid
from io import StringIO

from picstash.core.logging_config import (
    CustomJsonFormatter,
    JobIdFilter,
    RequestIdFilter,
    SanitizingFilter,
    clear_job_id,
    clear_request_id,
    get_job_id,
    get_request_id,
    sanitize_log_value,
    set_job_id,
    set_request_id,
)


def make_record(msg="test message", args=None):
    return logging.LogRecord(
        name="picstash.test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=args,
        exc_info=None,
    )


class TestContextIds:
    """Request and job ids bound via contextvars"""

    def test_request_id_set_and_reset(self):
        request_id = str(uuid.uuid4())
        token = set_request_id(request_id)
        assert get_request_id() == request_id

        clear_request_id(token)
        assert get_request_id() is None

    def test_nested_job_ids_restore_previous(self):
        outer = set_job_id("job-outer")
        inner = set_job_id("job-inner")
        assert get_job_id() == "job-inner"

        clear_job_id(inner)
        assert get_job_id() == "job-outer"

        clear_job_id(outer)
        assert get_job_id() is None


class TestIdFilters:

    def test_request_id_filter_adds_bound_id(self):
        token = set_request_id("req-123")
        try:
            record = make_record()
            assert RequestIdFilter().filter(record) is True
            assert record.request_id == "req-123"
        finally:
            clear_request_id(token)

    def test_request_id_filter_default(self):
        record = make_record()
        RequestIdFilter().filter(record)
        assert record.request_id == "-"

    def test_job_id_filter_adds_bound_id(self):
        token = set_job_id("job-42")
        try:
            record = make_record()
            JobIdFilter().filter(record)
            assert record.job_id == "job-42"
        finally:
            clear_job_id(token)

    def test_job_id_filter_default(self):
        record = make_record()
        JobIdFilter().filter(record)
        assert record.job_id == "-"


class TestSanitizing:

    def test_filter_strips_newlines_from_message(self):
        record = make_record("line one\nforged line\r\nthird")
        SanitizingFilter().filter(record)
        assert record.msg == "line one forged line third"

    def test_filter_sanitizes_string_args(self):
        record = make_record("entry %s", ("bad\nname",))
        SanitizingFilter().filter(record)
        assert record.getMessage() == "entry bad name"

    def test_sanitize_truncates_long_values(self):
        value = sanitize_log_value("x" * 10050)
        assert value.endswith("...[truncated]")
        assert len(value) == 10000 + len("...[truncated]")

    def test_sanitize_non_string(self):
        assert sanitize_log_value(42) == "42"


class TestJsonFormatter:

    def test_output_contains_context_fields(self):
        stream = StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(CustomJsonFormatter('%(timestamp)s %(level)s %(name)s %(message)s'))
        handler.addFilter(RequestIdFilter())
        handler.addFilter(JobIdFilter())

        test_logger = logging.getLogger("picstash.test.json")
        test_logger.propagate = False
        test_logger.setLevel(logging.INFO)
        test_logger.addHandler(handler)

        token = set_job_id("job-7")
        try:
            test_logger.info("Job finished", extra={"event_type": "job_completed"})
        finally:
            clear_job_id(token)
            test_logger.removeHandler(handler)

        entry = json.loads(stream.getvalue().strip())
        assert entry["message"] == "Job finished"
        assert entry["level"] == "INFO"
        assert entry["job_id"] == "job-7"
        assert entry["request_id"] == "-"
        assert entry["event_type"] == "job_completed"
        assert "timestamp" in entry
