"""
Tests for logging helpers, tracing helpers and database URL handling.
"""

import pytest
import structlog

from namegen.db.session import async_database_url, engine_options
from namegen.observability.logging import REDACTED, log_context, redact_secrets
from namegen.observability.tracing import trace_operation


class TestRedactSecrets:
    def test_top_level_keys(self):
        event = redact_secrets(
            None,
            "info",
            {"event": "checkout", "Authorization": "Bearer abc", "x-api-key": "creem_live"},
        )

        assert event["Authorization"] == REDACTED
        assert event["x-api-key"] == REDACTED
        assert event["event"] == "checkout"

    def test_nested_headers(self):
        event = redact_secrets(
            None, "info", {"headers": {"cookie": "sb-access-token=abc", "accept": "*/*"}}
        )

        assert event["headers"] == {"cookie": REDACTED, "accept": "*/*"}

    def test_ordinary_values_untouched(self):
        event = {"user_id": "user-123", "credits_after": 0}
        assert redact_secrets(None, "info", dict(event)) == event


class TestLogContext:
    @pytest.fixture(autouse=True)
    def empty_context(self):
        structlog.contextvars.clear_contextvars()

    def test_binds_and_clears(self):
        with log_context(request_id="req-1"):
            assert structlog.contextvars.get_contextvars()["request_id"] == "req-1"

        assert "request_id" not in structlog.contextvars.get_contextvars()

    def test_nested_contexts_restore_outer_value(self):
        with log_context(request_id="outer"):
            with log_context(request_id="inner", user_id="user-123"):
                assert structlog.contextvars.get_contextvars() == {
                    "request_id": "inner",
                    "user_id": "user-123",
                }
            assert structlog.contextvars.get_contextvars() == {"request_id": "outer"}

    def test_cleared_on_exception(self):
        with pytest.raises(RuntimeError):
            with log_context(request_id="req-err"):
                raise RuntimeError("boom")

        assert "request_id" not in structlog.contextvars.get_contextvars()


class TestTraceOperation:
    def test_exception_propagates(self):
        with pytest.raises(ValueError):
            with trace_operation("pdf_generation", user_id="user-123", cost=1):
                raise ValueError("render failed")

    def test_yields_span(self):
        with trace_operation("pdf_generation", user_id="user-123", extra=None) as span:
            span.set_attribute("size_bytes", 10)


class TestDatabaseUrl:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("postgres://u:p@db:5432/names", "postgresql+asyncpg://u:p@db:5432/names"),
            ("postgresql://u:p@db/names", "postgresql+asyncpg://u:p@db/names"),
            ("postgresql+asyncpg://u:p@db/names", "postgresql+asyncpg://u:p@db/names"),
            ("", ""),
        ],
    )
    def test_async_driver(self, url, expected):
        assert async_database_url(url) == expected

    def test_pooler_safe_options(self):
        options = engine_options()

        assert options["pool_pre_ping"] is True
        assert options["connect_args"] == {"statement_cache_size": 0}
