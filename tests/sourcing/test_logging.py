"""Tests for logging configuration and redaction."""

from services.sourcing.app.core.logging import (
    _redact_event_logger,
    configure_structlog,
    get_logger,
)


class TestLoggingRedaction:
    def test_redacts_secret_keys(self):
        event = _redact_event_logger(
            None,
            "info",
            {"event": "x", "Authorization": "Bearer abc", "jwt_secret_key": "s3cret"},
        )

        assert event["Authorization"] == "[REDACTED]"
        assert event["jwt_secret_key"] == "[REDACTED]"

    def test_redacts_bearer_token_in_strings(self):
        event = _redact_event_logger(
            None, "info", {"event": "x", "header": "Authorization: Bearer eyJhbGciOi.abc"}
        )

        assert event["header"] == "Authorization: Bearer [REDACTED]"

    def test_redacts_slack_webhook_urls(self):
        event = _redact_event_logger(
            None, "info", {"event": "x", "url": "https://hooks.slack.com/services/T000/B000/XXX"}
        )

        assert event["url"] == "[REDACTED]"

    def test_normal_values_untouched(self):
        event = _redact_event_logger(None, "info", {"event": "approval.requested", "rfq_id": 7})

        assert event == {"event": "approval.requested", "rfq_id": 7}


class TestLoggerSetup:
    def test_configured_logger_emits(self):
        """Configuring twice is harmless and the logger accepts structured fields."""
        configure_structlog()
        configure_structlog()
        logger = get_logger("test")

        logger.info("sla.sweep.completed", matched=1, created=2)
