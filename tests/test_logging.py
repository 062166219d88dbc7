"""Tests for logging configuration."""

import json
import logging

from paywarden.core.logging import (
    LOGGER_NAME,
    JsonFormatter,
    RedactingFilter,
    configure_logging,
    get_logger,
    redact,
)


class TestRedact:
    def test_masks_bearer_token(self):
        assert redact("Authorization: Bearer abc.def-123") == "Authorization: Bearer ***"

    def test_masks_payment_signature(self):
        line = "PAYMENT-SIGNATURE: eyJ4NDAyVmVyc2lvbiI6Mn0="
        assert redact(line) == "PAYMENT-SIGNATURE: ***"

    def test_leaves_addresses_alone(self):
        line = "Recorded 0.10 USD for daily:incoming:0xabcdef0123456789abcdef"
        assert redact(line) == line


class TestConfigureLogging:
    def test_single_handler_after_reconfigure(self):
        configure_logging("DEBUG")
        logger = configure_logging("WARNING")

        assert logger.name == LOGGER_NAME
        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING
        assert isinstance(logger.handlers[0].filters[0], RedactingFilter)

    def test_json_format(self):
        logger = configure_logging(json_format=True)
        assert isinstance(logger.handlers[0].formatter, JsonFormatter)

    def test_child_loggers(self):
        assert get_logger("ledger").name == "paywarden.ledger"
        assert get_logger().name == "paywarden"


class TestJsonFormatter:
    def test_emits_parseable_json(self):
        record = logging.LogRecord(
            "paywarden.policy", logging.WARNING, __file__, 1, 'BLOCKED by "daily"', None, None
        )

        payload = json.loads(JsonFormatter().format(record))

        assert payload["level"] == "WARNING"
        assert payload["name"] == "paywarden.policy"
        assert payload["message"] == 'BLOCKED by "daily"'
