"""
Tests for structured logging and configuration
"""

import io
import json
import logging

import pydantic
import pytest

from ledger_core.config import LedgerConfig, get_config, reload_config
from ledger_core.logging_config import JSONFormatter, log_action, setup_logging


class TestStructuredLogging:

    def setup_method(self):
        self.stream = io.StringIO()
        # Separate logger tree so engine loggers keep propagating in other tests
        self.logger = setup_logging("DEBUG", "logtest.json")
        self.logger.handlers[0].stream = self.stream

    def read_entry(self):
        return json.loads(self.stream.getvalue().strip().splitlines()[-1])

    def test_log_action_fields(self):
        log_action(
            self.logger, "info", "Deposit completed",
            action="deposit", resource="account:abc",
            correlation_id="req-1", extra={"amount": 10000}
        )

        entry = self.read_entry()
        assert entry["level"] == "INFO"
        assert entry["module"] == "test_logging_config"
        assert entry["message"] == "Deposit completed"
        assert entry["action"] == "deposit"
        assert entry["resource"] == "account:abc"
        assert entry["correlation_id"] == "req-1"
        assert entry["extra"] == {"amount": 10000}

    def test_missing_fields_omitted(self):
        self.logger.warning("plain message")

        entry = self.read_entry()
        assert entry["level"] == "WARNING"
        assert entry["module"] == "test_logging_config"
        assert "action" not in entry
        assert "extra" not in entry

    def test_exception_included(self):
        try:
            raise RuntimeError("store exploded")
        except RuntimeError:
            self.logger.exception("failure")

        assert "store exploded" in self.read_entry()["exception"]

    def test_setup_is_idempotent(self):
        logger = setup_logging("INFO", "logtest.json")
        assert len(logger.handlers) == 1
        assert logger.level == logging.INFO
        assert logger.propagate is False

    def test_text_format(self):
        logger = setup_logging("INFO", "logtest.text", log_format="text")
        assert not isinstance(logger.handlers[0].formatter, JSONFormatter)


class TestConfig:

    def test_defaults(self):
        config = LedgerConfig()
        assert config.storage_backend == "sqlite"
        assert config.api_port == 8090
        assert config.max_history_size is None

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "memory")
        monkeypatch.setenv("LEDGER_STORAGE_LOCK_TIMEOUT", "0.5")

        config = reload_config()
        assert config.storage_backend == "memory"
        assert config.storage_lock_timeout == 0.5
        assert get_config() is config

        monkeypatch.delenv("LEDGER_STORAGE_BACKEND")
        monkeypatch.delenv("LEDGER_STORAGE_LOCK_TIMEOUT")
        reload_config()

    def test_history_size_must_not_be_negative(self):
        assert LedgerConfig(max_history_size=0).max_history_size == 0

        with pytest.raises(pydantic.ValidationError):
            LedgerConfig(max_history_size=-1)
