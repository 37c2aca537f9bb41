"""
Tests for configuration and structured logging
"""

import json
import logging

from debt_escrow.config import EscrowConfig
from debt_escrow.api.dependencies import EscrowSystem
from debt_escrow.gateways import StoredIdentityRegistry, StoredTransferLedger
from debt_escrow.identity_client import IdentityServiceClient
from debt_escrow.logging_config import JSONFormatter, get_logger, setup_logging, log_action


class TestEscrowConfig:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("ESCROW_PAYMENT_WINDOW_SECONDS", raising=False)
        cfg = EscrowConfig(_env_file=None)
        assert cfg.payment_window_seconds == 3 * 24 * 3600
        assert cfg.amount_precision == 8
        assert cfg.api_port == 8095

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("ESCROW_PAYMENT_WINDOW_SECONDS", "3600")
        monkeypatch.setenv("ESCROW_DATABASE_URL", "memory://")
        cfg = EscrowConfig(_env_file=None)
        assert cfg.payment_window_seconds == 3600
        assert cfg.database_url == "memory://"

    def test_system_uses_config(self):
        system = EscrowSystem(config=EscrowConfig(
            database_url="memory://", payment_window_seconds=60, identity_service_url=""
        ))
        assert system.payment_engine.payment_window.total_seconds() == 60
        assert isinstance(system.identity_gateway, StoredIdentityRegistry)
        assert isinstance(system.transfer_ledger, StoredTransferLedger)

    def test_remote_identity_service(self):
        system = EscrowSystem(config=EscrowConfig(
            database_url="memory://", identity_service_url="http://identity.local"
        ))
        assert isinstance(system.identity_gateway, IdentityServiceClient)
        system.identity_gateway.close()


class TestStructuredLogging:

    def setup_method(self):
        self.logger = setup_logging("DEBUG", logger_name="debt_escrow_test", log_format="json")
        self.records = []
        capture = logging.Handler()
        capture.emit = self.records.append
        self.logger.addHandler(capture)

    def teardown_method(self):
        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)

    def test_log_action_attaches_fields(self):
        log_action(self.logger, "info", "lock_principal committed on debt 1",
                   user_id="7", action="lock_principal", resource="debt:1",
                   extra={'status': 'locked'})

        record = self.records[-1]
        entry = json.loads(JSONFormatter().format(record))
        assert entry["level"] == "INFO"
        assert entry["user_id"] == "7"
        assert entry["action"] == "lock_principal"
        assert entry["resource"] == "debt:1"
        assert entry["extra"] == {'status': 'locked'}

    def test_unset_fields_omitted(self):
        log_action(self.logger, "warning", "rejected")
        entry = json.loads(JSONFormatter().format(self.records[-1]))
        assert "user_id" not in entry
        assert entry["message"] == "rejected"

    def test_disabled_level_skipped(self):
        self.logger.setLevel(logging.ERROR)
        log_action(self.logger, "info", "quiet")
        assert self.records == []

    def test_text_format(self):
        logger = setup_logging("INFO", logger_name="debt_escrow_text", log_format="text")
        assert not isinstance(logger.handlers[0].formatter, JSONFormatter)
        assert logger.propagate is False

    def test_module_loggers_under_package(self):
        assert get_logger().name == "debt_escrow"
        assert get_logger("debt_escrow.debts").parent is get_logger()
