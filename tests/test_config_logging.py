"""
Test suite for configuration and structured logging
"""

import json
import logging
import pytest
from decimal import Decimal
from datetime import date

from pydantic import ValidationError

from lending_core.audit import AuditTrail
from lending_core.config import LendingConfig
from lending_core.dates import FixedClock
from lending_core.exceptions import OverpaymentRejected
from lending_core.ledger import InstallmentLedger
from lending_core.loans import LoanManager
from lending_core.logging_config import JSONFormatter, get_logger, log_action, setup_logging
from lending_core.payments import PaymentAllocator
from lending_core.storage import InMemoryStorage


class RecordingHandler(logging.Handler):

    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


class TestLendingConfig:

    def test_defaults(self):
        config = LendingConfig(_env_file=None)
        assert config.database_url == "sqlite:///lending.db"
        assert config.api_port == 8090
        assert config.default_interest_rate == Decimal("10")
        assert config.cap_interest_payments is True
        assert config.risk_warning_days == 7
        assert config.risk_critical_days == 30

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("LENDING_DATABASE_URL", "memory://")
        monkeypatch.setenv("LENDING_API_PORT", "9000")
        monkeypatch.setenv("LENDING_CAP_INTEREST_PAYMENTS", "false")
        monkeypatch.setenv("LENDING_DEFAULT_LATE_FEE_RATE", "0.5")

        config = LendingConfig(_env_file=None)
        assert config.database_url == "memory://"
        assert config.api_port == 9000
        assert config.cap_interest_payments is False
        assert config.default_late_fee_rate == Decimal("0.5")

    def test_log_format_validated(self):
        assert LendingConfig(_env_file=None, log_format="TEXT").log_format == "text"
        with pytest.raises(ValidationError):
            LendingConfig(_env_file=None, log_format="xml")

    def test_thresholds_ordered(self):
        with pytest.raises(ValidationError):
            LendingConfig(_env_file=None, risk_warning_days=10, risk_critical_days=5)


class TestStructuredLogging:

    def setup_method(self):
        """Set up test fixtures"""
        self.handler = RecordingHandler()
        self.logger = get_logger("lending_core")
        self.logger.addHandler(self.handler)
        self.logger.setLevel(logging.INFO)

    def teardown_method(self):
        self.logger.removeHandler(self.handler)

    def test_json_formatter_includes_action_fields(self):
        log_action(
            get_logger("lending_core.test"), "info", "Loan created",
            user_id="op-1", action="loan.created", resource="loan:1",
            extra={"principal": "1000.00"}
        )
        entry = json.loads(JSONFormatter().format(self.handler.records[-1]))

        assert entry["message"] == "Loan created"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "lending_core.test"
        assert entry["action"] == "loan.created"
        assert entry["user_id"] == "op-1"
        assert entry["extra"] == {"principal": "1000.00"}
        assert "correlation_id" not in entry

    def test_rejected_payment_logged_as_warning(self):
        storage = InMemoryStorage()
        clock = FixedClock(date(2024, 1, 1))
        audit = AuditTrail(storage)
        ledger = InstallmentLedger(storage, clock)
        loans = LoanManager(storage, ledger, audit, clock)
        allocator = PaymentAllocator(storage, ledger, loans, audit, clock)
        loan = loans.create_loan("c1", "100", "0", "DAILY", 1, date(2024, 1, 1))

        with pytest.raises(OverpaymentRejected):
            allocator.apply_payment(f"{loan.id}_1", amount="500", idempotency_key="k-9")

        record = self.handler.records[-1]
        assert record.levelname == "WARNING"
        assert record.action == "payment.rejected"
        assert record.correlation_id == "k-9"
        assert record.extra["error"] == "OverpaymentRejected"

    def test_setup_logging_replaces_handlers(self, tmp_path):
        log_file = tmp_path / "lending.log"
        logger = setup_logging(level="DEBUG", format_type="json", log_file=str(log_file), logger_name="lending_core.setup")
        setup_logging(level="DEBUG", format_type="json", log_file=str(log_file), logger_name="lending_core.setup")

        assert len(logger.handlers) == 1
        assert logger.level == logging.DEBUG
        assert logger.propagate is False

        logger.info("hello")
        logger.handlers[0].flush()
        assert json.loads(log_file.read_text().strip())["message"] == "hello"
        logger.handlers[0].close()
