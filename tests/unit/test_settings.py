"""
Unit Tests - Configuration and Logging
"""
import io
import json
import logging
from decimal import Decimal

import pytest
import structlog
from pydantic import ValidationError

from sales_analytics.config import AnalyticsSettings, Settings, get_settings
from sales_analytics.config.logging import configure_logging, get_logger
from sales_analytics.config.settings import MonitoringSettings


class TestAnalyticsSettings:
    """Tests for AnalyticsSettings"""

    def test_defaults(self, analytics_settings):
        assert analytics_settings.dependency_risk_threshold_percent == 60.0
        assert analytics_settings.dependency_top_n == 3
        assert analytics_settings.drain_window_days == 7
        assert analytics_settings.inventory_old_days == 90
        assert analytics_settings.unbranded_label == "Unbranded"

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("ANALYTICS_DRAIN_WINDOW_DAYS", "14")
        monkeypatch.setenv("ANALYTICS_DEPENDENCY_RISK_THRESHOLD_PERCENT", "75.5")

        settings = AnalyticsSettings()

        assert settings.drain_window_days == 14
        assert settings.dependency_risk_threshold_percent == 75.5

    def test_timezone(self):
        settings = AnalyticsSettings(timezone="Asia/Kolkata")
        assert str(settings.tzinfo) == "Asia/Kolkata"

    def test_unknown_timezone(self):
        with pytest.raises(ValidationError):
            AnalyticsSettings(timezone="Mars/Olympus_Mons")

    def test_negative_values_rejected(self):
        with pytest.raises(ValidationError):
            AnalyticsSettings(dependency_risk_threshold_percent=-1)
        with pytest.raises(ValidationError):
            AnalyticsSettings(drain_window_days=0)

    def test_bands_must_be_ordered(self):
        with pytest.raises(ValidationError):
            AnalyticsSettings(drain_critical_days=10, drain_low_days=5)
        with pytest.raises(ValidationError):
            AnalyticsSettings(inventory_moderate_days=100, inventory_old_days=90)


class TestSettings:
    """Tests for top-level Settings"""

    def test_test_settings(self, test_settings):
        assert test_settings.app_env == "testing"
        assert test_settings.debug is True
        assert not test_settings.is_production
        assert isinstance(test_settings.analytics, AnalyticsSettings)

    def test_invalid_environment(self):
        with pytest.raises(ValidationError):
            Settings(app_env="qa")

    def test_environment_is_normalized(self):
        assert Settings(app_env="PRODUCTION").is_production

    def test_log_format_validation(self):
        assert MonitoringSettings(log_format="TEXT").log_format == "text"
        with pytest.raises(ValidationError):
            MonitoringSettings(log_format="xml")

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()


class TestLogging:
    """Tests for structlog configuration"""

    @pytest.fixture
    def restore_logging(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)
        structlog.reset_defaults()

    def test_configure_logging(self, restore_logging):
        configure_logging("DEBUG")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1

    def test_json_output_renders_decimals(self, restore_logging):
        buffer = io.StringIO()
        configure_logging("INFO", "json", stream=buffer)

        get_logger("sales_analytics.test").info("Sale folded", revenue=Decimal("10.50"))

        record = json.loads(buffer.getvalue().splitlines()[-1])
        assert record["event"] == "Sale folded"
        assert record["revenue"] == "10.50"
        assert record["level"] == "info"
        assert record["app"] == get_settings().app_name

    def test_text_output(self, restore_logging):
        buffer = io.StringIO()
        configure_logging("INFO", "text", stream=buffer)

        get_logger("sales_analytics.test").info("Snapshot received", orders=3)

        assert "Snapshot received" in buffer.getvalue()
