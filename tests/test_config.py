"""
Unit tests for settings, error types and logging setup
"""

import logging

import pytest
from pydantic import ValidationError as SettingsValidationError

from cdss.config import Settings
from cdss.exceptions import CDSSError, ValidationError, RuleEvaluationError, require_range
from cdss.logging_config import setup_logging


class TestSettings:
    """Test settings defaults and parsing"""

    def test_defaults(self, test_settings):
        """Test default toggles and limits"""
        assert test_settings.is_test
        assert test_settings.interactions_max_medications == 50
        assert test_settings.qtc_default_formula == "bazett"
        assert "debug" not in Settings.model_fields
        assert test_settings.enabled_modules() == ["dialyse", "cardiology", "ophthalmology", "general"]

    def test_disabled_ids_from_environment(self, monkeypatch):
        """Test comma-separated rule IDs in the environment"""
        monkeypatch.setenv("RULES_DISABLED_IDS", "kdigo-ktv-001,esc-bp-001, ")

        config = Settings(_env_file=None)

        assert config.rules_disabled_ids == ["kdigo-ktv-001", "esc-bp-001"]

    def test_master_switch(self):
        """Test rules_enable_all=False disables every module"""
        config = Settings(_env_file=None, rules_enable_all=False)
        assert config.enabled_modules() == []

    def test_production_requires_a_module(self):
        """Test production refuses all modules switched off"""
        with pytest.raises(SettingsValidationError):
            Settings(
                _env_file=None,
                environment="production",
                rules_dialyse=False,
                rules_cardiology=False,
                rules_ophthalmology=False,
                rules_general=False
            )

    def test_rejects_unknown_formula(self):
        """Test QTc formula pattern"""
        with pytest.raises(SettingsValidationError):
            Settings(_env_file=None, qtc_default_formula="hodges")


class TestExceptions:
    """Test structured error types"""

    def test_to_dict(self):
        """Test serialized error payload"""
        error = ValidationError("bad module", field="module", allowed=["dialyse", "general"])

        assert error.to_dict() == {
            "error": "VALIDATION_ERROR",
            "message": "bad module",
            "details": {"field": "module", "allowed": ["dialyse", "general"]}
        }
        assert isinstance(error, CDSSError)

    def test_rule_evaluation_error(self):
        """Test cause and rule ID are recorded"""
        error = RuleEvaluationError("esc-bp-001", KeyError("systolic_bp"))

        assert error.code == "RULE_EVALUATION_ERROR"
        assert error.details == {"rule_id": "esc-bp-001", "cause": "KeyError"}

    def test_require_range(self):
        """Test numeric coercion and bounds"""
        assert require_range("42.5", "egfr", 0, 200) == 42.5

        with pytest.raises(ValidationError) as exc_info:
            require_range(float("inf"), "egfr", 0, 200)
        assert exc_info.value.details["max"] == 200


class TestLogging:
    """Test host logging setup"""

    def test_setup_logging(self):
        """Test root level follows the argument"""
        setup_logging("DEBUG")
        assert logging.getLogger().level == logging.DEBUG

        setup_logging("WARNING")
        assert logging.getLogger().level == logging.WARNING
