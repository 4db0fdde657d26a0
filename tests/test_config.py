"""
Tests for Guardian configuration loading.
"""

import pytest

from trade_risk_guardian.config import (
    GuardianConfig,
    get_strict_config,
    load_config_from_dict,
    load_config_from_env,
)
from trade_risk_guardian.types import ConfigurationError, LockMode


class TestConfigDefaults:

    def test_defaults(self):
        config = GuardianConfig()

        assert config.default_lock_mode == LockMode.MEDIUM
        assert config.risk.max_risk_per_trade_percent == 5.0
        assert config.correlation.default_max_currency_exposure == 2.0
        assert config.resolver.allow_auto_mappings is False

    def test_soft_default_rejected(self):
        config = GuardianConfig(default_lock_mode=LockMode.SOFT)
        with pytest.raises(ConfigurationError):
            config.validate()

    def test_strict_config(self):
        config = get_strict_config()

        config.validate()
        assert config.default_lock_mode == LockMode.HARD
        assert config.correlation.default_max_currency_exposure == 1.5

    def test_to_dict_omits_secrets(self):
        config = GuardianConfig()
        config.alerting.telegram_bot_token = "secret"

        assert "secret" not in str(config.to_dict())


class TestLoadFromDict:

    def test_overrides_applied(self):
        config = load_config_from_dict({
            "risk": {"max_risk_per_trade_percent": 3.0},
            "patterns": {"revenge_cooldown_minutes": 45},
            "default_lock_mode": "hard",
        })

        assert config.risk.max_risk_per_trade_percent == 3.0
        assert config.patterns.revenge_cooldown_minutes == 45
        assert config.default_lock_mode == LockMode.HARD

    def test_unknown_keys_ignored(self):
        config = load_config_from_dict({"risk": {"no_such_key": 1}})
        assert not hasattr(config.risk, "no_such_key")

    def test_soft_default_rejected(self):
        with pytest.raises(ConfigurationError):
            load_config_from_dict({"default_lock_mode": "SOFT"})

    def test_bad_lock_mode_rejected(self):
        with pytest.raises(ConfigurationError):
            load_config_from_dict({"default_lock_mode": "LOOSE"})

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ConfigurationError):
            load_config_from_dict({"patterns": {"timezone": "Mars/Base"}})

    def test_section_must_be_mapping(self):
        with pytest.raises(ConfigurationError):
            load_config_from_dict({"risk": 5})


class TestLoadFromEnv:

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("GUARDIAN_MAX_CURRENCY_EXPOSURE", "1.5")
        monkeypatch.setenv("GUARDIAN_DEFAULT_LOCK_MODE", "HARD")
        monkeypatch.setenv("GUARDIAN_ALLOW_AUTO_MAPPINGS", "true")

        config = load_config_from_env()

        assert config.correlation.default_max_currency_exposure == 1.5
        assert config.default_lock_mode == LockMode.HARD
        assert config.resolver.allow_auto_mappings is True

    def test_bad_number_rejected(self, monkeypatch):
        monkeypatch.setenv("GUARDIAN_MAX_CURRENCY_EXPOSURE", "two")

        with pytest.raises(ConfigurationError):
            load_config_from_env()

    def test_timezone_from_env(self, monkeypatch):
        monkeypatch.setenv("GUARDIAN_TIMEZONE", "Europe/London")

        config = load_config_from_env()

        assert config.patterns.timezone == "Europe/London"
        assert config.to_dict()["patterns"]["timezone"] == "Europe/London"

    def test_bad_timezone_from_env_rejected(self, monkeypatch):
        monkeypatch.setenv("GUARDIAN_TIMEZONE", "Mars/Base")

        with pytest.raises(ConfigurationError):
            load_config_from_env()
