"""Tests for configuration loading and management."""

import pytest

from billing_engine.config import Config, ConfigurationError, get_config, reset_config

MINIMAL_CONFIG = """
plans:
  - id: basic.monthly
    title: Basic Monthly
    price: "49.90"
    billing_period: P30D
dunning:
  interval_seconds: 3600
"""


@pytest.fixture
def config():
    """Config loaded from the repository's config/billing.yaml."""
    return Config()


@pytest.fixture
def config_file(tmp_path):
    def _write(content):
        path = tmp_path / "billing.yaml"
        path.write_text(content, encoding="utf-8")
        return str(path)

    return _write


class TestConfigurationLoading:
    """Test basic configuration loading."""

    def test_config_loads_successfully(self, config):
        """Test that the bundled configuration loads without errors."""
        assert config.config_path.exists()
        assert str(config.config_path).endswith("billing.yaml")

    def test_config_has_plans(self, config):
        assert len(config.plans) > 0
        assert all(plan.billing_period for plan in config.plans)

    def test_defaults_applied(self, config_file):
        """Test that omitted sections fall back to defaults."""
        config = Config(config_file(MINIMAL_CONFIG))

        assert config.billing.dunning.interval_seconds == 3600
        assert config.billing.dunning.warning_after_days == 3
        assert config.billing.dunning.suspend_after_days == 7
        assert config.provider_timeout_seconds == 8.0
        assert config.notification_settings.enabled is False
        assert config.billing.webhooks.processing_timeout_seconds == 10.0
        assert config.billing.providers.iugu.base_url == "https://api.iugu.com/v1"

    def test_config_path_from_env(self, config_file, monkeypatch):
        path = config_file(MINIMAL_CONFIG)
        monkeypatch.setenv("CONFIG_PATH", path)

        assert str(Config().config_path) == path


class TestConfigurationErrors:
    """Test that invalid configuration raises ConfigurationError."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            Config(str(tmp_path / "missing.yaml"))

    def test_empty_file(self, config_file):
        with pytest.raises(ConfigurationError, match="empty"):
            Config(config_file(""))

    def test_invalid_yaml(self, config_file):
        with pytest.raises(ConfigurationError, match="parse"):
            Config(config_file("plans: [unclosed"))

    def test_validation_error(self, config_file):
        with pytest.raises(ConfigurationError, match="validation"):
            Config(config_file("dunning:\n  interval_seconds: -5\n"))


class TestEnvironmentOverrides:
    """Test environment variable overrides and secrets."""

    def test_dunning_overrides(self, config_file, monkeypatch):
        monkeypatch.setenv("DUNNING_INTERVAL_SECONDS", "60")
        monkeypatch.setenv("DUNNING_ENABLED", "false")

        config = Config(config_file(MINIMAL_CONFIG))

        assert config.dunning_settings.interval_seconds == 60
        assert config.dunning_settings.enabled is False

    def test_invalid_interval_raises(self, config_file, monkeypatch):
        monkeypatch.setenv("DUNNING_INTERVAL_SECONDS", "daily")

        with pytest.raises(ConfigurationError, match="DUNNING_INTERVAL_SECONDS"):
            Config(config_file(MINIMAL_CONFIG))

    def test_provider_timeout_override(self, config_file, monkeypatch):
        monkeypatch.setenv("PROVIDER_TIMEOUT_SECONDS", "5")

        assert Config(config_file(MINIMAL_CONFIG)).provider_timeout_seconds == 5.0

    def test_secrets_from_environment(self, config_file, monkeypatch):
        monkeypatch.setenv("MERCADO_PAGO_ACCESS_TOKEN", "mp-secret")
        monkeypatch.delenv("IUGU_API_TOKEN", raising=False)

        config = Config(config_file(MINIMAL_CONFIG))

        assert config.mercadopago_access_token == "mp-secret"
        assert config.iugu_api_token is None


class TestGlobalConfig:
    """Test the global configuration instance."""

    def setup_method(self):
        reset_config()

    def teardown_method(self):
        reset_config()

    def test_singleton(self):
        assert get_config() is get_config()

    def test_reset(self):
        first = get_config()
        reset_config()
        assert get_config() is not first
