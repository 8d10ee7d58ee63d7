"""Configuration management - loads billing.yaml and environment variables."""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from billing_engine.models import BillingConfig, PlanDefinition


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


class Config:
    """Application configuration loader and manager.

    Loads billing.yaml and provides validated access to:
    - Plan definitions
    - Provider settings and credentials
    - Dunning, notification and webhook settings
    """

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to billing.yaml. If not provided, uses CONFIG_PATH env var
                        or defaults to ./config/billing.yaml
        """
        self._config_path = self._resolve_config_path(config_path)
        self._billing_config: Optional[BillingConfig] = None
        self._load_config()

    def _resolve_config_path(self, config_path: Optional[str]) -> Path:
        """Resolve configuration file path from argument, env var, or default."""
        if config_path:
            return Path(config_path)

        env_path = os.getenv("CONFIG_PATH")
        if env_path:
            return Path(env_path)

        return Path("config/billing.yaml")

    def _load_config(self) -> None:
        """Load and validate billing.yaml, then apply environment overrides."""
        if not self._config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self._config_path}\n"
                f"Please create config/billing.yaml or set CONFIG_PATH environment variable"
            )

        try:
            with open(self._config_path, encoding="utf-8") as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML configuration: {e}") from e

        if not raw_config:
            raise ConfigurationError(f"Configuration file is empty: {self._config_path}")

        try:
            billing_config = BillingConfig(**raw_config)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

        self._billing_config = self._apply_env_overrides(billing_config)

    @staticmethod
    def _apply_env_overrides(billing_config: BillingConfig) -> BillingConfig:
        """Apply DUNNING_* and PROVIDER_TIMEOUT_SECONDS overrides."""
        interval = os.getenv("DUNNING_INTERVAL_SECONDS")
        if interval:
            try:
                seconds = int(interval)
            except ValueError as e:
                raise ConfigurationError(f"DUNNING_INTERVAL_SECONDS must be an integer, got: {interval}") from e
            if seconds <= 0:
                raise ConfigurationError("DUNNING_INTERVAL_SECONDS must be positive")
            billing_config.dunning.interval_seconds = seconds

        enabled = os.getenv("DUNNING_ENABLED")
        if enabled:
            billing_config.dunning.enabled = enabled.lower() == "true"

        timeout = os.getenv("PROVIDER_TIMEOUT_SECONDS")
        if timeout:
            try:
                billing_config.http.timeout_seconds = float(timeout)
            except ValueError as e:
                raise ConfigurationError(f"PROVIDER_TIMEOUT_SECONDS must be a number, got: {timeout}") from e

        return billing_config

    @property
    def billing(self) -> BillingConfig:
        """Get validated billing configuration."""
        if self._billing_config is None:
            raise ConfigurationError("Configuration not loaded")
        return self._billing_config

    @property
    def config_path(self) -> Path:
        """Get path to configuration file."""
        return self._config_path

    @property
    def plans(self) -> list[PlanDefinition]:
        return self.billing.plans

    @property
    def mercadopago_access_token(self) -> Optional[str]:
        """Mercado Pago access token (MERCADO_PAGO_ACCESS_TOKEN)."""
        return os.getenv("MERCADO_PAGO_ACCESS_TOKEN")

    @property
    def iugu_api_token(self) -> Optional[str]:
        """Iugu API token (IUGU_API_TOKEN)."""
        return os.getenv("IUGU_API_TOKEN")

    @property
    def dunning_settings(self):
        return self.billing.dunning

    @property
    def notification_settings(self):
        return self.billing.notifications

    @property
    def provider_timeout_seconds(self) -> float:
        return self.billing.http.timeout_seconds

    def reload(self) -> None:
        """Reload configuration from disk."""
        self._load_config()


# Global configuration instance
_config_instance: Optional[Config] = None


def get_config(config_path: Optional[str] = None) -> Config:
    """Get global configuration instance (singleton).

    Args:
        config_path: Optional path to configuration file (only used on first call)

    Returns:
        Config instance
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config(config_path)
    return _config_instance


def reset_config() -> None:
    """Drop the global configuration so the next get_config() reloads it."""
    global _config_instance
    _config_instance = None
