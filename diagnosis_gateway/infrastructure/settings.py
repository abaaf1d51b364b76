"""Application Settings and Configuration.

This module provides application-wide settings that combine the ledger
configuration from the configuration manager with HTTP-layer defaults.

Security Impact:
    - Production mode masks internal error detail in responses
    - Sensitive values are never logged
    - Defaults are provided for development convenience
"""

import os
from typing import Optional

from diagnosis_gateway import __version__
from diagnosis_gateway.infrastructure.config_manager import ConfigManager, LedgerConfig

# Application metadata
APP_NAME = "Medical Diagnosis Blockchain API"
APP_VERSION = __version__

ENVIRONMENTS = ("development", "production", "test")

# Default max request body size (10MB)
DEFAULT_MAX_BODY_SIZE = 10 * 1024 * 1024

# Default rate limit: 100 requests per 15 minutes per client
DEFAULT_RATE_LIMIT = 100
DEFAULT_RATE_LIMIT_WINDOW = 15 * 60


class Settings:
    """Application settings loaded from configuration manager and environment.

    Security Impact:
        - ``is_production`` gates error-detail disclosure
        - Settings are validated before use
    """

    def __init__(self):
        """Initialize settings from environment."""
        self._ledger_config: Optional[LedgerConfig] = None
        self._config_manager: Optional[ConfigManager] = None

        self.app_name = os.getenv("MDG_APP_NAME", APP_NAME)
        self.version = APP_VERSION

        self.environment = os.getenv("MDG_ENVIRONMENT", "development").lower()
        if self.environment not in ENVIRONMENTS:
            raise ValueError(
                f"Unsupported environment: {self.environment}. Supported: {list(ENVIRONMENTS)}"
            )

        # Logging
        self.log_level = os.getenv("MDG_LOG_LEVEL", "INFO")
        self.json_logs = os.getenv("MDG_JSON_LOGS", str(self.is_production)).lower() == "true"

        # HTTP limits
        self.max_body_size = int(os.getenv("MDG_MAX_BODY_SIZE", str(DEFAULT_MAX_BODY_SIZE)))
        self.rate_limit = int(os.getenv("MDG_RATE_LIMIT", str(DEFAULT_RATE_LIMIT)))
        self.rate_limit_window = int(os.getenv("MDG_RATE_LIMIT_WINDOW", str(DEFAULT_RATE_LIMIT_WINDOW)))

        # Security headers / CORS
        self.enable_hsts = os.getenv("MDG_ENABLE_HSTS", "false").lower() == "true"
        self.cors_origins = [
            origin.strip()
            for origin in os.getenv("MDG_CORS_ORIGINS", "*").split(",")
            if origin.strip()
        ]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def config_manager(self) -> ConfigManager:
        if self._config_manager is None:
            self._config_manager = ConfigManager.from_environment()
        return self._config_manager

    @property
    def ledger(self) -> LedgerConfig:
        """Get ledger configuration (loaded lazily on first access)."""
        if self._ledger_config is None:
            self._ledger_config = self.config_manager.get_ledger_config()
        return self._ledger_config
