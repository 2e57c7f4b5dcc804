"""
Settings Configuration Service for the Thai literacy backend

This module provides centralized configuration management using properties files.
It handles loading, parsing, and providing access to application settings.

Configuration files:
- env.properties: Production configuration (default)
- env-test.properties: Test configuration (used when THAI_LMS_TEST_MODE=1)
"""

import os
import configparser
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Union


def get_config_file_path() -> str:
    """
    Determine the appropriate configuration file based on environment.

    Priority:
    1. THAI_LMS_CONFIG_FILE environment variable (explicit override)
    2. env-test.properties (when THAI_LMS_TEST_MODE=1)
    3. env.properties (production default)
    """
    explicit_config = os.environ.get("THAI_LMS_CONFIG_FILE")
    if explicit_config and os.path.exists(explicit_config):
        return explicit_config

    search_paths = [
        Path.cwd(),
        # src/thai_literacy/core/services/ -> project root
        Path(__file__).parent.parent.parent.parent.parent,
    ]

    for base_path in search_paths:
        if os.environ.get("THAI_LMS_TEST_MODE") == "1":
            test_config = base_path / "env-test.properties"
            if test_config.exists():
                return str(test_config)

        prod_config = base_path / "env.properties"
        if prod_config.exists():
            return str(prod_config)

    return "env.properties"


class SettingsConfigService:
    """Service for managing application settings from properties files."""

    def __init__(self, config_file: Optional[str] = None, persist_defaults: bool = True):
        """
        Initialize the settings configuration service.

        Args:
            config_file: Optional path to config file. If None, auto-detects based on environment.
            persist_defaults: Write a default file when none exists.
        """
        self.config_file = config_file or get_config_file_path()
        self.persist_defaults = persist_defaults
        self.config = configparser.ConfigParser()
        self.logger = logging.getLogger(__name__)
        self._load_config()

    def _load_config(self):
        """Load configuration from properties file."""
        try:
            if not os.path.exists(self.config_file):
                self.logger.warning(
                    f"Config file {self.config_file} not found, using defaults"
                )
                self._create_default_config()
                return

            self.config.read(self.config_file, encoding="utf-8")
            self.logger.info(f"Configuration loaded from {self.config_file}")

        except (configparser.Error, OSError) as e:
            self.logger.error(f"Failed to load configuration: {e}")
            self._create_default_config()

    def _create_default_config(self):
        """Create default configuration if file doesn't exist."""
        self.config.read_dict(DEFAULT_CONFIG)

        # Test runs never write into the working tree
        if self.persist_defaults and os.environ.get("THAI_LMS_TEST_MODE") != "1":
            self.save_config()

    def save_config(self):
        """Save current configuration to file."""
        try:
            with open(self.config_file, "w", encoding="utf-8") as f:
                self.config.write(f)
            self.logger.info(f"Configuration saved to {self.config_file}")
        except OSError as e:
            self.logger.error(f"Failed to save configuration: {e}")

    def get(self, section: str, key: str, fallback: Optional[str] = None) -> str:
        """Get a configuration value."""
        try:
            return self.config.get(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError):
            if fallback is not None:
                return fallback
            self.logger.warning(f"Configuration not found: {section}.{key}")
            return ""

    def getint(self, section: str, key: str, fallback: Optional[int] = None) -> int:
        """Get an integer configuration value."""
        try:
            return self.config.getint(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            if fallback is not None:
                return fallback
            self.logger.warning(f"Integer configuration not found: {section}.{key}")
            return 0

    def getfloat(
        self, section: str, key: str, fallback: Optional[float] = None
    ) -> float:
        """Get a float configuration value."""
        try:
            return self.config.getfloat(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            if fallback is not None:
                return fallback
            self.logger.warning(f"Float configuration not found: {section}.{key}")
            return 0.0

    def getboolean(
        self, section: str, key: str, fallback: Optional[bool] = None
    ) -> bool:
        """Get a boolean configuration value."""
        try:
            return self.config.getboolean(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            if fallback is not None:
                return fallback
            self.logger.warning(f"Boolean configuration not found: {section}.{key}")
            return False

    def set(self, section: str, key: str, value: Union[str, int, float, bool]):
        """Set a configuration value."""
        if not self.config.has_section(section):
            self.config.add_section(section)
        self.config.set(section, key, str(value))

    def get_ai_config_defaults(self) -> Dict[str, Any]:
        """Get vision model configuration with environment variable override."""
        return {
            "url": self.get("ai", "gemini.url", DEFAULT_CONFIG["ai"]["gemini.url"]),
            "model": os.environ.get("GEMINI_MODEL")
            or self.get("ai", "gemini.model", "gemini-2.5-flash"),
            "api_key": os.environ.get("GEMINI_API_KEY")
            or self.get("ai", "gemini.api_key", ""),
            "timeout_seconds": self.getfloat("ai", "timeout_seconds", 30.0),
            "connect_timeout_seconds": self.getfloat(
                "ai", "connect_timeout_seconds", 10.0
            ),
            "temperature": self.getfloat("ai", "temperature", 0.1),
            "max_output_tokens": self.getint("ai", "max_output_tokens", 2048),
        }

    def get_storage_defaults(self) -> Dict[str, Any]:
        """Get image storage configuration."""
        read_only = self.getboolean("storage", "read_only", False)
        if os.environ.get("VERCEL") or os.environ.get("THAI_LMS_READ_ONLY_STORAGE"):
            read_only = True
        return {
            "upload_path": self.get("storage", "upload_path", "public/uploads"),
            "url_prefix": self.get("storage", "url_prefix", "/uploads"),
            "read_only": read_only,
        }

    def get_grading_defaults(self) -> Dict[str, Any]:
        """Get grading thresholds."""
        return {
            "game_passing_score": self.getint("grading", "game_passing_score", 60),
        }

    def get_logging_defaults(self) -> Dict[str, Any]:
        """Get logging configuration defaults."""
        return {
            "dir": os.environ.get("THAI_LMS_LOG_DIR") or self.get("logging", "dir", "logs"),
            "default_level": self.get("logging", "default_level", "INFO"),
        }


DEFAULT_CONFIG: Dict[str, Dict[str, str]] = {
    "ai": {
        "gemini.url": "https://generativelanguage.googleapis.com",
        "gemini.model": "gemini-2.5-flash",
        "gemini.api_key": "",
        "timeout_seconds": "30",
        "connect_timeout_seconds": "10",
        "temperature": "0.1",
        "max_output_tokens": "2048",
    },
    "storage": {
        "upload_path": "public/uploads",
        "url_prefix": "/uploads",
        "read_only": "false",
    },
    "grading": {
        "game_passing_score": "60",
    },
    "database": {
        "path": "thai_literacy.db",
    },
    "logging": {
        "dir": "logs",
        "default_level": "INFO",
    },
}


# Global instance
_settings_service = None


def get_settings_service(config_file: Optional[str] = None) -> SettingsConfigService:
    """
    Get the global settings service instance.

    Args:
        config_file: Optional path to config file. If None, auto-detects:
                    - env-test.properties when THAI_LMS_TEST_MODE=1
                    - env.properties for production

    Returns:
        SettingsConfigService instance
    """
    global _settings_service
    if _settings_service is None:
        _settings_service = SettingsConfigService(config_file)
    return _settings_service


def reset_settings_service():
    """Reset the global settings service instance. Useful for testing."""
    global _settings_service
    _settings_service = None
