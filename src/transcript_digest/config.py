"""
Configuration management with three-tier precedence system:
1. Default values from codebase
2. Environment variables from .env
3. Explicit overrides (request options, constructor arguments)

Precedence: Overrides > Environment Variables > Defaults
"""

import logging
import os
from typing import Any, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


class ConfigManager:
    """Manages configuration with three-tier precedence."""

    # Default values (Tier 1 - Codebase defaults)
    DEFAULTS = {
        "API_BASE_URL": "http://localhost:5001",
        "LLM_API_BASE_URL": "https://api.openai.com/v1",
        "LLM_MODEL": "gpt-4o-mini",
        "OPENAI_API_KEY": "",
        "WHISPER_MODEL": "base",
        "HISTORY_DIR": "history",
        "PREFERENCES_FILE": "preferences.json",
        "MAX_WORKERS": "2",
        "SUMMARY_CHUNK_SIZE": "800",
        "HISTORY_PAGE_SIZE": "20",
        "LOG_LEVEL": "INFO",
    }

    # Keys never echoed back in plain text
    SECRET_KEYS = {"OPENAI_API_KEY"}

    @staticmethod
    def get(key: str, override: Optional[Any] = None) -> Any:
        """
        Get configuration value with three-tier precedence.

        Args:
            key: Configuration key
            override: Explicit value (highest priority)

        Returns:
            Configuration value from highest priority source

        Priority:
            1. Override (if provided and not empty)
            2. Environment variable
            3. Default value
        """
        # Tier 3: explicit override (highest priority)
        if override is not None and override != "":
            return override

        # Tier 2: Environment variable
        env_value = os.getenv(key)
        if env_value is not None and env_value != "":
            return env_value

        # Tier 1: Default value
        return ConfigManager.DEFAULTS.get(key, "")

    @staticmethod
    def get_int(key: str, override: Optional[Any] = None) -> int:
        """Get a configuration value as an integer, falling back to the default on bad input."""
        value = ConfigManager.get(key, override)
        try:
            return int(value)
        except (TypeError, ValueError):
            default = ConfigManager.DEFAULTS.get(key, "0")
            logger.warning(f"Invalid integer for {key}: {value!r}, using default {default}")
            return int(default)

    @staticmethod
    def get_display_value(key: str, override: Optional[Any] = None) -> tuple[Any, str]:
        """
        Get configuration value and its source.

        Secret values are masked.

        Returns:
            Tuple of (value, source) where source is 'override', 'env', or 'default'
        """
        if override is not None and override != "":
            value, source = override, "override"
        else:
            env_value = os.getenv(key)
            if env_value is not None and env_value != "":
                value, source = env_value, "env"
            else:
                value, source = ConfigManager.DEFAULTS.get(key, ""), "default"

        if key in ConfigManager.SECRET_KEYS and value:
            value = "***"
        return value, source
