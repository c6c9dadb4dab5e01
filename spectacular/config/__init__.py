"""Configuration module for spectacular."""

from spectacular.config.settings import (
    CONFIG_FILENAME,
    AiConfig,
    CodegenConfig,
    LoggingConfig,
    SpectacularConfig,
    get_env_api_key,
    load_config,
)

__all__ = [
    "CONFIG_FILENAME",
    "AiConfig",
    "CodegenConfig",
    "LoggingConfig",
    "SpectacularConfig",
    "get_env_api_key",
    "load_config",
]
