"""Configuration for the spectacular workflows.

Configuration is loaded from a YAML file and validated at startup. Every
value has a documented default, so running without a file is valid.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

import yaml

from spectacular.utils.result import ConfigError, Err, Ok, Result

CONFIG_FILENAME = "spectacular.yaml"

DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_CHECK_COMMAND = ["npx", "tsc", "--noEmit", "--pretty", "false"]

LOG_LEVELS = ("debug", "info", "warning", "error")
LOG_FORMATS = ("json", "console")


@dataclass
class AiConfig:
    """Generation service settings."""

    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    gateway_url: Optional[str] = None
    max_tokens: int = 8192
    temperature: float = 0.2

    # Handed to the SDK; the workflows never retry on their own
    max_retries: int = 2
    timeout: float = 120.0


@dataclass
class CodegenConfig:
    """Schema and API pipeline settings."""

    schema_path: str = "src/db/schema.ts"
    api_path: str = "src/index.ts"

    # 1 means a single fix attempt with no re-check
    max_fix_attempts: int = 1

    check_command: list[str] = field(default_factory=lambda: list(DEFAULT_CHECK_COMMAND))
    check_timeout: int = 120
    web_search: bool = True
    rules: list[str] = field(default_factory=list)


@dataclass
class LoggingConfig:
    """Logging settings."""

    level: str = "info"
    format: str = "json"


@dataclass
class SpectacularConfig:
    """Complete configuration."""

    ai: AiConfig = field(default_factory=AiConfig)
    codegen: CodegenConfig = field(default_factory=CodegenConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Set at runtime
    config_dir: Optional[Path] = None

    @classmethod
    def from_yaml(cls, path: Path) -> Result["SpectacularConfig", ConfigError]:
        """
        Load configuration from a YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            Result with loaded config or error
        """
        path = Path(path)

        if not path.exists():
            return Err(ConfigError(
                field="path",
                message=f"Configuration file not found: {path}",
            ))

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            return Err(ConfigError(
                field="yaml",
                message=f"Failed to parse YAML: {e}",
            ))
        except OSError as e:
            return Err(ConfigError(
                field="file",
                message=f"Failed to read config file: {e}",
            ))

        if not isinstance(data, dict):
            return Err(ConfigError(
                field="yaml",
                message="Top level of the configuration file must be a mapping",
            ))

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Result["SpectacularConfig", ConfigError]:
        """
        Create configuration from a dictionary.

        Args:
            data: Configuration dictionary

        Returns:
            Result with loaded config or error
        """
        try:
            ai_data = data.get("ai") or {}
            ai = AiConfig(
                api_key=ai_data.get("api_key"),
                model=ai_data.get("model", DEFAULT_MODEL),
                gateway_url=ai_data.get("gateway_url"),
                max_tokens=int(ai_data.get("max_tokens", 8192)),
                temperature=float(ai_data.get("temperature", 0.2)),
                max_retries=int(ai_data.get("max_retries", 2)),
                timeout=float(ai_data.get("timeout", 120.0)),
            )

            codegen_data = data.get("codegen") or {}
            codegen = CodegenConfig(
                schema_path=codegen_data.get("schema_path", "src/db/schema.ts"),
                api_path=codegen_data.get("api_path", "src/index.ts"),
                max_fix_attempts=int(codegen_data.get("max_fix_attempts", 1)),
                check_command=list(codegen_data.get("check_command", DEFAULT_CHECK_COMMAND)),
                check_timeout=int(codegen_data.get("check_timeout", 120)),
                web_search=bool(codegen_data.get("web_search", True)),
                rules=list(codegen_data.get("rules") or []),
            )

            logging_data = data.get("logging") or {}
            logging_config = LoggingConfig(
                level=logging_data.get("level", "info"),
                format=logging_data.get("format", "json"),
            )

            return Ok(cls(ai=ai, codegen=codegen, logging=logging_config))

        except (TypeError, ValueError, AttributeError) as e:
            return Err(ConfigError(
                field="unknown",
                message=f"Failed to parse configuration: {e}",
            ))

    def validate(self) -> Result[None, ConfigError]:
        """
        Validate configuration values.

        Returns:
            Result indicating success or validation error
        """
        if self.ai.max_tokens < 1:
            return Err(ConfigError(
                field="ai.max_tokens",
                message=f"Must be at least 1, got {self.ai.max_tokens}",
            ))
        if not 0.0 <= self.ai.temperature <= 1.0:
            return Err(ConfigError(
                field="ai.temperature",
                message=f"Must be between 0 and 1, got {self.ai.temperature}",
            ))
        if self.ai.max_retries < 0:
            return Err(ConfigError(
                field="ai.max_retries",
                message=f"Must not be negative, got {self.ai.max_retries}",
            ))

        if self.codegen.max_fix_attempts < 1:
            return Err(ConfigError(
                field="codegen.max_fix_attempts",
                message=f"Must be at least 1, got {self.codegen.max_fix_attempts}",
            ))
        if self.codegen.max_fix_attempts > 5:
            return Err(ConfigError(
                field="codegen.max_fix_attempts",
                message=f"Must be at most 5, got {self.codegen.max_fix_attempts}",
            ))
        if not self.codegen.check_command:
            return Err(ConfigError(
                field="codegen.check_command",
                message="Must name a command",
            ))
        if self.codegen.check_timeout < 1:
            return Err(ConfigError(
                field="codegen.check_timeout",
                message=f"Must be positive, got {self.codegen.check_timeout}",
            ))

        if self.logging.level not in LOG_LEVELS:
            return Err(ConfigError(
                field="logging.level",
                message=f"Must be one of {', '.join(LOG_LEVELS)}, got {self.logging.level}",
            ))
        if self.logging.format not in LOG_FORMATS:
            return Err(ConfigError(
                field="logging.format",
                message=f"Must be one of {', '.join(LOG_FORMATS)}, got {self.logging.format}",
            ))

        return Ok(None)

    def with_api_key(self, api_key: Optional[str]) -> "SpectacularConfig":
        """Return a new config whose AI settings carry ``api_key``."""
        return replace(self, ai=replace(self.ai, api_key=api_key))

    def with_max_fix_attempts(self, attempts: Optional[int]) -> Result["SpectacularConfig", ConfigError]:
        """
        Apply a fix budget override and validate the result.

        Args:
            attempts: New budget, or None to keep the configured one

        Returns:
            Result with the updated config or the validation error
        """
        if attempts is None:
            return Ok(self)
        updated = replace(self, codegen=replace(self.codegen, max_fix_attempts=attempts))
        validation = updated.validate()
        if validation.is_err():
            return Err(validation.unwrap_err())
        return Ok(updated)

    def to_dict(self) -> dict[str, Any]:
        """Serializable view with the API key masked."""
        return {
            "ai": {
                "api_key": "***" if self.ai.api_key else None,
                "model": self.ai.model,
                "gateway_url": self.ai.gateway_url,
                "max_tokens": self.ai.max_tokens,
                "temperature": self.ai.temperature,
                "max_retries": self.ai.max_retries,
                "timeout": self.ai.timeout,
            },
            "codegen": {
                "schema_path": self.codegen.schema_path,
                "api_path": self.codegen.api_path,
                "max_fix_attempts": self.codegen.max_fix_attempts,
                "check_command": list(self.codegen.check_command),
                "check_timeout": self.codegen.check_timeout,
                "web_search": self.codegen.web_search,
                "rules": list(self.codegen.rules),
            },
            "logging": {
                "level": self.logging.level,
                "format": self.logging.format,
            },
            "config_dir": str(self.config_dir) if self.config_dir else None,
        }


def load_config(config_dir: Optional[Path] = None) -> Result[SpectacularConfig, ConfigError]:
    """
    Load configuration from the standard location.

    Reads ``spectacular.yaml`` from ``config_dir`` when present, falls back to
    defaults otherwise, and fills the API key from the environment when the
    file does not set one.

    Args:
        config_dir: Configuration directory (defaults to ./config)

    Returns:
        Result with loaded config or error
    """
    if config_dir is None:
        config_dir = Path("./config")

    config_dir = Path(config_dir)

    config_path = config_dir / CONFIG_FILENAME
    if config_path.exists():
        result = SpectacularConfig.from_yaml(config_path)
        if result.is_err():
            return result
        config = result.unwrap()
    else:
        config = SpectacularConfig()

    config.config_dir = config_dir
    if not config.ai.api_key:
        config = config.with_api_key(get_env_api_key())

    validation_result = config.validate()
    if validation_result.is_err():
        return Err(validation_result.unwrap_err())

    return Ok(config)


def get_env_api_key() -> Optional[str]:
    """Get the Anthropic API key from environment."""
    return os.environ.get("ANTHROPIC_API_KEY")
