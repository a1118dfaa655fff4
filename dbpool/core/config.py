"""
Configuration Management System

This module provides configuration for dbpool pools and their logging.
It supports environment variables, configuration files and environment-specific settings.
"""

import os
import json
import yaml
from typing import Any, Dict, List, Optional
from pathlib import Path
from dataclasses import dataclass, field, fields, asdict
from enum import Enum

from .errors import ConfigurationError


class Environment(Enum):
    """Deployment environment types"""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


@dataclass
class PoolConfiguration:
    """Connection pool settings (durations in seconds)"""
    min_connections: int = 2
    max_connections: int = 10
    acquire_timeout: float = 30.0
    idle_timeout: float = 60.0
    connection_timeout: float = 10.0
    query_timeout: float = 30.0
    health_check_interval: float = 30.0
    health_check_query: str = "SELECT 1"
    validate_on_borrow: bool = True
    test_while_idle: bool = True
    retry_attempts: int = 3
    retry_delay: float = 1.0

    def validate(self) -> List[str]:
        """Validate configuration values and return the problems found"""
        errors = []

        if self.min_connections < 0:
            errors.append("min_connections must not be negative")

        if self.max_connections <= 0:
            errors.append("max_connections must be positive")

        if self.min_connections > self.max_connections:
            errors.append("min_connections must not exceed max_connections")

        for name in ("acquire_timeout", "connection_timeout", "query_timeout",
                     "health_check_interval", "idle_timeout"):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be positive")

        if self.retry_attempts < 1:
            errors.append("retry_attempts must be at least 1")

        if self.retry_delay < 0:
            errors.append("retry_delay must not be negative")

        if not self.health_check_query:
            errors.append("health_check_query must not be empty")

        return errors

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PoolConfiguration':
        """Build a configuration from a mapping, ignoring unknown keys"""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LoggingConfig:
    """Logging configuration settings"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    format_type: str = "standard"
    console_handler_enabled: bool = True
    file_handler_enabled: bool = False
    log_directory: str = "logs"
    log_file: str = "dbpool.log"
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5
    sensitive_data_patterns: list = field(default_factory=lambda: [
        r'(password\s*=\s*)[^\s;&]+',
        r'(://[^:/@\s]+:)[^@\s]+(?=@)',
    ])


@dataclass
class AppConfig:
    """Top-level configuration"""
    environment: Environment = Environment.DEVELOPMENT
    pool: PoolConfiguration = field(default_factory=PoolConfiguration)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


class ConfigManager:
    """
    Configuration manager for loading pool and logging settings

    Supports multiple configuration sources in order of precedence:
    1. Environment variables
    2. Configuration files (JSON/YAML)
    3. Default values
    """

    def __init__(self,
                 config_dir: Optional[Path] = None,
                 env_prefix: str = "DBPOOL_"):
        """
        Initialize the configuration manager

        Args:
            config_dir: Directory containing configuration files
            env_prefix: Prefix for environment variables
        """
        self.config_dir = Path(config_dir) if config_dir else Path.cwd()
        self.env_prefix = env_prefix
        self._config: Optional[AppConfig] = None

    def load_config(self,
                    environment: Optional[str] = None,
                    config_file: Optional[str] = None) -> AppConfig:
        """
        Load configuration from all sources

        Args:
            environment: Target environment (development, testing, production)
            config_file: Specific configuration file to load

        Returns:
            Loaded configuration
        """
        if self._config is not None:
            return self._config

        try:
            config = AppConfig()

            env_name = (environment or
                        os.getenv(f"{self.env_prefix}ENVIRONMENT", "development"))

            try:
                config.environment = Environment(env_name.lower())
            except ValueError:
                raise ConfigurationError(
                    "environment",
                    f"Invalid environment: {env_name}"
                )

            config_file_path = self._find_config_file(config_file, config.environment)
            if config_file_path:
                file_config = self._load_config_file(config_file_path)
                config = self._merge_config(config, file_config)

            config = self._load_from_environment(config)

            self._validate_config(config)

            self._config = config
            return config

        except Exception as e:
            if isinstance(e, ConfigurationError):
                raise
            raise ConfigurationError(
                "config_loading",
                f"Failed to load configuration: {str(e)}",
                cause=e
            )

    def _find_config_file(self,
                          config_file: Optional[str],
                          environment: Environment) -> Optional[Path]:
        """Find the appropriate configuration file"""
        if config_file:
            path = Path(config_file)
            if not path.is_absolute():
                path = self.config_dir / path
            if not path.exists():
                raise ConfigurationError(
                    "config_file",
                    f"Configuration file not found: {path}"
                )
            return path

        possible_files = [
            f"dbpool.{environment.value}.yaml",
            f"dbpool.{environment.value}.yml",
            f"dbpool.{environment.value}.json",
            "dbpool.yaml",
            "dbpool.yml",
            "dbpool.json",
        ]

        for filename in possible_files:
            path = self.config_dir / filename
            if path.exists():
                return path

        return None

    def _load_config_file(self, config_file: Path) -> Dict[str, Any]:
        """Load configuration from a file"""
        suffix = config_file.suffix.lower()
        if suffix not in ('.yml', '.yaml', '.json'):
            raise ConfigurationError(
                "config_file_format",
                f"Unsupported configuration file format: {config_file.suffix}"
            )

        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                if suffix == '.json':
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(
                "config_file_read",
                f"Failed to read configuration file {config_file}: {str(e)}",
                cause=e
            )

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                "config_file_format",
                f"Configuration file {config_file} must contain a mapping"
            )
        return data

    def _merge_config(self, base_config: AppConfig, file_config: Dict[str, Any]) -> AppConfig:
        """Merge file configuration into base configuration"""
        for key, value in file_config.items():
            if key == "environment":
                continue
            if not hasattr(base_config, key):
                raise ConfigurationError(key, f"Unknown configuration section: {key}")
            if not isinstance(value, dict):
                raise ConfigurationError(key, f"Section {key} must be a mapping")

            nested_config = getattr(base_config, key)
            for nested_key, nested_value in value.items():
                if not hasattr(nested_config, nested_key):
                    raise ConfigurationError(
                        f"{key}.{nested_key}",
                        f"Unknown configuration key: {key}.{nested_key}"
                    )
                setattr(nested_config, nested_key, nested_value)

        return base_config

    def _load_from_environment(self, config: AppConfig) -> AppConfig:
        """Load configuration values from environment variables"""
        env_mappings = {
            # Pool configuration
            f"{self.env_prefix}MIN_CONNECTIONS": ("pool", "min_connections", int),
            f"{self.env_prefix}MAX_CONNECTIONS": ("pool", "max_connections", int),
            f"{self.env_prefix}ACQUIRE_TIMEOUT": ("pool", "acquire_timeout", float),
            f"{self.env_prefix}IDLE_TIMEOUT": ("pool", "idle_timeout", float),
            f"{self.env_prefix}CONNECTION_TIMEOUT": ("pool", "connection_timeout", float),
            f"{self.env_prefix}QUERY_TIMEOUT": ("pool", "query_timeout", float),
            f"{self.env_prefix}HEALTH_CHECK_INTERVAL": ("pool", "health_check_interval", float),
            f"{self.env_prefix}HEALTH_CHECK_QUERY": ("pool", "health_check_query", str),
            f"{self.env_prefix}VALIDATE_ON_BORROW": ("pool", "validate_on_borrow", bool),
            f"{self.env_prefix}TEST_WHILE_IDLE": ("pool", "test_while_idle", bool),
            f"{self.env_prefix}RETRY_ATTEMPTS": ("pool", "retry_attempts", int),
            f"{self.env_prefix}RETRY_DELAY": ("pool", "retry_delay", float),

            # Logging configuration
            f"{self.env_prefix}LOG_LEVEL": ("logging", "level", str),
            f"{self.env_prefix}LOG_FORMAT_TYPE": ("logging", "format_type", str),
            f"{self.env_prefix}LOG_DIRECTORY": ("logging", "log_directory", str),
            f"{self.env_prefix}LOG_FILE_ENABLED": ("logging", "file_handler_enabled", bool),
            f"{self.env_prefix}LOG_CONSOLE_ENABLED": ("logging", "console_handler_enabled", bool),
        }

        for env_var, (section, attr, converter) in env_mappings.items():
            value = os.getenv(env_var)
            if value is None:
                continue
            try:
                if converter is bool:
                    converted_value = value.lower() in ('true', '1', 'yes', 'on')
                else:
                    converted_value = converter(value)
            except ValueError as e:
                raise ConfigurationError(
                    env_var,
                    f"Invalid value for environment variable {env_var}: {value}",
                    cause=e
                )
            setattr(getattr(config, section), attr, converted_value)

        return config

    def _validate_config(self, config: AppConfig) -> None:
        """Validate the loaded configuration"""
        problems = config.pool.validate()
        if problems:
            raise ConfigurationError(
                "pool",
                f"Invalid pool configuration: {', '.join(problems)}",
                details={"problems": problems}
            )

        if config.logging.format_type not in ("standard", "json"):
            raise ConfigurationError(
                "logging.format_type",
                f"Unknown log format type: {config.logging.format_type}"
            )

    def get_config(self) -> AppConfig:
        """Get the current configuration"""
        if self._config is None:
            raise ConfigurationError(
                "config_not_loaded",
                "Configuration not loaded. Call load_config() first."
            )
        return self._config

    def reload_config(self, **kwargs) -> AppConfig:
        """Reload configuration from sources"""
        self._config = None
        return self.load_config(**kwargs)


def load_config(config_dir: Optional[Path] = None,
                env_prefix: str = "DBPOOL_",
                **kwargs) -> AppConfig:
    """Load configuration with a fresh manager"""
    return ConfigManager(config_dir=config_dir, env_prefix=env_prefix).load_config(**kwargs)
