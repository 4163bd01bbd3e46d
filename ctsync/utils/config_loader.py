"""Configuration loader for the change-tracking sync service."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
import yaml
from pydantic import ValidationError

from ctsync.models.config import AppConfig

log = structlog.stdlib.get_logger()


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


class ConfigLoader:
    """Loads and validates sync configuration from YAML/JSON files and environment variables."""

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        """Initialize the ConfigLoader.

        Args:
            config_dir: Directory searched for the default configuration file.
                Defaults to the ``config`` directory of the project root.
        """
        self.env_var_pattern = re.compile(r"\$\{([^}]+)\}")
        self.config_dir = config_dir or Path(__file__).parent.parent.parent / "config"

    def load_config(self, config_path: Optional[str] = None) -> AppConfig:
        """Load configuration from a YAML or JSON file.

        ``${VAR_NAME}`` references in string values are replaced with the
        value of the environment variable before validation.

        Args:
            config_path: Path to the configuration file. If None, uses the default

        Returns:
            AppConfig: Validated application configuration

        Raises:
            ConfigurationError: If the file is missing, unreadable or invalid,
                or a referenced environment variable is not set
        """
        if config_path is None:
            config_path = self._get_default_config_path()

        log.info("loading_configuration", config_path=config_path)

        config_dict = self._load_file(config_path)
        config_dict = self._substitute_env_vars(config_dict)

        try:
            app_config = AppConfig(**config_dict)
        except ValidationError as e:
            log.error("configuration_validation_failed", error=str(e))
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

        log.info("configuration_loaded_successfully")
        return app_config

    def _get_default_config_path(self) -> str:
        """Get the configuration file for CTSYNC_ENV, falling back to default.yaml."""
        env = os.getenv("CTSYNC_ENV", "default")
        config_file = self.config_dir / f"{env}.yaml"

        if not config_file.exists():
            config_file = self.config_dir / "default.yaml"

        if not config_file.exists():
            raise ConfigurationError(
                f"Configuration file not found: {config_file}. "
                f"Please create config/default.yaml or set CTSYNC_ENV to a valid environment."
            )

        return str(config_file)

    def _load_file(self, config_path: str) -> Dict[str, Any]:
        """Parse a YAML file (JSON parses as YAML too).

        Raises:
            ConfigurationError: If file cannot be read or parsed
        """
        try:
            with open(config_path, "r") as f:
                config_dict = yaml.safe_load(f)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Configuration file not found: {config_path}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Failed to parse configuration file {config_path}: {e}"
            ) from e
        except OSError as e:
            raise ConfigurationError(f"Failed to read configuration file {config_path}: {e}") from e

        if config_dict is None:
            raise ConfigurationError(f"Configuration file is empty: {config_path}")
        if not isinstance(config_dict, dict):
            raise ConfigurationError(
                f"Configuration file must contain a mapping at the top level: {config_path}"
            )

        log.debug("config_file_loaded", config_path=config_path)
        return config_dict

    def _substitute_env_vars(self, config: Any) -> Any:
        """Recursively substitute ${VAR_NAME} references in configuration values."""
        if isinstance(config, dict):
            return {key: self._substitute_env_vars(value) for key, value in config.items()}
        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            return self._substitute_env_var_in_string(config)
        else:
            return config

    def _substitute_env_var_in_string(self, value: str) -> str:
        """Substitute environment variables in a string.

        Raises:
            ConfigurationError: If a referenced environment variable is not set
        """
        for var_name in self.env_var_pattern.findall(value):
            env_value = os.getenv(var_name)
            if env_value is None:
                raise ConfigurationError(
                    f"Required environment variable not set: {var_name}. "
                    f"Please set {var_name} in your environment or .env file."
                )
            value = value.replace(f"${{{var_name}}}", env_value)

        return value

    def validate_config(self, config: AppConfig) -> list[str]:
        """Check configuration for likely mistakes and return any warnings.

        Args:
            config: Application configuration to validate

        Returns:
            List of warning messages (empty if no warnings)
        """
        warnings = []

        source, destination = config.source, config.destination
        if (
            source.server.casefold() == destination.server.casefold()
            and source.database.casefold() == destination.database.casefold()
        ):
            warnings.append(
                f"source and destination both point to {source.server}/{source.database}"
            )

        for name, db in (("source", source), ("destination", destination)):
            if db.username and not db.password:
                warnings.append(
                    f"{name}.username is set without a password; integrated security will be used"
                )
            if not db.encrypt:
                warnings.append(f"{name}.encrypt is disabled")

        if warnings:
            log.warning("configuration_validation_warnings", warnings=warnings)

        return warnings
