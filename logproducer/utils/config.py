"""
Configuration file loading for the producer client.

Producer settings can live in a YAML file:

    client_id: billing-service
    seed_brokers:
      - kafka1:9092
      - kafka2:9092
    producer:
      required_acks: 1
      max_send_retries: 5
    logging:
      level: INFO
      format: json

Environment variables override the file:
- LOGPRODUCER_CLIENT_ID
- LOGPRODUCER_SEED_BROKERS (comma separated)
- LOG_LEVEL
"""

import os
from typing import Any, Dict, Optional, Set

import yaml


class Config:
    """Nested configuration with dot-notation access."""

    def __init__(self, config_file: Optional[str] = None, values: Optional[Dict[str, Any]] = None):
        """
        Initialize configuration.

        Args:
            config_file: Path to a YAML file to load
            values: Initial values (merged before the file)
        """
        self._config: Dict[str, Any] = {}
        self.file_sections: Set[str] = set()

        if values:
            self._merge_config(values)

        if config_file:
            self._load_config_file(config_file)

        self._apply_env_overrides()

    def _load_config_file(self, config_file: str) -> None:
        with open(config_file, "r") as f:
            file_config = yaml.safe_load(f) or {}

        if not isinstance(file_config, dict):
            raise ValueError(f"Configuration file must contain a mapping: {config_file}")

        self.file_sections = set(file_config)
        self._merge_config(file_config)

    def _merge_config(self, new_config: Dict[str, Any]) -> None:
        self._config = self._deep_merge(self._config, new_config)

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """
        Deep merge two dictionaries.

        Args:
            base: Base dictionary
            override: Override dictionary

        Returns:
            Merged dictionary
        """
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def _apply_env_overrides(self) -> None:
        if client_id := os.getenv("LOGPRODUCER_CLIENT_ID"):
            self.set("client_id", client_id)

        if seed_brokers := os.getenv("LOGPRODUCER_SEED_BROKERS"):
            self.set(
                "seed_brokers",
                [b.strip() for b in seed_brokers.split(",") if b.strip()],
            )

        if log_level := os.getenv("LOG_LEVEL"):
            self.set("logging.level", log_level)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., "producer.required_acks")
            default: Default value if key not found

        Returns:
            Configuration value
        """
        value: Any = self._config
        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key in dot notation
            value: Value to set
        """
        keys = key.split(".")
        config = self._config
        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]
        config[keys[-1]] = value

    def to_dict(self) -> Dict[str, Any]:
        """Get entire configuration as dictionary."""
        return self._config.copy()
