#!/usr/bin/env python3
"""
Configuration Manager for Ekko

Features:
- JSON configuration file
- Environment variable overrides (EKKO_<SECTION>_<KEY>)
- Schema validation with jsonschema
- Default values for every setting
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import jsonschema

from ..core.sender import EkkoConfig

logger = logging.getLogger(__name__)


class ConfigSchema:
    """Configuration schema with validation"""

    SCHEMA = {
        "type": "object",
        "required": ["version", "general", "network", "trace"],
        "properties": {
            "version": {"type": "string", "pattern": r"^\d+\.\d+\.\d+$"},
            "general": {
                "type": "object",
                "required": ["log_level", "output_format"],
                "properties": {
                    "log_level": {"type": "string", "enum": ["DEBUG", "INFO", "WARNING", "ERROR"]},
                    "output_format": {"type": "string", "enum": ["text", "json", "color"]}
                }
            },
            "network": {
                "type": "object",
                "required": ["timeout", "receive_buffer_size", "payload_size"],
                "properties": {
                    "timeout": {"type": "number", "exclusiveMinimum": 0, "maximum": 60.0},
                    "receive_buffer_size": {"type": "integer", "minimum": 512, "maximum": 1048576},
                    "payload_size": {"type": "integer", "minimum": 0, "maximum": 1472},
                    "poll_interval": {"type": "number", "minimum": 0, "maximum": 1.0},
                    "resolve_domains": {"type": "boolean"}
                }
            },
            "trace": {
                "type": "object",
                "required": ["first_hop", "max_hops", "batch"],
                "properties": {
                    "first_hop": {"type": "integer", "minimum": 1, "maximum": 255},
                    "max_hops": {"type": "integer", "minimum": 1, "maximum": 255},
                    "batch": {"type": "boolean"}
                }
            }
        }
    }

    @staticmethod
    def get_defaults() -> Dict[str, Any]:
        """Return default configuration"""
        return {
            "version": "1.0.0",
            "general": {
                "log_level": "WARNING",
                "output_format": "color"
            },
            "network": {
                "timeout": 0.256,
                "receive_buffer_size": 65535,
                "payload_size": 56,
                "poll_interval": 0.0,
                "resolve_domains": False
            },
            "trace": {
                "first_hop": 1,
                "max_hops": 30,
                "batch": False
            }
        }

    @classmethod
    def validate(cls, config: Dict[str, Any]) -> None:
        """
        Validate a configuration dictionary.

        Raises:
            jsonschema.ValidationError: If the configuration is invalid
        """
        jsonschema.validate(instance=config, schema=cls.SCHEMA)


class ConfigManager:
    """
    Configuration manager with file, env, and validation support

    Usage:
        config = ConfigManager("ekko_config.json")
        config.load()
        timeout = config.get("network.timeout")
        config.set("trace.batch", True)
        config.save()
    """

    ENV_PREFIX = "EKKO_"

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration manager

        Args:
            config_file: Path to JSON config file (default: ekko_config.json)
        """
        self.config_file = config_file or "ekko_config.json"
        self.config = ConfigSchema.get_defaults()
        self.modified = False

    def load(self, config_file: Optional[str] = None) -> bool:
        """
        Load configuration from file

        Args:
            config_file: Optional path override

        Returns:
            True if loaded successfully, False otherwise (defaults are kept)
        """
        if config_file:
            self.config_file = config_file

        path = Path(self.config_file)

        if not path.exists():
            logger.info(f"Config file not found: {self.config_file}, using defaults")
            return False

        try:
            with open(path, 'r') as f:
                loaded_config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Config load error: {e}")
            return False

        if not isinstance(loaded_config, dict):
            logger.warning(f"Config file {self.config_file} does not hold a JSON object")
            return False

        # Merge over defaults (deep merge)
        merged = ConfigSchema.get_defaults()
        self._merge_config(merged, loaded_config)

        try:
            ConfigSchema.validate(merged)
        except jsonschema.ValidationError as e:
            path_str = ".".join(str(p) for p in e.absolute_path) or "<root>"
            logger.warning(f"Config validation failed at {path_str}: {e.message}, using defaults")
            return False

        self.config = merged
        logger.info(f"Config loaded: {self.config_file}")
        return True

    def save(self, config_file: Optional[str] = None) -> bool:
        """
        Save configuration to file

        Args:
            config_file: Optional path override

        Returns:
            True if saved successfully
        """
        if config_file:
            self.config_file = config_file

        try:
            with open(self.config_file, 'w') as f:
                json.dump(self.config, f, indent=2)
        except OSError as e:
            logger.error(f"Config save error: {e}")
            return False

        logger.info(f"Config saved: {self.config_file}")
        self.modified = False
        return True

    def _merge_config(self, base: Dict, override: Dict) -> None:
        """Deep merge configuration"""
        for key, value in override.items():
            if (key in base and
                    isinstance(base[key], dict) and
                    isinstance(value, dict)):
                self._merge_config(base[key], value)
            else:
                base[key] = value

    def validate(self) -> bool:
        """Validate the current configuration against the schema"""
        try:
            ConfigSchema.validate(self.config)
        except jsonschema.ValidationError as e:
            logger.warning(f"Validation error: {e.message}")
            return False
        return True

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation

        Args:
            key: Configuration key (e.g., "network.timeout")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        # Environment variable first
        env_key = self.ENV_PREFIX + key.upper().replace(".", "_")
        env_value = os.environ.get(env_key)
        if env_value is not None:
            return self._parse_env_value(env_value)

        value: Any = self.config
        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def _parse_env_value(self, value: str) -> Any:
        """Parse environment variable value"""
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        return value

    def set(self, key: str, value: Any) -> bool:
        """
        Set configuration value using dot notation

        Args:
            key: Configuration key
            value: Value to set

        Returns:
            True if successful
        """
        keys = key.split(".")

        current = self.config
        for k in keys[:-1]:
            if k not in current:
                current[k] = {}
            current = current[k]

        current[keys[-1]] = value
        self.modified = True
        return True

    def engine_config(self) -> EkkoConfig:
        """Build the engine configuration from the current settings"""
        return EkkoConfig(
            timeout=float(self.get("network.timeout")),
            receive_buffer_size=int(self.get("network.receive_buffer_size")),
            payload_size=int(self.get("network.payload_size")),
            poll_interval=float(self.get("network.poll_interval", 0.0)),
            resolve_domains=bool(self.get("network.resolve_domains", False))
        )


def create_default_config(filename: str = "ekko_config.json") -> bool:
    """Create default configuration file"""
    config = ConfigManager(filename)
    config.config = ConfigSchema.get_defaults()
    return config.save()


if __name__ == "__main__":
    create_default_config()
