"""
Bridge configuration

Loaded once at startup from the add-on options file (JSON) and never modified
afterwards.
"""

import json
import logging
import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/data/options.json"

REQUIRED_FIELDS = ("uhppote_device_id", "name", "door", "mqtt_id", "base_topic")

PORT_MAX = 0xFFFF
UINT8_MAX = 0xFF
UINT32_MAX = 0xFFFFFFFF


@dataclass(frozen=True)
class BridgeConfig:
    """Bridge configuration"""
    uhppote_device_id: int
    name: str
    door: int
    mqtt_id: str
    base_topic: str
    uhppote_device_ip: Optional[str] = None  # None means broadcast discovery
    mqtt_host: Optional[str] = None
    mqtt_port: Optional[int] = None
    mqtt_username: Optional[str] = None
    mqtt_password: Optional[str] = None
    uhppote_bind: str = "0.0.0.0"
    uhppote_broadcast: str = "255.255.255.255:60000"
    uhppote_listen: str = "0.0.0.0:60001"
    uhppote_timeout: float = 2.5
    door_delay: int = 5
    log_level: str = "INFO"
    fatal_state_publish: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BridgeConfig":
        """
        Build a validated configuration from a parsed options dictionary

        Unknown keys are ignored so that Home Assistant can add its own.

        Raises:
            ConfigurationError: If a required key is missing or has the wrong type
        """
        missing = [key for key in REQUIRED_FIELDS if data.get(key) in (None, "")]
        if missing:
            raise ConfigurationError(f"Missing required configuration field(s): {', '.join(missing)}")

        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}

        # Home Assistant stores unset optional strings as empty strings
        for key in ("uhppote_device_ip", "mqtt_host", "mqtt_username", "mqtt_password"):
            if values.get(key) == "":
                values[key] = None

        for key in ("uhppote_device_id", "door", "door_delay"):
            if key in values:
                values[key] = _as_int(key, values[key])
        if values.get("mqtt_port") not in (None, ""):
            values["mqtt_port"] = _as_int("mqtt_port", values["mqtt_port"])
            _check_range("mqtt_port", values["mqtt_port"], 0, PORT_MAX)
        else:
            values["mqtt_port"] = None

        _check_range("uhppote_device_id", values["uhppote_device_id"], 0, UINT32_MAX)
        _check_range("door", values["door"], 1, UINT8_MAX)
        if "door_delay" in values:
            _check_range("door_delay", values["door_delay"], 0, UINT8_MAX)

        for key in ("name", "mqtt_id", "base_topic", "log_level",
                    "uhppote_bind", "uhppote_broadcast", "uhppote_listen"):
            if key in values and not isinstance(values[key], str):
                raise ConfigurationError(f"Configuration field '{key}' must be a string, got {values[key]!r}")

        if "fatal_state_publish" in values and not isinstance(values["fatal_state_publish"], bool):
            raise ConfigurationError(
                f"Configuration field 'fatal_state_publish' must be true or false, got {values['fatal_state_publish']!r}"
            )

        if "uhppote_timeout" in values:
            timeout = values["uhppote_timeout"]
            if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
                raise ConfigurationError(f"Configuration field 'uhppote_timeout' must be a positive number, got {timeout!r}")

        return cls(**values)


def _check_range(key: str, value: int, low: int, high: int):
    if not low <= value <= high:
        raise ConfigurationError(f"Configuration field '{key}' out of range {low}..{high}: {value}")


def _as_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"Configuration field '{key}' must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Configuration field '{key}' must be an integer, got {value!r}")


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> BridgeConfig:
    """
    Load configuration from a JSON file

    Args:
        config_path: Path to the options file

    Returns:
        Validated BridgeConfig

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    if not os.path.exists(config_path):
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from: {config_path}")

    try:
        with open(config_path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in configuration file {config_path}: {e}")
        raise ConfigurationError(f"Invalid JSON in {config_path}: {e}") from e
    except OSError as e:
        logger.error(f"Error reading configuration file {config_path}: {e}")
        raise ConfigurationError(f"Cannot read {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration in {config_path} must be a JSON object")

    config = BridgeConfig.from_dict(data)
    logger.debug(f"Loaded configuration for device {config.uhppote_device_id}, door {config.door}")
    return config
