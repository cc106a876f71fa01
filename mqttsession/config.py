"""Configuration management with Pydantic validation.

Supports three configuration sources (in priority order):
1. YAML config file
2. Environment variables (for Docker)
3. Default values
"""

import os
import uuid
from pathlib import Path
from typing import Any, List, Mapping, Optional, Literal, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import InvalidConfiguration


# Fields that must be set before a session may connect
REQUIRED_FIELDS = ("server", "port", "topic", "username", "password")


class SessionConfig(BaseModel):
    """MQTT session configuration."""

    server: Optional[str] = Field(
        default=None,
        description="MQTT broker hostname or IP"
    )
    port: int = Field(
        default=0,
        ge=0,
        le=65535,
        description="MQTT broker port (0 = unset)"
    )
    topic: Optional[str] = Field(
        default=None,
        description="Topic to subscribe to and default publish topic"
    )
    username: Optional[str] = Field(
        default=None,
        description="MQTT username"
    )
    password: Optional[str] = Field(
        default=None,
        description="MQTT password"
    )
    use_tls: bool = Field(
        default=False,
        description="Connect using TLS"
    )
    tls_insecure: bool = Field(
        default=False,
        description="Skip broker hostname verification when using TLS"
    )
    client_id: Optional[str] = Field(
        default=None,
        description="MQTT client identifier (random if not set)"
    )
    qos: int = Field(
        default=2,
        ge=0,
        le=2,
        description="QoS level for publish and subscribe"
    )
    retain: bool = Field(
        default=True,
        description="Retain published messages"
    )
    keepalive: int = Field(
        default=60,
        ge=1,
        description="Keepalive interval in seconds"
    )
    connect_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Connect/disconnect timeout in seconds"
    )

    @field_validator("server", "topic", "username", "password", "client_id", mode="before")
    @classmethod
    def empty_str_to_none(cls, v):
        """Convert empty strings to None."""
        if v == "":
            return None
        return v

    def missing_fields(self) -> List[str]:
        """Get the required fields that are not set.

        Returns:
            Names of missing required fields, in declaration order
        """
        return [name for name in REQUIRED_FIELDS if not getattr(self, name)]

    def validate_required(self) -> "SessionConfig":
        """Check that every required field is set.

        Returns:
            A copy with a generated client_id if none was supplied

        Raises:
            InvalidConfiguration: If a required field is missing
        """
        missing = self.missing_fields()
        if missing:
            raise InvalidConfiguration(
                f"Missing required MQTT setting(s): {', '.join(missing)}"
            )
        if not self.client_id:
            return self.model_copy(update={"client_id": str(uuid.uuid4())})
        return self


def parse_session_config(config: Union[SessionConfig, Mapping[str, Any], None]) -> SessionConfig:
    """Build a validated SessionConfig from a model or a mapping.

    Args:
        config: SessionConfig instance or a dict of settings

    Returns:
        SessionConfig with every required field set

    Raises:
        InvalidConfiguration: If the configuration is missing or invalid
    """
    if config is None:
        raise InvalidConfiguration("No MQTT configuration supplied")

    if not isinstance(config, SessionConfig):
        try:
            config = SessionConfig(**config)
        except (TypeError, ValidationError) as e:
            raise InvalidConfiguration(f"Invalid MQTT configuration: {e}") from e

    return config.validate_required()


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )
    file: Optional[Path] = Field(
        default=None,
        description="Log file path (optional)"
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format"
    )


class AppConfig(BaseModel):
    """Complete application configuration."""

    mqtt: SessionConfig = Field(
        default_factory=SessionConfig,
        description="MQTT session settings"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging settings"
    )


def _to_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes", "on")


# Environment variable mapping
ENV_MAPPING = {
    # MQTT
    "MQTT_SERVER": ("mqtt", "server"),
    "MQTT_PORT": ("mqtt", "port", int),
    "MQTT_TOPIC": ("mqtt", "topic"),
    "MQTT_USERNAME": ("mqtt", "username"),
    "MQTT_PASSWORD": ("mqtt", "password"),
    "MQTT_USE_TLS": ("mqtt", "use_tls", _to_bool),
    "MQTT_TLS_INSECURE": ("mqtt", "tls_insecure", _to_bool),
    "MQTT_CLIENT_ID": ("mqtt", "client_id"),
    "MQTT_QOS": ("mqtt", "qos", int),
    "MQTT_RETAIN": ("mqtt", "retain", _to_bool),
    "MQTT_KEEPALIVE": ("mqtt", "keepalive", int),
    "MQTT_CONNECT_TIMEOUT": ("mqtt", "connect_timeout", float),

    # Logging
    "LOG_LEVEL": ("logging", "level"),
    "LOG_FILE": ("logging", "file"),
}


def _get_env_value(env_var: str, mapping: tuple):
    """Get environment variable value with optional type conversion."""
    value = os.environ.get(env_var)
    if value is None:
        return None

    # Apply type conversion if specified
    if len(mapping) > 2:
        converter = mapping[2]
        try:
            return converter(value)
        except (ValueError, TypeError):
            return value
    return value


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables.

    Returns:
        AppConfig with values from environment (or defaults)

    Raises:
        InvalidConfiguration: If an environment value fails validation
    """
    config_dict = {
        "mqtt": {},
        "logging": {},
    }

    for env_var, mapping in ENV_MAPPING.items():
        value = _get_env_value(env_var, mapping)
        if value is not None:
            section = mapping[0]
            key = mapping[1]
            config_dict[section][key] = value

    try:
        return AppConfig(**config_dict)
    except ValidationError as e:
        raise InvalidConfiguration(f"Invalid environment configuration: {e}") from e


def load_config(config_path: Union[str, Path]) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        Validated AppConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        InvalidConfiguration: If config validation fails
    """
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(path, "r") as f:
        raw_config = yaml.safe_load(f) or {}

    # Support environment variable substitution
    raw_config = _substitute_env_vars(raw_config)

    try:
        return AppConfig(**raw_config)
    except (TypeError, ValidationError) as e:
        raise InvalidConfiguration(f"Invalid configuration file {path}: {e}") from e


def get_config(config_path: Optional[str] = None) -> AppConfig:
    """Get configuration from config file or environment variables.

    Priority:
    1. Config file (if path provided and file exists)
    2. Environment variables
    3. Default values

    Args:
        config_path: Optional path to YAML config file

    Returns:
        Validated AppConfig instance
    """
    if config_path:
        path = Path(config_path)
        if path.exists():
            return load_config(config_path)

    return load_config_from_env()


def _substitute_env_vars(config: Any) -> Any:
    """Recursively substitute environment variables in config values.

    Environment variables are referenced as ${VAR_NAME} or $VAR_NAME.
    """
    if isinstance(config, dict):
        return {k: _substitute_env_vars(v) for k, v in config.items()}
    elif isinstance(config, list):
        return [_substitute_env_vars(item) for item in config]
    elif isinstance(config, str):
        # Handle ${VAR_NAME} format
        if config.startswith("${") and config.endswith("}"):
            var_name = config[2:-1]
            return os.environ.get(var_name, config)
        # Handle $VAR_NAME format
        elif config.startswith("$") and not config.startswith("${"):
            var_name = config[1:]
            return os.environ.get(var_name, config)
        return config
    else:
        return config


def create_default_config() -> str:
    """Generate default configuration as YAML string."""
    config = AppConfig(
        mqtt=SessionConfig(
            server="localhost",
            port=1883,
            topic="mqtt-session/messages",
            username="user",
            password="${MQTT_PASSWORD}",
        )
    )
    return yaml.dump(
        config.model_dump(mode="json", exclude_none=True),
        default_flow_style=False,
        sort_keys=False,
    )


def print_env_help() -> str:
    """Generate help text for environment variables."""
    lines = [
        "Environment Variables:",
        "",
        "  MQTT (required):",
        "    MQTT_SERVER           Broker hostname/IP",
        "    MQTT_PORT             Broker port (e.g. 1883, 8883 for TLS)",
        "    MQTT_TOPIC            Topic to subscribe and publish to",
        "    MQTT_USERNAME         Username",
        "    MQTT_PASSWORD         Password",
        "",
        "  MQTT (optional):",
        "    MQTT_USE_TLS          Connect with TLS (default: false)",
        "    MQTT_TLS_INSECURE     Skip hostname verification (default: false)",
        "    MQTT_CLIENT_ID        Client ID (default: random UUID)",
        "    MQTT_QOS              QoS level 0-2 (default: 2)",
        "    MQTT_RETAIN           Retain published messages (default: true)",
        "    MQTT_KEEPALIVE        Keepalive seconds (default: 60)",
        "    MQTT_CONNECT_TIMEOUT  Connect/disconnect timeout seconds (default: 10)",
        "",
        "  Logging:",
        "    LOG_LEVEL            DEBUG, INFO, WARNING, ERROR (default: INFO)",
        "    LOG_FILE             Log file path (optional)",
    ]
    return "\n".join(lines)
