"""
Configuration management for DVL Host.

Loads/saves TOML configuration for the link, login credentials, device
parameters, protocol timeouts and logging.
"""

import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field

from dvl_host.protocol import (
    DEFAULT_CREDENTIAL,
    DEFAULT_SALINITY,
    DEFAULT_SAMPLING_RATE,
    SALINITY_RANGE,
    SAMPLING_RATE_RANGE,
)


class ConnectionConfig(BaseModel):
    """Link configuration."""

    transport: Literal["tcp", "serial"] = Field(default="tcp", description="Link type")
    host: str = Field(default="192.168.0.2", description="Device IPv4 address")
    port: int = Field(default=9000, description="Command interface TCP port")
    serial_port: str = Field(default="/dev/ttyUSB0", description="Serial port device")
    baud: int = Field(default=115200, description="Serial baud rate")
    connect_timeout_s: float = Field(default=5.0, description="TCP connect timeout in seconds")


class CredentialsConfig(BaseModel):
    """Command interface login."""

    username: str = Field(default=DEFAULT_CREDENTIAL, description="Login username")
    password: str = Field(default=DEFAULT_CREDENTIAL, description="Login password")


class DeviceConfig(BaseModel):
    """Measurement parameters applied during setup."""

    sampling_rate: float = Field(
        default=DEFAULT_SAMPLING_RATE,
        ge=SAMPLING_RATE_RANGE[0],
        le=SAMPLING_RATE_RANGE[1],
        description="Sampling rate in Hz",
    )
    salinity: float = Field(
        default=DEFAULT_SALINITY,
        ge=SALINITY_RANGE[0],
        le=SALINITY_RANGE[1],
        description="Water salinity in ppt",
    )
    power_level: Optional[Literal["MIN", "MED", "MAX"]] = Field(
        default=None, description="Bottom-track power level applied after setup"
    )


class TimeoutConfig(BaseModel):
    """Protocol timeouts in seconds."""

    reply_s: float = Field(default=1.0, description="Command reply timeout")
    prompt_s: float = Field(default=1.0, description="Username/password prompt timeout")
    banner_s: float = Field(default=2.0, description="Login banner timeout")
    break_s: float = Field(default=2.0, description="Break acknowledgement timeout")
    mode_switch_s: float = Field(default=2.0, description="Command mode (MC) timeout")
    settle_s: float = Field(default=1.0, description="Delay after login and break")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    wire_dump: bool = Field(default=True, description="Log sent and received lines")
    log_dir: str = Field(default="~/dvl_logs", description="Directory for log files")


class Config(BaseModel):
    """Complete DVL Host configuration."""

    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig)
    device: DeviceConfig = Field(default_factory=DeviceConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def get_config_path() -> Path:
    """Get default configuration file path."""
    config_home = os.getenv("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
    return Path(config_home) / "dvl_host" / "config.toml"


def load_config(path: Optional[Path] = None) -> Config:
    """
    Load configuration from TOML file.

    Args:
        path: Configuration file path. If None, uses default location.

    Returns:
        Loaded configuration object.
    """
    if path is None:
        path = get_config_path()

    if not path.exists():
        # Return default config if file doesn't exist
        return Config()

    import tomli

    with open(path, "rb") as f:
        data = tomli.load(f)

    return Config(**data)


def save_config(config: Config, path: Optional[Path] = None) -> None:
    """
    Save configuration to TOML file.

    Args:
        config: Configuration object to save.
        path: Configuration file path. If None, uses default location.
    """
    if path is None:
        path = get_config_path()

    path.parent.mkdir(parents=True, exist_ok=True)

    import tomli_w

    # TOML has no null; unset optional fields are omitted
    with open(path, "wb") as f:
        tomli_w.dump(config.model_dump(exclude_none=True), f)
