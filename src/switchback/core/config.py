"""
Configuration settings for the Switchback broker.

Values are read from ``SWITCHBACK_*`` environment variables and, for local
development, from a ``.env`` file in the working directory.
"""
import logging
from typing import Literal, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


def split_bind_addr(addr: str) -> Tuple[str, int]:
    """
    Split a ``host:port`` address into its parts.

    An empty host (e.g. ``":7773"``) means all interfaces. IPv6 hosts may be
    given in brackets (``"[::1]:7773"``).

    Raises:
        ValueError: If the address has no port or the port is out of range
    """
    host, sep, port = addr.rpartition(":")
    if not sep or not port:
        raise ValueError(f"bind address {addr!r} must be in host:port form")

    try:
        portno = int(port)
    except ValueError:
        raise ValueError(f"invalid port in bind address {addr!r}") from None

    if not 0 <= portno <= 65535:
        raise ValueError(f"port {portno} in bind address {addr!r} is out of range")

    host = host.strip("[]") or "0.0.0.0"
    return host, portno


class Settings(BaseSettings):
    """
    Broker configuration loaded from environment variables.
    """
    model_config = SettingsConfigDict(
        env_prefix="SWITCHBACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service settings
    service_name: str = "switchback"
    maintenance: bool = False
    bind_addr: str = ":7773"
    log_level: str = "info"

    # Broker settings
    mailbox_size: int = Field(default=32, gt=0)
    backpressure: Literal["block", "drop"] = "block"

    # Stream settings
    stream_heartbeat_interval: float = Field(default=15.0, gt=0)  # seconds
    shutdown_timeout: Optional[float] = 30.0  # None waits for streams forever

    @field_validator("bind_addr")
    @classmethod
    def validate_bind_addr(cls, value: str) -> str:
        split_bind_addr(value)
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in LOG_LEVELS:
            raise ValueError(f"log level must be one of {', '.join(LOG_LEVELS)}")
        return value

    @property
    def bind_host(self) -> str:
        return split_bind_addr(self.bind_addr)[0]

    @property
    def bind_port(self) -> int:
        return split_bind_addr(self.bind_addr)[1]

    @property
    def log_level_value(self) -> int:
        """The ``logging`` module constant for ``log_level``."""
        return getattr(logging, self.log_level.upper())


# Global settings instance
settings = Settings()
