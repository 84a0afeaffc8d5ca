"""
Configuration management for rawdhcp.

Loads client settings from environment variables or a .env file.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Check common locations for .env
env_locations = [
    Path.home() / ".rawdhcp" / ".env",
    Path.home() / ".config" / "rawdhcp" / ".env",
    Path.cwd() / ".env",
]
for env_path in env_locations:
    if env_path.exists():
        load_dotenv(env_path)
        break

# One year: effectively unbounded for an interactive handshake
DEFAULT_TIMEOUT = 365 * 24 * 3600.0

DEFAULT_INTERFACE = "tap-dPeTE"


@dataclass
class ClientConfig:
    """DHCP client configuration."""

    interface: str = DEFAULT_INTERFACE

    # Overall handshake deadline in seconds
    timeout: float = DEFAULT_TIMEOUT

    # How often a blocked capture read wakes up to notice close()
    poll_interval: float = 0.1

    # Logging
    log_level: str = "INFO"
    log_file: str | None = None

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Load configuration from environment variables."""
        return cls(
            interface=os.getenv("RAWDHCP_INTERFACE", DEFAULT_INTERFACE),
            timeout=float(os.getenv("RAWDHCP_TIMEOUT", DEFAULT_TIMEOUT)),
            poll_interval=float(os.getenv("RAWDHCP_POLL_INTERVAL", "0.1")),
            log_level=os.getenv("RAWDHCP_LOG_LEVEL", "INFO"),
            log_file=os.getenv("RAWDHCP_LOG_FILE") or None,
        )


# Global config instance
_config: ClientConfig | None = None


def get_config() -> ClientConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ClientConfig.from_env()
    return _config


def set_config(config: ClientConfig | None) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
