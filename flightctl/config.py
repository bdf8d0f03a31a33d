"""
Configuration management for flightctl

All parameters are configurable and can be overridden via:
1. config/default.yaml
2. Environment variables (prefixed with FLIGHTCTL_)
3. Command line arguments
"""

import os
import yaml
from dataclasses import dataclass, field, fields
from typing import Optional
from pathlib import Path


ENV_PREFIX = "FLIGHTCTL_"


@dataclass
class LinkConfig:
    """Vehicle link configuration"""
    target: str = "udp://:14540"         # MAVSDK-style connection URI
    discovery_timeout_s: float = 3.0     # Wait for an autopilot to appear

    # Our identity on the MAVLink network
    source_system: int = 245
    source_component: int = 190

    # Request/response limits
    command_timeout_s: float = 1.0      # Per COMMAND_ACK wait
    command_retries: int = 3
    item_timeout_s: float = 1.5         # Per mission item request wait
    upload_timeout_s: float = 30.0      # Whole mission upload


@dataclass
class ReadinessConfig:
    """Pre-flight readiness gate"""
    position_rate_hz: float = 1.0
    poll_interval_s: float = 1.0
    max_wait_s: float = 120.0           # 0 waits forever


@dataclass
class ExecutionConfig:
    """Mission execution behaviour"""
    abort_on_arm_failure: bool = False
    watch_timeout_s: float = 600.0      # CLI progress watch after start, 0 = forever


@dataclass
class InterfaceConfig:
    """Interface configuration"""

    # REST status API
    rest_enabled: bool = False
    rest_host: str = "0.0.0.0"
    rest_port: int = 8080

    # Logging
    log_file: str = ""
    log_level: str = "INFO"
    telemetry_log_dir: str = ""         # CSV telemetry, empty = disabled


@dataclass
class Config:
    """Main configuration container"""

    link: LinkConfig = field(default_factory=LinkConfig)
    readiness: ReadinessConfig = field(default_factory=ReadinessConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    interface: InterfaceConfig = field(default_factory=InterfaceConfig)

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """Load configuration from YAML file and environment"""
        config = cls()

        # Load from file if exists
        if config_path is None:
            config_path = Path(__file__).parent.parent / "config" / "default.yaml"

        if Path(config_path).exists():
            with open(config_path, 'r') as f:
                yaml_config = yaml.safe_load(f)
                if yaml_config:
                    config._update_from_dict(yaml_config)

        # Override from environment variables
        config._update_from_env()

        return config

    def _update_from_dict(self, d: dict):
        """Update config from dictionary (e.g., YAML)"""
        for section_name, section_data in d.items():
            if hasattr(self, section_name) and isinstance(section_data, dict):
                section = getattr(self, section_name)
                for key, value in section_data.items():
                    if hasattr(section, key):
                        setattr(section, key, value)

    def _update_from_env(self):
        """Override config from environment variables"""
        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue

            # Parse FLIGHTCTL_SECTION_KEY format
            parts = key[len(ENV_PREFIX):].lower().split("_", 1)
            if len(parts) != 2:
                continue

            section_name, param_name = parts
            section = getattr(self, section_name, None)
            if section is None or not hasattr(section, param_name):
                continue

            # Type conversion
            current_value = getattr(section, param_name)
            if isinstance(current_value, bool):
                setattr(section, param_name, value.lower() in ('true', '1', 'yes'))
            elif isinstance(current_value, int):
                setattr(section, param_name, int(value))
            elif isinstance(current_value, float):
                setattr(section, param_name, float(value))
            else:
                setattr(section, param_name, value)

    def to_dict(self) -> dict:
        return {
            f.name: dict(getattr(self, f.name).__dict__)
            for f in fields(self)
        }

    def save(self, config_path: str):
        """Save current configuration to YAML file"""
        with open(config_path, 'w') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False)


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance"""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config):
    """Set the global configuration instance"""
    global _config
    _config = config
