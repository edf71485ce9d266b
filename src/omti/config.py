"""
Optional JSON configuration for omti

Every key has a default, so a config file only needs the values it wants to
change. Command-line flags take precedence over values from the file.
"""

import json
import logging
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional

from .connection import DEFAULT_DUMP_EXTENSION
from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_FORWARD_PORT = 5433


@dataclass
class OmtiConfig:
    forward_port: int = DEFAULT_FORWARD_PORT
    tunnel_timeout: float = 10.0
    dump_extension: str = DEFAULT_DUMP_EXTENSION
    ssh_key_path: str = '~/.ssh/id_rsa'
    ssh_key_title: str = 'omti-cli-key'
    command_timeout: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OmtiConfig':
        if not isinstance(data, dict):
            raise ConfigError("config file must contain a JSON object")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"unknown config keys: {', '.join(unknown)}")

        config = cls(**data)
        config.validate()
        return config

    def validate(self):
        if isinstance(self.forward_port, bool) or not isinstance(self.forward_port, int) \
                or not 0 < self.forward_port < 65536:
            raise ConfigError(f"forward_port must be a TCP port number, got {self.forward_port!r}")
        if not isinstance(self.tunnel_timeout, (int, float)) or self.tunnel_timeout <= 0:
            raise ConfigError(f"tunnel_timeout must be a positive number, got {self.tunnel_timeout!r}")
        if self.command_timeout is not None and (
                not isinstance(self.command_timeout, (int, float)) or self.command_timeout <= 0):
            raise ConfigError(f"command_timeout must be a positive number or null, got {self.command_timeout!r}")
        for name in ('dump_extension', 'ssh_key_path', 'ssh_key_title'):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise ConfigError(f"{name} must be a non-empty string, got {value!r}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_config_file(config_path: str) -> OmtiConfig:
    """Load configuration from JSON file"""
    try:
        with open(config_path, 'r') as f:
            data = json.load(f)
    except FileNotFoundError as err:
        raise ConfigError(f"Config file not found: {config_path}") from err
    except json.JSONDecodeError as err:
        raise ConfigError(f"Invalid JSON in config file: {err}") from err
    except OSError as err:
        raise ConfigError(f"Could not read config file {config_path}: {err}") from err

    logger.debug(f"Loaded config from {config_path}")
    return OmtiConfig.from_dict(data)


def sample_config() -> str:
    """Sample configuration as pretty-printed JSON"""
    return json.dumps(OmtiConfig().to_dict(), indent=2)
