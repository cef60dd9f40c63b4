"""
Configuration

Settings come from three layers, highest priority first:
1. Environment variables (SWIFTSHARE_*, a .env file is honoured)
2. A JSON config file
3. The defaults below
"""

import os
import json
import dataclasses
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, Dict, Any

from dotenv import load_dotenv

from .file.chunker import CHUNK_SIZE
from .transfer.protocol import DEFAULT_MAX_FRAME_SIZE
from .utils import default_device_name

ENV_PREFIX = 'SWIFTSHARE_'

# Fields that may be set from the environment
ENV_FIELDS = (
    'host', 'port', 'api_port', 'device_name', 'download_dir',
    'max_file_size', 'connect_timeout', 'log_level',
)


@dataclass
class Config:
    """SwiftShare node settings."""

    # Network
    host: str = '0.0.0.0'
    port: int = 4000
    api_port: int = 8080

    # Identity announced in the connect handshake
    device_name: str = field(default_factory=default_device_name)

    # Received files land in <download_dir>/SwiftShare
    download_dir: Path = field(default_factory=lambda: Path.home() / 'Downloads')

    # Protocol
    chunk_size: int = CHUNK_SIZE
    max_frame_size: int = DEFAULT_MAX_FRAME_SIZE

    # Size policy (bytes)
    max_file_size: int = 100 * 1024 * 1024
    recommended_file_size: int = 50 * 1024 * 1024
    warning_file_size: int = 25 * 1024 * 1024

    connect_timeout: float = 10.0
    log_level: str = 'INFO'

    def __post_init__(self):
        self.download_dir = Path(self.download_dir).expanduser()

    # === Loading ===

    def update(self, values: Dict[str, Any]) -> 'Config':
        """Apply values by field name, coercing to each field's default type."""
        for f in dataclasses.fields(self):
            if f.name not in values:
                continue
            current = getattr(self, f.name)
            value = values[f.name]
            if isinstance(current, Path):
                value = Path(value).expanduser()
            elif isinstance(current, (int, float)) and not isinstance(value, type(current)):
                value = type(current)(value)
            setattr(self, f.name, value)
        return self

    @classmethod
    def from_env(cls) -> 'Config':
        """Defaults overridden by SWIFTSHARE_* environment variables."""
        return cls().update(env_overrides())

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Defaults overridden by a JSON file (missing file: defaults)."""
        path = Path(path)
        if not path.exists():
            return cls()
        with open(path) as f:
            return cls().update(json.load(f))

    def to_dict(self) -> dict:
        data = dataclasses.asdict(self)
        data['download_dir'] = str(self.download_dir)
        return data

    def save(self, path: Path):
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def env_overrides() -> Dict[str, str]:
    """Raw values of the SWIFTSHARE_* variables that are set."""
    load_dotenv()
    overrides = {}
    for name in ENV_FIELDS:
        value = os.getenv(ENV_PREFIX + name.upper())
        if value:
            overrides[name] = value
    return overrides


def load_config(config_path: Optional[Path] = None) -> Config:
    """Config file (if any) with environment variables applied on top."""
    config = Config.from_file(config_path) if config_path else Config()
    return config.update(env_overrides())


# Example config file template
EXAMPLE_CONFIG = """
{
  "host": "0.0.0.0",
  "port": 4000,
  "api_port": 8080,
  "device_name": "Living room laptop",
  "download_dir": "~/Downloads",
  "max_file_size": 104857600,
  "connect_timeout": 10.0,
  "log_level": "INFO"
}
"""
