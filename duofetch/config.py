"""
Configuration Management

Handles loading configuration from environment variables and config files.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field, fields
from typing import List, Optional
import json

from dotenv import find_dotenv, load_dotenv

from .exceptions import ConfigurationError
from .file.chunker import CHUNK_SIZE, MAX_DATAGRAM_PAYLOAD, STREAM_WINDOW

ENV_PREFIX = 'DUOFETCH_'

DEFAULT_FILES = [
    '10KB.txt',
    '100KB.txt',
    '1MB.txt',
    '5MB.txt',
]


def _getenv(key: str, default=None):
    """Read a ``DUOFETCH_``-prefixed environment variable."""
    return os.getenv(ENV_PREFIX + key, default)


@dataclass
class Config:
    """
    File server and client configuration.

    Configuration priority (highest to lowest):
    1. Command-line options
    2. Environment variables (DUOFETCH_*)
    3. Config file (config.json)
    4. Default values
    """
    # Network
    host: str = '0.0.0.0'
    server_host: str = '127.0.0.1'
    tcp_port: int = 5000
    udp_port: int = 5001

    # Storage
    files_dir: Path = field(default_factory=lambda: Path('./files'))
    download_dir: Path = field(default_factory=lambda: Path('./downloads'))

    # Batch
    files: List[str] = field(default_factory=lambda: list(DEFAULT_FILES))

    # Transfer
    chunk_size: int = CHUNK_SIZE
    stream_window: int = STREAM_WINDOW
    send_interval: float = 0.0
    recv_buffer_size: int = 4 * 1024 * 1024

    # Timeouts (seconds)
    inactivity_timeout: float = 1.0
    hard_timeout: float = 5.0
    stream_timeout: Optional[float] = None

    # Logging
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv(find_dotenv(usecwd=True))

        config = cls()

        # Network
        config.host = _getenv('HOST', config.host)
        config.server_host = _getenv('SERVER_HOST', config.server_host)
        config.tcp_port = int(_getenv('TCP_PORT', config.tcp_port))
        config.udp_port = int(_getenv('UDP_PORT', config.udp_port))

        # Storage
        files_dir = _getenv('FILES_DIR')
        if files_dir:
            config.files_dir = Path(files_dir)
        download_dir = _getenv('DOWNLOAD_DIR')
        if download_dir:
            config.download_dir = Path(download_dir)

        # Batch
        files = _getenv('FILES', '')
        if files:
            config.files = [name.strip() for name in files.split(',') if name.strip()]

        # Transfer
        config.chunk_size = int(_getenv('CHUNK_SIZE', config.chunk_size))
        config.stream_window = int(_getenv('STREAM_WINDOW', config.stream_window))
        config.send_interval = float(_getenv('SEND_INTERVAL', config.send_interval))
        config.recv_buffer_size = int(_getenv('RECV_BUFFER_SIZE', config.recv_buffer_size))

        # Timeouts
        config.inactivity_timeout = float(
            _getenv('INACTIVITY_TIMEOUT', config.inactivity_timeout)
        )
        config.hard_timeout = float(_getenv('HARD_TIMEOUT', config.hard_timeout))
        stream_timeout = _getenv('STREAM_TIMEOUT')
        if stream_timeout:
            config.stream_timeout = float(stream_timeout)

        # Logging
        config.log_level = _getenv('LOG_LEVEL', config.log_level)

        return config

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from a JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()

        # Network
        config.host = data.get('host', config.host)
        config.server_host = data.get('server_host', config.server_host)
        config.tcp_port = data.get('tcp_port', config.tcp_port)
        config.udp_port = data.get('udp_port', config.udp_port)

        # Storage
        if 'files_dir' in data:
            config.files_dir = Path(data['files_dir'])
        if 'download_dir' in data:
            config.download_dir = Path(data['download_dir'])

        # Batch
        config.files = list(data.get('files', config.files))

        # Transfer
        config.chunk_size = data.get('chunk_size', config.chunk_size)
        config.stream_window = data.get('stream_window', config.stream_window)
        config.send_interval = data.get('send_interval', config.send_interval)
        config.recv_buffer_size = data.get('recv_buffer_size', config.recv_buffer_size)

        # Timeouts
        config.inactivity_timeout = data.get('inactivity_timeout', config.inactivity_timeout)
        config.hard_timeout = data.get('hard_timeout', config.hard_timeout)
        config.stream_timeout = data.get('stream_timeout', config.stream_timeout)

        # Logging
        config.log_level = data.get('log_level', config.log_level)

        return config

    def validate(self) -> 'Config':
        """
        Check values that would otherwise fail deep inside a transfer.

        Raises:
            ConfigurationError: on the first invalid setting
        """
        for name in ('tcp_port', 'udp_port'):
            port = getattr(self, name)
            if not 0 <= port <= 65535:
                raise ConfigurationError(f"{name} out of range: {port}")

        if not 0 < self.chunk_size <= MAX_DATAGRAM_PAYLOAD:
            raise ConfigurationError(
                f"chunk_size must be between 1 and {MAX_DATAGRAM_PAYLOAD}, got {self.chunk_size}"
            )
        if self.stream_window <= 0:
            raise ConfigurationError(f"stream_window must be positive, got {self.stream_window}")

        if self.inactivity_timeout <= 0 or self.hard_timeout <= 0:
            raise ConfigurationError("Datagram timeouts must be positive")
        if self.inactivity_timeout >= self.hard_timeout:
            raise ConfigurationError(
                f"inactivity_timeout ({self.inactivity_timeout}s) must be shorter than "
                f"hard_timeout ({self.hard_timeout}s)"
            )
        if self.stream_timeout is not None and self.stream_timeout <= 0:
            raise ConfigurationError(f"stream_timeout must be positive, got {self.stream_timeout}")

        return self

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'host': self.host,
            'server_host': self.server_host,
            'tcp_port': self.tcp_port,
            'udp_port': self.udp_port,
            'files_dir': str(self.files_dir),
            'download_dir': str(self.download_dir),
            'files': list(self.files),
            'chunk_size': self.chunk_size,
            'stream_window': self.stream_window,
            'send_interval': self.send_interval,
            'recv_buffer_size': self.recv_buffer_size,
            'inactivity_timeout': self.inactivity_timeout,
            'hard_timeout': self.hard_timeout,
            'stream_timeout': self.stream_timeout,
            'log_level': self.log_level,
        }

    def save(self, path: Path):
        """Save configuration to a JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file and environment.

    Environment variables override file settings.
    """
    # Start with defaults
    config = Config()

    # Load from file if provided
    if config_path and config_path.exists():
        config = Config.from_file(config_path)

    # Override with environment variables
    env_config = Config.from_env()

    # Merge (env takes precedence for non-default values)
    defaults = Config()
    for f in fields(Config):
        env_val = getattr(env_config, f.name)
        if env_val != getattr(defaults, f.name):
            setattr(config, f.name, env_val)

    return config


# Example config file template
EXAMPLE_CONFIG = """
{
  "host": "0.0.0.0",
  "server_host": "127.0.0.1",
  "tcp_port": 5000,
  "udp_port": 5001,
  "files_dir": "./files",
  "download_dir": "./downloads",
  "files": ["10KB.txt", "100KB.txt", "1MB.txt", "5MB.txt"],
  "chunk_size": 60000,
  "inactivity_timeout": 1.0,
  "hard_timeout": 5.0,
  "log_level": "INFO"
}
"""
