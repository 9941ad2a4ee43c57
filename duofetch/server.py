"""
File Server - Main Controller

Owns both listeners and their shared path resolver:
- Stream (TCP) server on ``tcp_port``
- Datagram (UDP) server on ``udp_port``

Nothing starts at import time. Each FileServer is independent, so tests
can run several side by side on ephemeral ports.
"""

import logging
from typing import Optional

from .config import Config
from .exceptions import ConfigurationError
from .file import PathResolver
from .transfer import DatagramServer, StreamServer

logger = logging.getLogger(__name__)


class FileServer:
    """
    Serves files from a root directory over TCP and UDP.

    Lifecycle: ``await start()`` ... ``await stop()``.
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()
        self.resolver: Optional[PathResolver] = None
        self.stream: Optional[StreamServer] = None
        self.datagram: Optional[DatagramServer] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def tcp_port(self) -> int:
        return self.stream.port if self.stream else self.config.tcp_port

    @property
    def udp_port(self) -> int:
        return self.datagram.port if self.datagram else self.config.udp_port

    async def start(self):
        """
        Start both listeners.

        Raises:
            ConfigurationError: the files root is missing or settings are invalid
        """
        if self._running:
            return

        self.config.validate()
        files_dir = self.config.files_dir
        if not files_dir.is_dir():
            raise ConfigurationError(f"Files directory not found: {files_dir}")

        self.resolver = PathResolver(files_dir)
        self.stream = StreamServer(
            self.resolver,
            host=self.config.host,
            port=self.config.tcp_port,
            window_size=self.config.stream_window,
        )
        self.datagram = DatagramServer(
            self.resolver,
            host=self.config.host,
            port=self.config.udp_port,
            chunk_size=self.config.chunk_size,
            send_interval=self.config.send_interval,
        )

        await self.stream.start()
        try:
            await self.datagram.start()
        except OSError:
            await self.stream.stop()
            raise

        self._running = True
        logger.info("File server started")
        logger.info(f"  Root: {self.resolver.root_dir}")
        logger.info(f"  TCP Port: {self.tcp_port}")
        logger.info(f"  UDP Port: {self.udp_port}")

    async def stop(self):
        """Stop both listeners."""
        if not self._running:
            return

        logger.info("Stopping file server...")
        self._running = False

        await self.datagram.stop()
        await self.stream.stop()

        logger.info("File server stopped")

    def get_stats(self) -> dict:
        """Get statistics for both transports."""
        return {
            'running': self._running,
            'root': str(self.resolver.root_dir) if self.resolver else None,
            'tcp': self.stream.get_stats() if self.stream else {},
            'udp': self.datagram.get_stats() if self.datagram else {},
        }
