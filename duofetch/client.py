"""
Batch Client

Design Decision: Batch Strategy
===============================

Options Considered:
1. Parallel downloads
   - Faster overall
   - Transfers compete, so per-file latency is meaningless

2. Sequential, abort on first error
   - Simple, but one missing file loses the rest of the batch

3. Sequential, best effort
   - Each file is timed alone on an otherwise idle link
   - A failure is logged and the next file is requested

Decision: Sequential, best effort
- One transport is chosen for the whole batch
- No retries: each name is requested exactly once
"""

import logging
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from .config import Config
from .exceptions import TransferError
from .file import DownloadStorage
from .transfer import (
    BatchReport, DatagramClient, StreamClient, Transport, TransferResult
)

logger = logging.getLogger(__name__)

# Progress callback type: (index, total, result)
ProgressCallback = Callable[[int, int, TransferResult], None]


class FileClient:
    """
    Retrieves a batch of files from a FileServer.

    Combines the two protocol clients with local download storage:
    - fetch(name, transport): retrieve and save one file
    - run_batch(names, transport): retrieve a list of files in order
    """

    def __init__(self, config: Optional[Config] = None):
        """
        Initialize the client.

        Args:
            config: Client configuration (uses defaults if not provided)
        """
        self.config = config or Config()
        self.storage = DownloadStorage(Path(self.config.download_dir))

        self.stream = StreamClient(
            self.config.server_host,
            self.config.tcp_port,
            self.storage,
            window_size=self.config.stream_window,
            timeout=self.config.stream_timeout,
        )
        self.datagram = DatagramClient(
            self.config.server_host,
            self.config.udp_port,
            self.storage,
            inactivity_timeout=self.config.inactivity_timeout,
            hard_timeout=self.config.hard_timeout,
            recv_buffer_size=self.config.recv_buffer_size,
        )

    async def fetch(self, name: str, transport: Union[Transport, str]) -> TransferResult:
        """
        Retrieve one file.

        Errors never propagate: they come back as a failed result.
        """
        if not isinstance(transport, Transport):
            transport = Transport.parse(transport)

        try:
            save_path = self.storage.path_for(name)
            if transport is Transport.STREAM:
                result = await self.stream.fetch(name, save_path)
            else:
                result = await self.datagram.fetch(name, save_path)
        except TransferError as e:
            logger.error(f"Failed to download {name} over {transport.value}: {e}")
            return TransferResult(name=name, transport=transport.value, error=str(e))

        logger.info(f"{transport.value}: received {name} ({result.size:,} bytes) "
                    f"and saved as {result.save_path} in {result.elapsed_ms:.2f} ms")
        return result

    async def run_batch(self, names: Iterable[str], transport: Union[Transport, str],
                        progress_callback: ProgressCallback = None) -> BatchReport:
        """
        Retrieve files one after another.

        A failed file is recorded and the batch moves on.

        Args:
            names: Files to request, in order
            transport: Transport used for every file
            progress_callback: Optional callback after each file
        """
        if not isinstance(transport, Transport):
            transport = Transport.parse(transport)

        names = list(names)
        report = BatchReport(transport=transport.value)
        logger.info(f"Downloading {len(names)} files over {transport.value}")

        for index, name in enumerate(names, start=1):
            result = await self.fetch(name, transport)
            report.results.append(result)
            if progress_callback:
                progress_callback(index, len(names), result)

        logger.info(f"Batch finished: {report.succeeded} succeeded, {report.failed} failed")
        return report
