"""
Stream (TCP) Transfer Engine

Design Decision: End-of-File Signal
===================================

Options Considered:
1. Length header before the file bytes
   - Receiver can detect truncation
   - Server must stat the file and frame the response

2. Connection close marks the end
   - No framing at all: the response is the raw file
   - One request per connection
   - A truncated transfer looks like a complete one

Decision: Connection close
- One request per connection keeps the server stateless
- TCP already guarantees order and integrity of what did arrive

Server connection states:
```
AwaitingRequest -> Resolving -> Streaming -> Closed
                          \\
                           -> Error -> Closed
```

Client states:
```
Connecting -> Sent -> Receiving -> Saved
    (any state) -> Failed
```

Stream transfers have no timeout unless ``timeout`` is set on the client;
a stalled server otherwise blocks that batch entry indefinitely.
"""

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from ..exceptions import (
    MalformedRequest, NetworkFailure, RemoteError, ReadFailure, TransferError
)
from ..file.chunker import FileChunker, STREAM_WINDOW
from ..file.resolver import PathResolver
from ..file.storage import DownloadStorage
from .protocol import (
    ERROR_MARKER, MAX_REQUEST_BYTES, REQUEST_DELIMITER, Transport,
    decode_error, decode_request, encode_error, encode_request, is_error
)
from .result import Completion, Stopwatch, TransferResult

logger = logging.getLogger(__name__)


class StreamState(Enum):
    """Server-side connection states."""
    AWAITING_REQUEST = "awaiting_request"
    RESOLVING = "resolving"
    STREAMING = "streaming"
    ERROR = "error"
    CLOSED = "closed"


class StreamConnection:
    """
    One accepted connection on the server.

    Tracks its state and how many file bytes went out, which decides
    whether an error can still be reported in-band.
    """

    def __init__(self, reader: asyncio.StreamReader,
                 writer: asyncio.StreamWriter):
        self.reader = reader
        self.writer = writer
        self.state = StreamState.AWAITING_REQUEST
        self.requested_name: Optional[str] = None
        self.bytes_sent = 0

    @property
    def peer(self) -> Tuple[str, int]:
        """Get remote peer address."""
        return self.writer.get_extra_info('peername')

    async def read_request(self) -> str:
        """Buffer incoming bytes until the newline delimiter."""
        try:
            line = await self.reader.readuntil(REQUEST_DELIMITER)
        except asyncio.IncompleteReadError as e:
            raise MalformedRequest(
                f"Connection closed before newline ({len(e.partial)} bytes received)"
            ) from e
        except asyncio.LimitOverrunError as e:
            raise MalformedRequest("Request line too long") from e
        except ConnectionError as e:
            raise NetworkFailure(f"Error reading request: {e}") from e

        self.requested_name = decode_request(line)
        return self.requested_name

    async def send(self, data: bytes):
        """Write file bytes, waiting for the peer's receive buffer."""
        try:
            self.writer.write(data)
            await self.writer.drain()
        except ConnectionError as e:
            raise NetworkFailure(f"Peer went away: {e}") from e
        self.bytes_sent += len(data)

    async def send_error(self, reason: str):
        """Send the single error line (best effort)."""
        self.state = StreamState.ERROR
        try:
            self.writer.write(encode_error(reason))
            await self.writer.drain()
        except ConnectionError as e:
            logger.debug(f"Could not send error to {self.peer}: {e}")

    async def close(self):
        """Close the connection; the close is the end-of-file signal."""
        if self.state == StreamState.CLOSED:
            return
        self.state = StreamState.CLOSED
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except ConnectionError as e:
            logger.debug(f"Error while closing {self.peer}: {e}")


class StreamServer:
    """
    TCP server answering one file request per connection.

    Each connection is handled by its own coroutine; the only shared
    state is the read-only resolver and the statistics counters.
    """

    def __init__(self, resolver: PathResolver, host: str = '0.0.0.0',
                 port: int = 5000, window_size: int = STREAM_WINDOW,
                 max_request_bytes: int = MAX_REQUEST_BYTES):
        self.resolver = resolver
        self.host = host
        self.port = port
        self.chunker = FileChunker(window_size)
        self.max_request_bytes = max_request_bytes
        self.server: Optional[asyncio.AbstractServer] = None

        # Statistics
        self.requests = 0
        self.files_served = 0
        self.bytes_sent = 0
        self.errors = 0

    async def start(self):
        """Start the stream listener."""
        self.server = await asyncio.start_server(
            self._handle_connection,
            self.host,
            self.port,
            limit=self.max_request_bytes,
        )
        # Port 0 means "any free port"; report the real one
        self.port = self.server.sockets[0].getsockname()[1]
        logger.info(f"TCP server listening on {self.host}:{self.port}")

    async def stop(self):
        """Stop the stream listener."""
        if self.server:
            self.server.close()
            await self.server.wait_closed()
            self.server = None
            logger.info(f"TCP server stopped. Served {self.files_served} files, "
                        f"{self.bytes_sent:,} bytes")

    async def _handle_connection(self, reader: asyncio.StreamReader,
                                 writer: asyncio.StreamWriter):
        """Handle an incoming connection."""
        conn = StreamConnection(reader, writer)
        self.requests += 1
        logger.debug(f"TCP client connected: {conn.peer}")

        try:
            await self._serve(conn)
        except NetworkFailure as e:
            self.errors += 1
            logger.error(f"TCP: {e} (peer {conn.peer})")
        except TransferError as e:
            self.errors += 1
            logger.error(f"TCP: {e} (peer {conn.peer}, request {conn.requested_name!r})")
            # Once file bytes are out, an error line would corrupt them
            if conn.bytes_sent == 0:
                await conn.send_error(e.public_message)
        finally:
            self.bytes_sent += conn.bytes_sent
            await conn.close()

    async def _serve(self, conn: StreamConnection):
        name = await conn.read_request()
        logger.info(f"TCP client {conn.peer} requested {name!r}")

        conn.state = StreamState.RESOLVING
        path = self.resolver.resolve(name)

        conn.state = StreamState.STREAMING
        try:
            async for window in self.chunker.chunk_file(path):
                await conn.send(window)
        except OSError as e:
            raise ReadFailure(f"Error reading {path}: {e}") from e

        self.files_served += 1
        logger.info(f"TCP: finished sending {name!r} ({conn.bytes_sent:,} bytes)")

    def get_stats(self) -> dict:
        """Get server statistics."""
        return {
            'port': self.port,
            'requests': self.requests,
            'files_served': self.files_served,
            'bytes_sent': self.bytes_sent,
            'errors': self.errors,
        }


class StreamClient:
    """
    Retrieves one file per connection from a StreamServer.
    """

    def __init__(self, host: str, port: int, storage: DownloadStorage,
                 window_size: int = STREAM_WINDOW,
                 timeout: Optional[float] = None):
        self.host = host
        self.port = port
        self.storage = storage
        self.window_size = window_size
        self.timeout = timeout

    async def fetch(self, name: str, save_path: Path) -> TransferResult:
        """
        Request a file and save it once the server closes the connection.

        Raises:
            RemoteError: the server answered with an error line
            NetworkFailure: connection failed, broke, or timed out
            WriteFailure: the file could not be saved
        """
        if self.timeout is None:
            return await self._fetch(name, save_path)

        try:
            return await asyncio.wait_for(self._fetch(name, save_path), self.timeout)
        except asyncio.TimeoutError as e:
            await self.storage.discard(save_path)
            raise NetworkFailure(f"Timed out after {self.timeout}s") from e

    async def _fetch(self, name: str, save_path: Path) -> TransferResult:
        watch = Stopwatch()

        try:
            reader, writer = await asyncio.open_connection(self.host, self.port)
        except OSError as e:
            await self.storage.discard(save_path)
            raise NetworkFailure(f"Could not connect to {self.host}:{self.port}: {e}") from e

        try:
            writer.write(encode_request(name))
            await writer.drain()
            logger.info(f"TCP: sent request for {name}")
            data = await self._receive(reader)
        except OSError as e:
            await self.storage.discard(save_path)
            raise NetworkFailure(f"Connection error while fetching {name}: {e}") from e
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError as e:
                logger.debug(f"Error while closing connection: {e}")

        if is_error(data):
            await self.storage.discard(save_path)
            raise RemoteError(decode_error(data))

        size = await self.storage.save(save_path, data)
        return TransferResult(
            name=name,
            transport=Transport.STREAM.value,
            save_path=save_path,
            size=size,
            elapsed_ms=watch.elapsed_ms,
            completion=Completion.CLOSED,
        )

    async def _receive(self, reader: asyncio.StreamReader) -> bytes:
        """Accumulate bytes until the peer closes the connection."""
        buffer = bytearray()
        checked = False

        while True:
            data = await reader.read(self.window_size)
            if not data:
                break
            buffer += data

            if not checked and len(buffer) >= len(ERROR_MARKER):
                checked = True
                if is_error(buffer):
                    # Error responses are one line; stop there
                    if b"\n" not in buffer:
                        buffer += await reader.readline()
                    break

        return bytes(buffer)
