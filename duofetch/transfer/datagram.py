"""
Datagram (UDP) Transfer Engine

Design Decision: Detecting the End of a Transfer
================================================

Options Considered:
1. Sequence header per chunk (index + total, or a final flag)
   - Receiver can reassemble deterministically and detect loss
   - Changes the wire format

2. Explicit end-of-transfer datagram
   - Can itself be lost or overtaken

3. Infer the end from silence
   - No header at all: a chunk is just file bytes
   - Completion says nothing about correctness

Decision: Infer the end from silence (baseline behavior)
- Every received chunk re-arms a short inactivity timer
- An independent hard cap, armed when the request is sent, fires no
  matter how much is still arriving
- Whichever fires first finalizes the session and cancels the other

Known limitation: chunks carry no offset or sequence number. Chunks that
arrive reordered, duplicated, or not at all are saved as-is, and the
client cannot tell. Output is only byte-identical to the source on an
ordered, lossless path such as loopback. The recommended hardening is
option 1; it is not enabled here.

Server side:
- One shared UDP socket receives every request; each request gets its
  own task and no session state is kept
- Chunks are sent in order; each send completes (the transport accepted
  it and is writable again) before the next one
- No acknowledgements, no retransmission, no end marker
"""

import asyncio
import logging
import socket
from pathlib import Path
from typing import Optional, Set, Tuple

from ..exceptions import (
    NetworkFailure, ReadFailure, RemoteError, TransferError
)
from ..file.chunker import CHUNK_SIZE, MAX_DATAGRAM_PAYLOAD, FileChunker
from ..file.resolver import PathResolver
from ..file.storage import DownloadStorage
from .protocol import (
    Transport, decode_error, decode_request, encode_error, encode_request,
    is_error
)
from .result import Completion, Stopwatch, TransferResult

logger = logging.getLogger(__name__)

INACTIVITY_TIMEOUT = 1.0  # seconds
HARD_TIMEOUT = 5.0  # seconds
RECV_BUFFER_SIZE = 4 * 1024 * 1024


class DatagramServerProtocol(asyncio.DatagramProtocol):
    """
    UDP protocol handler for the file server.

    Hands every request datagram to the server and exposes the
    transport's write flow control as an awaitable ``drain()``.
    """

    def __init__(self, server: 'DatagramServer'):
        self.server = server
        self.transport: Optional[asyncio.DatagramTransport] = None
        self._writable = asyncio.Event()
        self._writable.set()

    def connection_made(self, transport: asyncio.DatagramTransport):
        """Called when the UDP socket is ready."""
        self.transport = transport
        logger.info(f"UDP server ready on {transport.get_extra_info('sockname')}")

    def connection_lost(self, exc):
        """Called when the socket is closed."""
        logger.info("UDP server socket closed")
        # Release any sender waiting in drain()
        self._writable.set()

    def datagram_received(self, data: bytes, addr: Tuple[str, int]):
        self.server.dispatch(data, addr)

    def error_received(self, exc):
        """Called when a send or receive operation fails."""
        logger.error(f"UDP server error: {exc}")

    def pause_writing(self):
        self._writable.clear()

    def resume_writing(self):
        self._writable.set()

    async def drain(self):
        """Wait until the transport's send buffer has room again."""
        await self._writable.wait()


class DatagramServer:
    """
    UDP server that answers each request with a burst of chunks.
    """

    def __init__(self, resolver: PathResolver, host: str = '0.0.0.0',
                 port: int = 5001, chunk_size: int = CHUNK_SIZE,
                 send_interval: float = 0.0):
        """
        Initialize the datagram server.

        Args:
            resolver: Maps requested names to files under the root
            host: Address to bind
            port: UDP port to bind (0 picks a free port)
            chunk_size: Maximum payload per datagram
            send_interval: Pause between chunks, in seconds
        """
        if not 0 < chunk_size <= MAX_DATAGRAM_PAYLOAD:
            raise ValueError(
                f"chunk_size must be between 1 and {MAX_DATAGRAM_PAYLOAD}, got {chunk_size}"
            )

        self.resolver = resolver
        self.host = host
        self.port = port
        self.chunker = FileChunker(chunk_size)
        self.send_interval = send_interval

        self.transport: Optional[asyncio.DatagramTransport] = None
        self.protocol: Optional[DatagramServerProtocol] = None
        self._tasks: Set[asyncio.Task] = set()

        # Statistics
        self.requests = 0
        self.files_served = 0
        self.datagrams_sent = 0
        self.bytes_sent = 0
        self.errors = 0

    async def start(self):
        """Bind the UDP socket."""
        loop = asyncio.get_running_loop()
        self.transport, self.protocol = await loop.create_datagram_endpoint(
            lambda: DatagramServerProtocol(self),
            local_addr=(self.host, self.port),
        )
        self.port = self.transport.get_extra_info('sockname')[1]
        logger.info(f"UDP server listening on {self.host}:{self.port} "
                    f"(chunk size {self.chunker.chunk_size:,} bytes)")

    async def stop(self):
        """Cancel in-flight sends and close the socket."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        if self.transport:
            self.transport.close()
            self.transport = None
            logger.info(f"UDP server stopped. Served {self.files_served} files, "
                        f"{self.datagrams_sent} datagrams")

    def dispatch(self, data: bytes, addr: Tuple[str, int]):
        """Handle a request datagram in its own task."""
        task = asyncio.create_task(self.handle_request(data, addr))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def handle_request(self, data: bytes, addr: Tuple[str, int]) -> int:
        """
        Answer one request datagram.

        Returns:
            Number of chunks sent (0 when an error datagram was sent)
        """
        self.requests += 1

        try:
            name = decode_request(data)
            logger.info(f"UDP client {addr[0]}:{addr[1]} requested {name!r}")
            path = self.resolver.resolve(name)
            try:
                content = await self.chunker.read_file(path)
            except OSError as e:
                raise ReadFailure(f"Error reading {path}: {e}") from e
        except TransferError as e:
            self.errors += 1
            logger.error(f"UDP: {e} (peer {addr[0]}:{addr[1]})")
            self._send(encode_error(e.public_message), addr)
            return 0

        expected = self.chunker.get_chunk_count(len(content))
        sent = 0
        for chunk in self.chunker.split(content):
            if self.transport is None or self.transport.is_closing():
                logger.warning(f"UDP: socket closed after {sent}/{expected} chunks of {name!r}")
                return sent
            self._send(chunk, addr)
            sent += 1
            await self.protocol.drain()
            await asyncio.sleep(self.send_interval)

        self.files_served += 1
        logger.info(f"UDP: finished sending {name!r} to {addr[0]}:{addr[1]} "
                    f"({sent} chunks, {len(content):,} bytes)")
        return sent

    def _send(self, data: bytes, addr: Tuple[str, int]):
        """Send a datagram (fire and forget)."""
        if self.transport:
            self.transport.sendto(data, addr)
            self.datagrams_sent += 1
            self.bytes_sent += len(data)

    def get_stats(self) -> dict:
        """Get server statistics."""
        return {
            'port': self.port,
            'chunk_size': self.chunker.chunk_size,
            'requests': self.requests,
            'files_served': self.files_served,
            'datagrams_sent': self.datagrams_sent,
            'bytes_sent': self.bytes_sent,
            'errors': self.errors,
        }


class DatagramSession(asyncio.DatagramProtocol):
    """
    Client side of one datagram transfer.

    Accumulates payloads in arrival order and resolves ``done`` with the
    Completion that ended the session, or with an exception.

    One session per requested file; never reused.
    """

    def __init__(self, inactivity_timeout: float = INACTIVITY_TIMEOUT,
                 hard_timeout: float = HARD_TIMEOUT):
        self.inactivity_timeout = inactivity_timeout
        self.hard_timeout = hard_timeout

        self.buffer = bytearray()
        self.chunks = 0
        self.peer: Optional[Tuple[str, int]] = None
        self.transport: Optional[asyncio.DatagramTransport] = None

        self._loop = asyncio.get_running_loop()
        self.done: asyncio.Future = self._loop.create_future()
        self._inactivity_timer: Optional[asyncio.TimerHandle] = None
        self._hard_timer: Optional[asyncio.TimerHandle] = None

    def connection_made(self, transport: asyncio.DatagramTransport):
        self.transport = transport

    def begin(self, request: bytes):
        """Send the request once and arm the hard cap."""
        self.transport.sendto(request)
        self._hard_timer = self._loop.call_later(
            self.hard_timeout, self._finalize, Completion.HARD_CAP
        )

    def datagram_received(self, data: bytes, addr: Tuple[str, int]):
        if self.done.done():
            return

        if is_error(data):
            self._fail(RemoteError(decode_error(data)))
            return

        self.peer = addr
        self.buffer += data
        self.chunks += 1

        if self._inactivity_timer:
            self._inactivity_timer.cancel()
        self._inactivity_timer = self._loop.call_later(
            self.inactivity_timeout, self._finalize, Completion.INACTIVITY
        )

    def error_received(self, exc):
        """Called for ICMP errors such as "port unreachable"."""
        self._fail(NetworkFailure(f"Socket error: {exc}"))

    def connection_lost(self, exc):
        self._fail(NetworkFailure("Socket closed before the transfer completed"))

    def cancel_timers(self):
        for timer in (self._inactivity_timer, self._hard_timer):
            if timer:
                timer.cancel()

    def _finalize(self, completion: Completion):
        if self.done.done():
            return
        self.cancel_timers()
        self.done.set_result(completion)

    def _fail(self, exc: TransferError):
        if self.done.done():
            return
        self.cancel_timers()
        self.done.set_exception(exc)


class DatagramClient:
    """
    Retrieves files from a DatagramServer, one session per file.
    """

    def __init__(self, host: str, port: int, storage: DownloadStorage,
                 inactivity_timeout: float = INACTIVITY_TIMEOUT,
                 hard_timeout: float = HARD_TIMEOUT,
                 recv_buffer_size: int = RECV_BUFFER_SIZE):
        self.host = host
        self.port = port
        self.storage = storage
        self.inactivity_timeout = inactivity_timeout
        self.hard_timeout = hard_timeout
        self.recv_buffer_size = recv_buffer_size

    async def fetch(self, name: str, save_path: Path) -> TransferResult:
        """
        Request a file and save whatever arrived once the session ends.

        Raises:
            RemoteError: the server answered with an error datagram
            NetworkFailure: the socket could not be created or reported an error
            WriteFailure: the file could not be saved
        """
        loop = asyncio.get_running_loop()
        watch = Stopwatch()

        try:
            transport, session = await loop.create_datagram_endpoint(
                lambda: DatagramSession(self.inactivity_timeout, self.hard_timeout),
                remote_addr=(self.host, self.port),
            )
        except OSError as e:
            await self.storage.discard(save_path)
            raise NetworkFailure(f"Could not open UDP socket to {self.host}:{self.port}: {e}") from e

        self._grow_receive_buffer(transport)

        try:
            session.begin(encode_request(name, delimited=False))
            logger.info(f"UDP: sent request for {name}")
            completion = await session.done
        except TransferError:
            await self.storage.discard(save_path)
            raise
        finally:
            session.cancel_timers()
            transport.close()

        if completion is Completion.HARD_CAP:
            if session.chunks == 0:
                logger.warning(f"UDP: no datagrams for {name} within {self.hard_timeout}s; "
                               f"saving an empty file")
            else:
                logger.warning(f"UDP: hard cap reached for {name} while data was still arriving")

        size = await self.storage.save(save_path, bytes(session.buffer))
        return TransferResult(
            name=name,
            transport=Transport.DATAGRAM.value,
            save_path=save_path,
            size=size,
            elapsed_ms=watch.elapsed_ms,
            completion=completion,
            chunks=session.chunks,
        )

    def _grow_receive_buffer(self, transport: asyncio.DatagramTransport):
        """Ask for a bigger socket receive buffer; the OS may cap it."""
        sock = transport.get_extra_info('socket')
        if sock is None or not self.recv_buffer_size:
            return
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, self.recv_buffer_size)
        except OSError as e:
            logger.debug(f"Could not set SO_RCVBUF: {e}")
