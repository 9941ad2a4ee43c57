"""Shared pytest fixtures for all tests."""

import asyncio
import dataclasses
import socket
import threading

import pytest
import pytest_asyncio

from duofetch.config import Config
from duofetch.server import FileServer

# 10240 bytes of known content
TEN_KB = bytes(range(256)) * 40
NESTED_TEXT = b'nested file\n'
SECRET_TEXT = b'outside the served root\n'


@pytest.fixture
def files_root(tmp_path):
    """
    Create a served directory.

    Layout:
        files/10KB.txt          10240 bytes
        files/empty.txt         0 bytes
        files/docs/readme.txt   nested file
        secret.txt              next to (not inside) the root
    """
    root = tmp_path / 'files'
    root.mkdir()
    (root / '10KB.txt').write_bytes(TEN_KB)
    (root / 'empty.txt').write_bytes(b'')
    (root / 'docs').mkdir()
    (root / 'docs' / 'readme.txt').write_bytes(NESTED_TEXT)
    (tmp_path / 'secret.txt').write_bytes(SECRET_TEXT)
    return root


@pytest.fixture
def server_config(files_root, tmp_path):
    """
    Configuration bound to loopback on ephemeral ports, with short
    datagram timeouts so tests finish quickly.
    """
    return Config(
        host='127.0.0.1',
        server_host='127.0.0.1',
        tcp_port=0,
        udp_port=0,
        files_dir=files_root,
        download_dir=tmp_path / 'downloads',
        chunk_size=4096,
        inactivity_timeout=0.2,
        hard_timeout=3.0,
    )


@pytest_asyncio.fixture
async def file_server(server_config):
    """A running FileServer on the test's event loop."""
    server = FileServer(server_config)
    await server.start()
    yield server
    await server.stop()


@pytest.fixture
def client_config(server_config, file_server):
    """Client configuration pointing at the running ``file_server``."""
    return dataclasses.replace(
        server_config,
        tcp_port=file_server.tcp_port,
        udp_port=file_server.udp_port,
    )


@pytest.fixture
def threaded_server(server_config):
    """
    A FileServer running on its own event loop in a background thread.

    Needed where the code under test calls ``asyncio.run`` itself (CLI).
    """
    loop = asyncio.new_event_loop()
    thread = threading.Thread(target=loop.run_forever, daemon=True)
    thread.start()

    server = FileServer(server_config)
    asyncio.run_coroutine_threadsafe(server.start(), loop).result(timeout=5)

    yield server

    asyncio.run_coroutine_threadsafe(server.stop(), loop).result(timeout=5)
    loop.call_soon_threadsafe(loop.stop)
    thread.join(timeout=5)
    loop.close()


@pytest.fixture
def unused_tcp_port_number():
    """A loopback TCP port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(('127.0.0.1', 0))
        return sock.getsockname()[1]
