"""Tests for the stream (TCP) server and client over loopback."""

import asyncio

import pytest

from duofetch.exceptions import NetworkFailure, RemoteError
from duofetch.file.storage import DownloadStorage
from duofetch.transfer.result import Completion
from duofetch.transfer.stream import StreamClient

from .conftest import NESTED_TEXT, TEN_KB

GENERIC_ERROR = 'File not found or access denied.'


@pytest.fixture
def storage(tmp_path):
    return DownloadStorage(tmp_path / 'downloads')


@pytest.fixture
def stream_client(file_server, storage):
    return StreamClient('127.0.0.1', file_server.tcp_port, storage)


async def raw_exchange(port: int, payload: bytes, eof: bool = False) -> bytes:
    """Send raw bytes to the server and return everything it answers."""
    reader, writer = await asyncio.open_connection('127.0.0.1', port)
    writer.write(payload)
    if eof:
        writer.write_eof()
    await writer.drain()
    data = await reader.read()
    writer.close()
    await writer.wait_closed()
    return data


class TestStreamTransfer:

    @pytest.mark.asyncio
    async def test_round_trip(self, stream_client, storage):
        save_path = storage.path_for('10KB.txt')

        result = await stream_client.fetch('10KB.txt', save_path)

        assert result.ok
        assert result.size == 10240
        assert result.completion is Completion.CLOSED
        assert result.transport == 'TCP'
        assert result.elapsed_ms > 0
        assert save_path.read_bytes() == TEN_KB

    @pytest.mark.asyncio
    async def test_nested_name(self, stream_client, storage):
        save_path = storage.path_for('docs/readme.txt')

        await stream_client.fetch('docs/readme.txt', save_path)

        assert save_path.read_bytes() == NESTED_TEXT

    @pytest.mark.asyncio
    async def test_zero_byte_file(self, stream_client, storage):
        save_path = storage.path_for('empty.txt')

        result = await stream_client.fetch('empty.txt', save_path)

        assert result.size == 0
        assert save_path.exists()
        assert save_path.read_bytes() == b''

    @pytest.mark.asyncio
    async def test_file_larger_than_one_window(self, file_server, files_root, storage):
        content = bytes(range(256)) * 2000  # 512000 bytes
        (files_root / 'big.bin').write_bytes(content)
        client = StreamClient('127.0.0.1', file_server.tcp_port, storage, window_size=1024)
        save_path = storage.path_for('big.bin')

        result = await client.fetch('big.bin', save_path)

        assert result.size == len(content)
        assert save_path.read_bytes() == content

    @pytest.mark.asyncio
    async def test_overwrites_existing_download(self, stream_client, storage):
        save_path = storage.path_for('10KB.txt')
        save_path.write_bytes(b'stale content from an earlier run')

        await stream_client.fetch('10KB.txt', save_path)

        assert save_path.read_bytes() == TEN_KB


class TestStreamErrors:

    @pytest.mark.asyncio
    async def test_missing_file(self, stream_client, storage):
        save_path = storage.path_for('missing.txt')

        with pytest.raises(RemoteError) as exc_info:
            await stream_client.fetch('missing.txt', save_path)

        assert exc_info.value.reason == GENERIC_ERROR
        assert not save_path.exists()

    @pytest.mark.asyncio
    async def test_failed_transfer_removes_stale_file(self, stream_client, storage):
        save_path = storage.path_for('missing.txt')
        save_path.write_bytes(b'left over from a previous run')

        with pytest.raises(RemoteError):
            await stream_client.fetch('missing.txt', save_path)

        assert not save_path.exists()

    @pytest.mark.asyncio
    async def test_traversal_gets_generic_error(self, stream_client, storage):
        save_path = storage.path_for('secret.txt')

        with pytest.raises(RemoteError) as exc_info:
            await stream_client.fetch('../secret.txt', save_path)

        assert exc_info.value.reason == GENERIC_ERROR
        assert not save_path.exists()

    @pytest.mark.asyncio
    async def test_wire_error_line_for_traversal(self, file_server):
        data = await raw_exchange(file_server.tcp_port, b'../secret.txt\n')

        assert data == b'ERROR: File not found or access denied.\n'

    @pytest.mark.asyncio
    async def test_wire_error_line_for_missing_file(self, file_server):
        data = await raw_exchange(file_server.tcp_port, b'missing.txt\n')

        assert data == b'ERROR: File not found or access denied.\n'

    @pytest.mark.asyncio
    async def test_request_without_newline(self, file_server):
        data = await raw_exchange(file_server.tcp_port, b'10KB.txt', eof=True)

        assert data == b'ERROR: Malformed request.\n'

    @pytest.mark.asyncio
    async def test_request_line_over_limit(self, file_server):
        data = await raw_exchange(file_server.tcp_port, b'a' * 10000 + b'\n')

        assert data == b'ERROR: Malformed request.\n'

    @pytest.mark.asyncio
    async def test_request_not_utf8(self, file_server):
        data = await raw_exchange(file_server.tcp_port, b'\xff\xfe\n')

        assert data == b'ERROR: Malformed request.\n'

    @pytest.mark.asyncio
    async def test_read_failure_before_any_bytes(self, file_server, monkeypatch):
        async def unreadable(path):
            raise OSError(5, 'Input/output error')
            yield

        monkeypatch.setattr(file_server.stream.chunker, 'chunk_file', unreadable)

        data = await raw_exchange(file_server.tcp_port, b'10KB.txt\n')

        assert data == b'ERROR: Failed to read file.\n'
        assert file_server.stream.get_stats()['errors'] == 1

    @pytest.mark.asyncio
    async def test_read_failure_after_first_window_just_closes(self, file_server, monkeypatch):
        async def fails_midway(path):
            yield b'first window'
            raise OSError(5, 'Input/output error')

        monkeypatch.setattr(file_server.stream.chunker, 'chunk_file', fails_midway)

        data = await raw_exchange(file_server.tcp_port, b'10KB.txt\n')

        # No error line appended to content already sent
        assert data == b'first window'
        stats = file_server.stream.get_stats()
        assert stats['errors'] == 1
        assert stats['files_served'] == 0

    @pytest.mark.asyncio
    async def test_client_reports_read_failure(self, file_server, stream_client, storage,
                                               monkeypatch):
        async def unreadable(path):
            raise OSError(5, 'Input/output error')
            yield

        monkeypatch.setattr(file_server.stream.chunker, 'chunk_file', unreadable)
        save_path = storage.path_for('10KB.txt')

        with pytest.raises(RemoteError) as exc_info:
            await stream_client.fetch('10KB.txt', save_path)

        assert exc_info.value.reason == 'Failed to read file.'
        assert not save_path.exists()

    @pytest.mark.asyncio
    async def test_connection_refused(self, storage, unused_tcp_port_number):
        client = StreamClient('127.0.0.1', unused_tcp_port_number, storage)
        save_path = storage.path_for('10KB.txt')

        with pytest.raises(NetworkFailure):
            await client.fetch('10KB.txt', save_path)

        assert not save_path.exists()

    @pytest.mark.asyncio
    async def test_timeout_against_silent_server(self, storage):
        async def never_answer(reader, writer):
            await reader.read()
            writer.close()

        silent = await asyncio.start_server(never_answer, '127.0.0.1', 0)
        port = silent.sockets[0].getsockname()[1]
        client = StreamClient('127.0.0.1', port, storage, timeout=0.2)
        save_path = storage.path_for('10KB.txt')

        try:
            with pytest.raises(NetworkFailure):
                await client.fetch('10KB.txt', save_path)
        finally:
            silent.close()
            await silent.wait_closed()

        assert not save_path.exists()


class TestStreamServerStats:

    @pytest.mark.asyncio
    async def test_counts_requests_and_errors(self, file_server, stream_client, storage):
        await stream_client.fetch('10KB.txt', storage.path_for('10KB.txt'))
        with pytest.raises(RemoteError):
            await stream_client.fetch('missing.txt', storage.path_for('missing.txt'))

        stats = file_server.stream.get_stats()

        assert stats['requests'] == 2
        assert stats['files_served'] == 1
        assert stats['errors'] == 1
        assert stats['bytes_sent'] == 10240
