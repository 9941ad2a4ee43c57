"""Unit tests for fixed-size chunking."""

import pytest

from duofetch.file.chunker import CHUNK_SIZE, MAX_DATAGRAM_PAYLOAD, FileChunker


class TestChunkArithmetic:

    def test_default_chunk_fits_one_datagram(self):
        assert CHUNK_SIZE == 60000
        assert CHUNK_SIZE < MAX_DATAGRAM_PAYLOAD

    @pytest.mark.parametrize('size, expected', [
        (0, 0),
        (1, 1),
        (60000, 1),
        (60001, 2),
        (5_000_000, 84),
    ])
    def test_chunk_count_is_ceiling(self, size, expected):
        assert FileChunker(60000).get_chunk_count(size) == expected

    def test_last_chunk_bounds(self):
        chunker = FileChunker(60000)

        assert chunker.get_chunk_bounds(83, 5_000_000) == (83 * 60000, 20000)

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            FileChunker(0)


class TestSplit:

    def test_split_preserves_order_and_content(self):
        data = bytes(range(256)) * 1000
        chunks = list(FileChunker(1000).split(data))

        assert len(chunks) == 256
        assert all(len(c) == 1000 for c in chunks)
        assert b''.join(chunks) == data

    def test_split_short_tail(self):
        chunks = list(FileChunker(4).split(b'abcdefghij'))

        assert chunks == [b'abcd', b'efgh', b'ij']

    def test_split_empty(self):
        assert list(FileChunker(4).split(b'')) == []


class TestAsyncReads:

    @pytest.mark.asyncio
    async def test_chunk_file_reads_windows(self, tmp_path):
        path = tmp_path / 'data.bin'
        path.write_bytes(b'x' * 10 + b'y' * 5)

        chunks = [c async for c in FileChunker(10).chunk_file(path)]

        assert chunks == [b'x' * 10, b'y' * 5]

    @pytest.mark.asyncio
    async def test_read_file(self, tmp_path):
        path = tmp_path / 'data.bin'
        path.write_bytes(b'hello')

        assert await FileChunker().read_file(path) == b'hello'
