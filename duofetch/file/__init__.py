"""
File Module - Path Resolution, Chunking, and Download Storage

This module handles the local filesystem side of both transports.
"""

from .chunker import FileChunker, CHUNK_SIZE, MAX_DATAGRAM_PAYLOAD, STREAM_WINDOW
from .resolver import PathResolver, confine_path
from .storage import DownloadStorage

__all__ = [
    'FileChunker',
    'CHUNK_SIZE',
    'MAX_DATAGRAM_PAYLOAD',
    'STREAM_WINDOW',
    'PathResolver',
    'confine_path',
    'DownloadStorage',
]
