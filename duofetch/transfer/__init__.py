"""
Transfer Module - Stream and Datagram File Retrieval

Handles both transports, server and client side.
"""

from .protocol import Transport, encode_request, decode_request, encode_error, is_error
from .result import Completion, TransferResult, BatchReport
from .stream import StreamServer, StreamClient
from .datagram import DatagramServer, DatagramClient, DatagramSession

__all__ = [
    'Transport',
    'encode_request',
    'decode_request',
    'encode_error',
    'is_error',
    'Completion',
    'TransferResult',
    'BatchReport',
    'StreamServer',
    'StreamClient',
    'DatagramServer',
    'DatagramClient',
    'DatagramSession',
]
