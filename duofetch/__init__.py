"""
duofetch - File Retrieval over TCP and UDP

A file server that answers the same requests over a stream transport
and a datagram transport, and a batch client that times each transfer.
"""

from .config import Config, load_config
from .server import FileServer
from .client import FileClient
from .transfer import Transport, TransferResult, BatchReport

__version__ = "0.1.0"

__all__ = [
    'Config',
    'load_config',
    'FileServer',
    'FileClient',
    'Transport',
    'TransferResult',
    'BatchReport',
]
