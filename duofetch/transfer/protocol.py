"""
File Retrieval Protocol

Design Decision: Request and Response Framing
=============================================

Options Considered:
1. Length-prefixed messages (4-byte length + header + data)
   - Receiver knows exactly when a file ends
   - Needs a header on every response

2. Newline-terminated request, close-delimited response
   - Trivial to speak from netcat or a browser-less script
   - End of file is the peer closing the connection

3. HTTP
   - Well supported, but a whole web server for one GET

Decision: Newline-terminated request, close-delimited response
- The request is a single relative path, so a line is enough
- There is no length header: for the stream transport the connection
  close IS the end-of-file signal
- Errors are a single line starting with ``ERROR:``

Wire Format:
```
Stream   client -> server : <relative path>\\n
         server -> client : <raw file bytes> <close>
                          | ERROR: <reason>\\n <close>

Datagram client -> server : <relative path>            (one datagram)
         server -> client : <chunk 0> <chunk 1> ...     (send order)
                          | ERROR: <reason>\\n          (one datagram)
```

Known ambiguity: a file whose content starts with ``ERROR:`` is
indistinguishable from an error response. The protocol has no field to
tell them apart.
"""

from enum import Enum

from ..exceptions import MalformedRequest

ERROR_MARKER = b"ERROR:"
REQUEST_DELIMITER = b"\n"
REQUEST_ENCODING = "utf-8"

# Longest request line a server will buffer before giving up
MAX_REQUEST_BYTES = 4096


class Transport(Enum):
    """Transport chosen once for a whole batch."""
    STREAM = "TCP"
    DATAGRAM = "UDP"

    @classmethod
    def parse(cls, choice: str) -> 'Transport':
        """
        Parse a user's transport choice ("tcp", "UDP", ...).

        Raises:
            ValueError: if the choice is neither TCP nor UDP
        """
        normalized = (choice or '').strip().upper()
        for transport in cls:
            if transport.value == normalized:
                return transport
        raise ValueError(f"Unknown protocol {choice!r}. Choose \"TCP\" or \"UDP\".")


def encode_request(name: str, delimited: bool = True) -> bytes:
    """Encode a request; stream requests carry the trailing newline."""
    data = name.encode(REQUEST_ENCODING)
    if delimited:
        data += REQUEST_DELIMITER
    return data


def decode_request(data: bytes) -> str:
    """
    Decode a request line or datagram into the requested name.

    Surrounding whitespace (including the delimiter) is stripped.
    """
    try:
        return data.decode(REQUEST_ENCODING).strip()
    except UnicodeDecodeError as e:
        raise MalformedRequest(f"Request is not valid {REQUEST_ENCODING}: {e}") from e


def encode_error(reason: str) -> bytes:
    """Build the single error line sent in place of file content."""
    return ERROR_MARKER + b" " + reason.encode(REQUEST_ENCODING) + b"\n"


def is_error(data: bytes) -> bool:
    return data.startswith(ERROR_MARKER)


def decode_error(data: bytes) -> str:
    """Extract the human-readable reason from an error line."""
    line = data.split(b"\n", 1)[0]
    return line[len(ERROR_MARKER):].decode(REQUEST_ENCODING, errors='replace').strip()
