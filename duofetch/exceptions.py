"""Exception classes shared by the server and client engines."""


class TransferError(Exception):
    """
    Base exception class for all per-file transfer errors.

    A TransferError aborts one request (server) or one file of a batch
    (client), never the whole process.
    """

    # Reason sent to the peer; str(e) stays in the server log.
    public_message = "Transfer failed."


class ResolutionError(TransferError):
    """
    Raised when a requested name cannot be mapped to a servable file.
    """

    # Peers never learn which of NotFound / AccessDenied happened.
    public_message = "File not found or access denied."


class NotFound(ResolutionError):
    """
    Raised when the resolved path does not exist or is not a regular file.
    """
    pass


class AccessDenied(ResolutionError):
    """
    Raised when the normalized path escapes the configured root.
    """
    pass


class ReadFailure(TransferError):
    """
    Raised when a resolved file cannot be read from local storage.
    """

    public_message = "Failed to read file."


class MalformedRequest(TransferError):
    """
    Raised when a request is not a newline-terminated, decodable name.
    """

    public_message = "Malformed request."


class NetworkFailure(TransferError):
    """
    Raised on socket-level errors on either side of a transfer.
    """
    pass


class RemoteError(TransferError):
    """
    Raised by a client when the server answered with an error line.
    """

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class WriteFailure(TransferError):
    """
    Raised when a received file cannot be written to the download directory.
    """
    pass


class ConfigurationError(Exception):
    """
    Raised for invalid settings and fatal startup conditions.
    """
    pass
