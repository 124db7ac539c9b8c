from __future__ import annotations


class TransferError(Exception):
    """Base class for everything that aborts a transfer."""


class MalformedPacketError(TransferError):
    """Datagram too short for its opcode, or an opcode the context does not expect."""


class SequenceError(TransferError):
    def __init__(self, expected: int, got: int):
        super().__init__(f"expected block {expected}, got {got}")
        self.expected = expected
        self.got = got


class StorageError(TransferError):
    """Local file read or write failed."""


class NetworkError(TransferError):
    """Send or receive failed at the socket level."""


class ResolutionError(NetworkError):
    pass


class EncodingError(TransferError):
    """A value cannot be represented on the wire."""
