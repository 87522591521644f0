"""Exceptions raised by the variable server client."""

from __future__ import annotations


class EncodingError(ValueError):
    """An assembled command would not fit in the command buffer.

    Raised before any bytes are written, so nothing reaches the server.
    """

    def __init__(self, command_length: int, limit: int) -> None:
        super().__init__(
            f"Command of {command_length} bytes (newline included) "
            f"exceeds the {limit}-byte command buffer"
        )
        self.command_length = command_length
        self.limit = limit


class TransportError(ConnectionError):
    """A socket operation failed or wrote fewer bytes than requested.

    ``errno`` holds the underlying error code, or ``None`` for short writes
    and operations on a closed connection. The original ``OSError`` is kept
    as ``__cause__``.
    """

    def __init__(self, message: str, errno: int | None = None) -> None:
        super().__init__(message)
        self.errno = errno
