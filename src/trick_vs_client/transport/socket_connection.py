"""Stream socket connection to a Trick Variable Server.

The server listens on a TCP port chosen by the simulation (printed at
startup, or published through the multicast channel). A local-domain
socket path works the same way. One connection carries one command
stream; it is not safe to share between threads without external locking.
"""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass
from enum import IntFlag

from ..errors import TransportError
from ..protocol.commands import encode_command

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
CONNECT_TIMEOUT = 5.0
RECEIVE_SIZE = 2000


class ReceiveFlag(IntFlag):
    """Flags forwarded to ``recv``."""

    NONE = 0
    PEEK = socket.MSG_PEEK
    OOB = socket.MSG_OOB
    WAITALL = socket.MSG_WAITALL


@dataclass
class ConnectionInfo:
    """Where the connection points."""

    host: str = ""
    port: int = 0
    path: str = ""

    @property
    def address(self) -> str:
        if self.path:
            return self.path
        return f"{self.host}:{self.port}"


class SocketConnection:
    """Owns a connected stream socket and writes whole commands to it.

    Usage::

        conn = SocketConnection.open("127.0.0.1", 40000)
        conn.send_command('trick.var_add("time")')
        data = conn.receive(2000)
        conn.close()

    An already-connected socket can be wrapped directly with
    ``SocketConnection(sock)``.
    """

    def __init__(self, sock: socket.socket, info: ConnectionInfo | None = None) -> None:
        self._sock = sock
        self._info = info or ConnectionInfo()
        self._closed = False

    @classmethod
    def open(
        cls,
        host: str = DEFAULT_HOST,
        port: int = 0,
        timeout: float | None = CONNECT_TIMEOUT,
    ) -> SocketConnection:
        """Connect over TCP.

        Args:
            host: Server host name or address.
            port: Variable Server port.
            timeout: Connect timeout in seconds. The socket is switched back
                to blocking mode once connected.

        Raises:
            TransportError: If the connection cannot be established.
        """
        try:
            sock = socket.create_connection((host, port), timeout=timeout)
        except OSError as e:
            raise TransportError(
                f"Could not connect to variable server at {host}:{port}: {e}",
                e.errno,
            ) from e
        sock.settimeout(None)
        logger.info("Connected to variable server at %s:%d", host, port)
        return cls(sock, ConnectionInfo(host=host, port=port))

    @classmethod
    def open_unix(cls, path: str) -> SocketConnection:
        """Connect over a local-domain stream socket."""
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.connect(path)
        except OSError as e:
            sock.close()
            raise TransportError(
                f"Could not connect to variable server at {path}: {e}", e.errno
            ) from e
        logger.info("Connected to variable server at %s", path)
        return cls(sock, ConnectionInfo(path=path))

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def info(self) -> ConnectionInfo:
        return self._info

    def _socket(self) -> socket.socket:
        if self._closed:
            raise TransportError("Connection is closed")
        return self._sock

    def write(self, data: bytes) -> int:
        """Write ``data`` with a single ``send`` call.

        Returns:
            Number of bytes written, always ``len(data)``.

        Raises:
            TransportError: If the send fails or is short.
        """
        sock = self._socket()
        try:
            sent = sock.send(data)
        except OSError as e:
            raise TransportError(f"Send failed: {e}", e.errno) from e
        if sent != len(data):
            raise TransportError(f"Short write: sent {sent} of {len(data)} bytes")
        logger.debug("Sent %r", data)
        return sent

    def send_command(self, text: str) -> int:
        """Append a newline to ``text`` and write it as one command.

        The newline is appended unconditionally, so text that already ends
        in a newline goes out with two.

        Raises:
            EncodingError: If the command does not fit the command buffer.
            TransportError: If the write fails.
        """
        return self.write(encode_command(text))

    def receive_into(
        self,
        buffer: bytearray | memoryview,
        max_length: int | None = None,
        flags: ReceiveFlag | int = ReceiveFlag.NONE,
    ) -> int:
        """Read whatever is available into ``buffer`` with one ``recv_into``.

        Replies are not framed; callers loop until they have what they need.

        Args:
            buffer: Writable destination.
            max_length: Upper bound on bytes read; defaults to ``len(buffer)``.
            flags: :class:`ReceiveFlag` values.

        Returns:
            Bytes read, or 0 if the server closed the connection.
        """
        if max_length is None:
            max_length = len(buffer)
        if not 0 <= max_length <= len(buffer):
            raise ValueError(
                f"max_length must be 0-{len(buffer)}, got {max_length}"
            )
        sock = self._socket()
        if max_length == 0:
            # recv_into treats nbytes=0 as "fill the whole buffer".
            return 0
        try:
            count = sock.recv_into(buffer, max_length, int(flags))
        except OSError as e:
            raise TransportError(f"Receive failed: {e}", e.errno) from e
        logger.debug("Received %d bytes", count)
        return count

    def receive(
        self,
        max_length: int = RECEIVE_SIZE,
        flags: ReceiveFlag | int = ReceiveFlag.NONE,
    ) -> bytes:
        """Like :meth:`receive_into` but returns a new ``bytes`` object.

        Returns ``b""`` if the server closed the connection.
        """
        buffer = bytearray(max_length)
        count = self.receive_into(buffer, max_length, flags)
        return bytes(buffer[:count])

    def settimeout(self, timeout: float | None) -> None:
        """Bound blocking reads and writes; expiry raises TransportError."""
        self._socket().settimeout(timeout)

    def shutdown(self) -> None:
        """Disable further sends and receives without releasing the socket."""
        try:
            self._socket().shutdown(socket.SHUT_RDWR)
        except OSError as e:
            raise TransportError(f"Shutdown failed: {e}", e.errno) from e

    def close(self) -> None:
        """Release the socket. Closing twice is a no-op."""
        if self._closed:
            return
        try:
            self._sock.close()
        except OSError as e:
            logger.warning("Error closing socket: %s", e)
        finally:
            self._closed = True
            logger.info("Disconnected from %s", self._info.address)
