"""Tests for the socket connection using a mocked socket."""

from __future__ import annotations

import errno
import socket
from unittest.mock import MagicMock, patch

import pytest

from trick_vs_client.errors import EncodingError, TransportError
from trick_vs_client.protocol.commands import MAX_COMMAND_LENGTH
from trick_vs_client.transport.socket_connection import (
    ReceiveFlag,
    SocketConnection,
)


def _mock_socket() -> MagicMock:
    sock = MagicMock(spec=socket.socket)
    sock.send.side_effect = lambda data: len(data)
    return sock


def _feeding(sock: MagicMock, payload: bytes) -> None:
    """Make recv_into copy up to nbytes of payload into the buffer."""

    def recv_into(buffer, nbytes=0, flags=0):
        # A real socket reads up to len(buffer) when nbytes is 0.
        chunk = payload[: nbytes or len(buffer)]
        buffer[: len(chunk)] = chunk
        return len(chunk)

    sock.recv_into.side_effect = recv_into


def test_send_command_appends_newline():
    sock = _mock_socket()
    conn = SocketConnection(sock)
    written = conn.send_command("trick.var_pause()")
    assert written == len(b"trick.var_pause()\n")
    sock.send.assert_called_once_with(b"trick.var_pause()\n")


def test_send_command_double_newline():
    sock = _mock_socket()
    conn = SocketConnection(sock)
    conn.send_command("trick.var_pause()\n")
    sock.send.assert_called_once_with(b"trick.var_pause()\n\n")


def test_oversized_command_not_sent():
    sock = _mock_socket()
    conn = SocketConnection(sock)
    with pytest.raises(EncodingError):
        conn.send_command("x" * MAX_COMMAND_LENGTH)
    assert sock.send.call_count == 0


def test_send_failure_keeps_errno():
    sock = _mock_socket()
    sock.send.side_effect = BrokenPipeError(errno.EPIPE, "Broken pipe")
    conn = SocketConnection(sock)
    with pytest.raises(TransportError) as info:
        conn.send_command("trick.var_send()")
    assert info.value.errno == errno.EPIPE
    assert isinstance(info.value.__cause__, BrokenPipeError)


def test_short_write_raises():
    sock = _mock_socket()
    sock.send.side_effect = lambda data: len(data) - 1
    conn = SocketConnection(sock)
    with pytest.raises(TransportError) as info:
        conn.write(b"trick.var_send()\n")
    assert info.value.errno is None


def test_receive_returns_count():
    sock = _mock_socket()
    _feeding(sock, b"0\t1.5\t2.5\n")
    conn = SocketConnection(sock)
    buffer = bytearray(64)
    count = conn.receive_into(buffer, 64)
    assert count == 10
    assert bytes(buffer[:count]) == b"0\t1.5\t2.5\n"


def test_receive_never_exceeds_max_length():
    sock = _mock_socket()
    _feeding(sock, b"x" * 100)
    conn = SocketConnection(sock)
    buffer = bytearray(100)
    assert conn.receive_into(buffer, 16) == 16
    sock.recv_into.assert_called_once_with(buffer, 16, 0)


def test_receive_zero_on_orderly_shutdown():
    sock = _mock_socket()
    sock.recv_into.return_value = 0
    conn = SocketConnection(sock)
    assert conn.receive_into(bytearray(32)) == 0
    assert conn.receive(32) == b""


def test_receive_bytes():
    sock = _mock_socket()
    _feeding(sock, b"0\t42\n")
    conn = SocketConnection(sock)
    assert conn.receive(2000) == b"0\t42\n"


def test_receive_passes_flags():
    sock = _mock_socket()
    _feeding(sock, b"abc")
    conn = SocketConnection(sock)
    buffer = bytearray(8)
    conn.receive_into(buffer, 8, ReceiveFlag.PEEK | ReceiveFlag.WAITALL)
    sock.recv_into.assert_called_once_with(
        buffer, 8, socket.MSG_PEEK | socket.MSG_WAITALL
    )


def test_receive_max_length_larger_than_buffer():
    conn = SocketConnection(_mock_socket())
    with pytest.raises(ValueError):
        conn.receive_into(bytearray(4), 8)


def test_receive_error():
    sock = _mock_socket()
    sock.recv_into.side_effect = ConnectionResetError(errno.ECONNRESET, "reset")
    conn = SocketConnection(sock)
    with pytest.raises(TransportError) as info:
        conn.receive(10)
    assert info.value.errno == errno.ECONNRESET


def test_receive_timeout():
    sock = _mock_socket()
    sock.recv_into.side_effect = socket.timeout("timed out")
    conn = SocketConnection(sock)
    with pytest.raises(TransportError):
        conn.receive(10)


def test_shutdown_does_not_close():
    sock = _mock_socket()
    conn = SocketConnection(sock)
    conn.shutdown()
    sock.shutdown.assert_called_once_with(socket.SHUT_RDWR)
    sock.close.assert_not_called()
    assert not conn.closed


def test_close_is_idempotent():
    sock = _mock_socket()
    conn = SocketConnection(sock)
    conn.close()
    conn.close()
    sock.close.assert_called_once()
    assert conn.closed


def test_closed_connection_rejects_io():
    sock = _mock_socket()
    conn = SocketConnection(sock)
    conn.close()
    with pytest.raises(TransportError):
        conn.send_command("trick.var_send()")
    with pytest.raises(TransportError):
        conn.receive(10)
    sock.send.assert_not_called()


def test_open_tcp():
    sock = _mock_socket()
    with patch("socket.create_connection", return_value=sock) as create:
        conn = SocketConnection.open("10.0.0.5", 40000, timeout=1.0)
    create.assert_called_once_with(("10.0.0.5", 40000), timeout=1.0)
    sock.settimeout.assert_called_once_with(None)
    assert conn.info.address == "10.0.0.5:40000"


def test_open_tcp_refused():
    refused = ConnectionRefusedError(errno.ECONNREFUSED, "Connection refused")
    with patch("socket.create_connection", side_effect=refused):
        with pytest.raises(TransportError) as info:
            SocketConnection.open("127.0.0.1", 1)
    assert info.value.errno == errno.ECONNREFUSED


def test_open_unix_failure_closes_socket():
    sock = _mock_socket()
    sock.connect.side_effect = FileNotFoundError(errno.ENOENT, "No such file")
    with patch("socket.socket", return_value=sock):
        with pytest.raises(TransportError):
            SocketConnection.open_unix("/tmp/missing.sock")
    sock.close.assert_called_once()


def test_receive_zero_length_reads_nothing():
    """A zero limit must not fall through to recv_into's whole-buffer default."""
    sock = _mock_socket()
    _feeding(sock, b"0\t1.5\t2.5\n")
    conn = SocketConnection(sock)
    buffer = bytearray(64)
    assert conn.receive_into(buffer, 0) == 0
    assert buffer == bytearray(64)
    sock.recv_into.assert_not_called()


def test_receive_bound_on_real_socket():
    """max_length limits each read on a connected socket pair."""
    local, peer = socket.socketpair()
    conn = SocketConnection(local)
    try:
        peer.sendall(b"0\t1.5\t2.5\n")
        buffer = bytearray(64)
        assert conn.receive_into(buffer, 0) == 0
        assert conn.receive_into(buffer, 4, ReceiveFlag.WAITALL) == 4
        assert bytes(buffer[:4]) == b"0\t1."
        assert conn.receive(64) == b"5\t2.5\n"
        peer.close()
        assert conn.receive(64) == b""
    finally:
        conn.close()
        peer.close()
