"""Transport layer: stream socket connection to the Variable Server."""

from .socket_connection import ReceiveFlag, SocketConnection
