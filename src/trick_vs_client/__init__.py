"""Client library for the Trick simulation Variable Server."""

from .errors import EncodingError, TransportError
from .client import VariableServerClient
from .transport.socket_connection import SocketConnection
