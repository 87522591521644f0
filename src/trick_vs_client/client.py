"""High-level Variable Server client.

Each method sends exactly one command through the wrapped
:class:`SocketConnection`. Methods return nothing on success and raise
:class:`EncodingError` (nothing sent) or :class:`TransportError` (send
failed) otherwise. Replies are read back with :meth:`receive` or
:meth:`receive_into`; their content is left to the caller.
"""

from __future__ import annotations

import logging

from .protocol.commands import (
    CopyMode,
    OutputFormat,
    build_add_variable,
    build_clear,
    build_client_tag,
    build_copy_mode,
    build_cycle,
    build_debug_level,
    build_exit,
    build_freeze,
    build_output_format,
    build_pause,
    build_real_time,
    build_remove_variable,
    build_run,
    build_send,
    build_sync,
    build_unpause,
    build_validate_address,
)
from .transport.socket_connection import (
    RECEIVE_SIZE,
    ReceiveFlag,
    SocketConnection,
)

logger = logging.getLogger(__name__)


class VariableServerClient:
    """Configures variable streaming and controls a running simulation.

    Usage::

        with VariableServerClient.connect("127.0.0.1", 40000) as client:
            client.set_update_period(0.5)
            client.add_variable("dyn.baseball.pos[0]")
            data = client.receive()

    A client must not be used from more than one thread at a time.
    """

    def __init__(self, connection: SocketConnection) -> None:
        self._connection = connection

    @classmethod
    def connect(cls, host: str, port: int, **kwargs) -> VariableServerClient:
        return cls(SocketConnection.open(host, port, **kwargs))

    @classmethod
    def connect_unix(cls, path: str) -> VariableServerClient:
        return cls(SocketConnection.open_unix(path))

    @property
    def connection(self) -> SocketConnection:
        return self._connection

    def __enter__(self) -> VariableServerClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._connection.closed:
            return
        if exc_type is None:
            self.close()
        else:
            # Don't mask the original error with a failed exit command.
            self._connection.close()

    # ─── RAW TRANSPORT ───────────────────────────────────────────────

    def send_command(self, text: str) -> int:
        """Send arbitrary command text, newline appended. Returns bytes written."""
        return self._connection.send_command(text)

    def receive(
        self,
        max_length: int = RECEIVE_SIZE,
        flags: ReceiveFlag | int = ReceiveFlag.NONE,
    ) -> bytes:
        return self._connection.receive(max_length, flags)

    def receive_into(
        self,
        buffer: bytearray | memoryview,
        max_length: int | None = None,
        flags: ReceiveFlag | int = ReceiveFlag.NONE,
    ) -> int:
        return self._connection.receive_into(buffer, max_length, flags)

    def shutdown(self) -> None:
        self._connection.shutdown()

    # ─── STREAM CONFIGURATION ────────────────────────────────────────

    def set_output_format(self, variant: OutputFormat | str) -> None:
        self._connection.write(build_output_format(variant))

    def set_ascii(self) -> None:
        self.set_output_format(OutputFormat.ASCII)

    def set_binary(self) -> None:
        self.set_output_format(OutputFormat.BINARY)

    def set_binary_no_names(self) -> None:
        self.set_output_format(OutputFormat.BINARY_NO_NAMES)

    def set_synchronous(self) -> None:
        """Only send updates at the end of a cycle, synchronised with the sim."""
        self._connection.write(build_sync())

    def pause(self) -> None:
        self._connection.write(build_pause())

    def resume(self) -> None:
        self._connection.write(build_unpause())

    def add_variable(self, name: str, units: str | None = None) -> None:
        """Start streaming ``name``, converted to ``units`` if given."""
        self._connection.write(build_add_variable(name, units))
        logger.debug("Added variable %s", name)

    def add_variable_with_units(self, name: str, units: str) -> None:
        self.add_variable(name, units)

    def remove_variable(self, name: str) -> None:
        self._connection.write(build_remove_variable(name))

    def clear_all_variables(self) -> None:
        self._connection.write(build_clear())

    def set_update_period(self, seconds: float) -> None:
        self._connection.write(build_cycle(seconds))

    def set_copy_mode(self, mode: CopyMode | int) -> None:
        self._connection.write(build_copy_mode(mode))

    def poll(self) -> None:
        """Request a single update of all streamed variables."""
        self._connection.write(build_send())

    def validate_addresses(self, enabled: bool) -> None:
        self._connection.write(build_validate_address(enabled))

    def set_debug_level(self, level: int) -> None:
        self._connection.write(build_debug_level(level))

    def set_client_tag(self, tag: str) -> None:
        self._connection.write(build_client_tag(tag))

    # ─── SIMULATION CONTROL ──────────────────────────────────────────

    def run(self) -> None:
        self._connection.write(build_run())

    def freeze(self) -> None:
        self._connection.write(build_freeze())

    def set_real_time(self, enabled: bool) -> None:
        self._connection.write(build_real_time(enabled))

    # ─── TEARDOWN ────────────────────────────────────────────────────

    def close(self) -> None:
        """Send ``var_exit()`` and close the socket.

        The socket is closed even when the exit command fails; the send
        error is then re-raised.
        """
        try:
            self._connection.write(build_exit())
        finally:
            self._connection.close()
