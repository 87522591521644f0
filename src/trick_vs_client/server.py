"""MCP server entry point for the Trick Variable Server client.

Exposes tools, resources, and prompts via the Model Context Protocol
using the official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from mcp.server.fastmcp import FastMCP

from .client import VariableServerClient
from .errors import EncodingError, TransportError
from .protocol.commands import (
    MAX_COMMAND_LENGTH,
    NAMESPACE,
    Command,
    CopyMode,
    OutputFormat,
)
from .transport.socket_connection import (
    CONNECT_TIMEOUT,
    DEFAULT_HOST,
    RECEIVE_SIZE,
)

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "trick-variable-server",
    instructions="Stream variables from, and control, a running Trick simulation.",
)

# Global connection state
_client: VariableServerClient | None = None
_variables: list[str] = []


def _get_client() -> VariableServerClient:
    """Get the active client, raising if not connected."""
    if _client is None or _client.connection.closed:
        raise RuntimeError(
            "Not connected to a variable server. Use the 'connect' tool first."
        )
    return _client


def _default_port() -> int:
    """Port from $TRICK_VS_PORT, 0 if unset. Raises ValueError if not numeric."""
    value = os.environ.get("TRICK_VS_PORT", "0")
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"TRICK_VS_PORT must be an integer, got {value!r}") from None


def _decode(data: bytes) -> str:
    return data.decode("ascii", errors="replace")


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def connect(
    host: str | None = None,
    port: int | None = None,
    unix_path: str | None = None,
    timeout: float = CONNECT_TIMEOUT,
) -> dict[str, Any]:
    """Connect to a running simulation's Variable Server.

    Args:
        host: Server address (default $TRICK_VS_HOST or 127.0.0.1).
        port: Variable Server port (default $TRICK_VS_PORT).
        unix_path: Local-domain socket path; overrides host and port.
        timeout: Connect timeout in seconds.
    """
    global _client
    if _client is not None and not _client.connection.closed:
        return {
            "connected": True,
            "message": "Already connected",
            "address": _client.connection.info.address,
        }

    try:
        if unix_path:
            _client = VariableServerClient.connect_unix(unix_path)
        else:
            host = host or os.environ.get("TRICK_VS_HOST", DEFAULT_HOST)
            if port is None:
                try:
                    port = _default_port()
                except ValueError as e:
                    return {"error": str(e)}
            if not 0 < port <= 65535:
                return {"error": "A port in 1-65535 is required"}
            _client = VariableServerClient.connect(host, port, timeout=timeout)
    except TransportError as e:
        return {"error": str(e)}

    _variables.clear()
    return {"connected": True, "address": _client.connection.info.address}


@mcp.tool()
def disconnect() -> dict[str, Any]:
    """Send var_exit() and close the connection."""
    global _client
    if _client is None:
        return {"disconnected": True}
    client, _client = _client, None
    _variables.clear()
    try:
        client.close()
    except TransportError as e:
        return {"disconnected": True, "warning": f"Exit command failed: {e}"}
    return {"disconnected": True}


def _send(action, **result: Any) -> dict[str, Any]:
    """Run one client call, mapping library errors to an error dict."""
    try:
        action()
    except (EncodingError, TransportError, ValueError, TypeError) as e:
        return {"error": str(e)}
    result.setdefault("sent", True)
    return result


# ─── STREAM CONFIGURATION TOOLS ──────────────────────────────────────

@mcp.tool()
def send_command(text: str) -> dict[str, Any]:
    """Send raw command text (a newline is appended).

    Args:
        text: A complete command, e.g. 'trick.var_add("time")'.
    """
    try:
        written = _get_client().send_command(text)
    except (EncodingError, TransportError, ValueError) as e:
        return {"error": str(e)}
    return {"sent": True, "bytes": written}


@mcp.tool()
def set_output_format(variant: str) -> dict[str, Any]:
    """Choose how streamed values are encoded.

    Args:
        variant: 'ascii', 'binary', or 'binary-no-names'.
    """
    valid = [f.value for f in OutputFormat]
    if variant not in valid:
        return {"error": f"Unknown format '{variant}'. Valid: {valid}"}
    client = _get_client()
    return _send(lambda: client.set_output_format(variant), format=variant)


@mcp.tool()
def set_sync() -> dict[str, Any]:
    """Synchronise updates with the end of each simulation cycle."""
    client = _get_client()
    return _send(client.set_synchronous)


@mcp.tool()
def pause() -> dict[str, Any]:
    """Stop streaming variable updates."""
    client = _get_client()
    return _send(client.pause)


@mcp.tool()
def resume() -> dict[str, Any]:
    """Resume streaming variable updates."""
    client = _get_client()
    return _send(client.resume)


@mcp.tool()
def add_variable(name: str, units: str | None = None) -> dict[str, Any]:
    """Start streaming a simulation variable.

    Args:
        name: Fully qualified variable, e.g. 'dyn.baseball.pos[0]'.
        units: Optional units to convert to, e.g. 'ft'.
    """
    client = _get_client()
    result = _send(lambda: client.add_variable(name, units), variable=name)
    if "error" not in result and name not in _variables:
        _variables.append(name)
    return result


@mcp.tool()
def remove_variable(name: str) -> dict[str, Any]:
    """Stop streaming a simulation variable."""
    client = _get_client()
    result = _send(lambda: client.remove_variable(name), variable=name)
    if "error" not in result and name in _variables:
        _variables.remove(name)
    return result


@mcp.tool()
def clear_variables() -> dict[str, Any]:
    """Stop streaming all variables."""
    client = _get_client()
    result = _send(client.clear_all_variables)
    if "error" not in result:
        _variables.clear()
    return result


@mcp.tool()
def set_cycle(period: float) -> dict[str, Any]:
    """Set the interval between updates.

    Args:
        period: Seconds of simulation time between updates.
    """
    if period <= 0:
        return {"error": "Period must be positive"}
    client = _get_client()
    return _send(lambda: client.set_update_period(period), period=period)


@mcp.tool()
def set_copy_mode(mode: int) -> dict[str, Any]:
    """Set when values are copied out of the simulation.

    Args:
        mode: 0 (asynchronous), 1 (end of execution frame),
              2 (multiple and offset of the executive frame).
    """
    client = _get_client()
    return _send(lambda: client.set_copy_mode(mode), mode=mode)


@mcp.tool()
def poll() -> dict[str, Any]:
    """Request a single update of all streamed variables."""
    client = _get_client()
    return _send(client.poll)


@mcp.tool()
def validate_addresses(enabled: bool) -> dict[str, Any]:
    """Have the server check variable addresses before reading them."""
    client = _get_client()
    return _send(lambda: client.validate_addresses(enabled), enabled=enabled)


@mcp.tool()
def set_debug_level(level: int) -> dict[str, Any]:
    """Set the server's debug output level for this connection."""
    client = _get_client()
    return _send(lambda: client.set_debug_level(level), level=level)


@mcp.tool()
def set_client_tag(tag: str) -> dict[str, Any]:
    """Name this connection in the server's logs."""
    client = _get_client()
    return _send(lambda: client.set_client_tag(tag), tag=tag)


# ─── SIMULATION CONTROL TOOLS ────────────────────────────────────────

@mcp.tool()
def run() -> dict[str, Any]:
    """Put the simulation in run mode."""
    client = _get_client()
    return _send(client.run)


@mcp.tool()
def freeze() -> dict[str, Any]:
    """Put the simulation in freeze mode."""
    client = _get_client()
    return _send(client.freeze)


@mcp.tool()
def set_real_time(enabled: bool) -> dict[str, Any]:
    """Enable or disable real-time synchronisation of the simulation."""
    client = _get_client()
    return _send(lambda: client.set_real_time(enabled), enabled=enabled)


# ─── DATA TOOLS ──────────────────────────────────────────────────────

@mcp.tool()
def read_data(max_bytes: int = RECEIVE_SIZE, timeout: float = 2.0) -> dict[str, Any]:
    """Read whatever the server has sent, up to max_bytes.

    Args:
        max_bytes: Maximum bytes to read.
        timeout: Seconds to wait for data.
    """
    if max_bytes < 1:
        return {"error": "max_bytes must be positive"}
    client = _get_client()
    client.connection.settimeout(timeout)
    try:
        data = client.receive(max_bytes)
    except TransportError as e:
        return {"error": str(e)}
    finally:
        client.connection.settimeout(None)
    if not data:
        return {"data": "", "bytes": 0, "closed": True}
    return {"data": _decode(data), "bytes": len(data)}


@mcp.tool()
def watch_variables(
    names: list[str],
    period: float = 0.5,
    copy_mode: int = CopyMode.END_OF_FRAME,
    max_messages: int = 5,
    timeout: float = 2.0,
) -> dict[str, Any]:
    """Stream a set of variables and collect the first few updates.

    Sets the cycle and copy mode, adds each variable, then reads until
    max_messages reads have returned data, the server closes the
    connection, or a read times out.

    Args:
        names: Variables to stream.
        period: Seconds between updates.
        copy_mode: 0, 1 or 2 (see set_copy_mode).
        max_messages: Number of reads to collect.
        timeout: Seconds to wait for each read.
    """
    if not names:
        return {"error": "At least one variable name is required"}
    client = _get_client()
    try:
        client.set_update_period(period)
        client.set_copy_mode(copy_mode)
        for name in names:
            client.add_variable(name)
            if name not in _variables:
                _variables.append(name)
    except (EncodingError, TransportError, ValueError) as e:
        return {"error": str(e)}

    messages: list[str] = []
    closed = False
    client.connection.settimeout(timeout)
    try:
        while len(messages) < max_messages:
            try:
                data = client.receive()
            except TransportError as e:
                logger.info("Stopped reading: %s", e)
                break
            if not data:
                closed = True
                break
            messages.append(_decode(data))
    finally:
        client.connection.settimeout(None)

    return {"variables": names, "messages": messages, "closed": closed}


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("trick://connection/status")
def resource_connection_status() -> str:
    """Connection state and streamed variables."""
    if _client is None or _client.connection.closed:
        return json.dumps({"connected": False})
    return json.dumps({
        "connected": True,
        "address": _client.connection.info.address,
        "variables": list(_variables),
    })


@mcp.resource("trick://protocol/commands")
def resource_command_catalog() -> str:
    """Command templates understood by the Variable Server."""
    commands = [
        {"name": c.name.lower(), "template": f"{NAMESPACE}.{c.value}"}
        for c in Command
    ]
    return json.dumps({
        "commands": commands,
        "max_command_length": MAX_COMMAND_LENGTH,
        "copy_modes": {m.name.lower(): int(m) for m in CopyMode},
    })


# ─── MCP PROMPTS ─────────────────────────────────────────────────────

@mcp.prompt()
def monitor_simulation(variables: str, period: float = 0.5) -> str:
    """Guide the AI through watching simulation variables.

    Args:
        variables: Comma-separated variable names.
        period: Seconds between updates.
    """
    return f"""Monitor these simulation variables: {variables}
Steps:
- Use connect to reach the Variable Server
- Use set_cycle with period {period} and set_copy_mode 1
- Use add_variable for each name (units are optional)
- Use read_data repeatedly; in ASCII mode each line starts with 0,
  followed by tab-separated values in the order the variables were added
- Use pause/resume to stop and restart the stream
- Use disconnect when finished"""


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
