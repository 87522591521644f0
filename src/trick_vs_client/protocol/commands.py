"""Command templates and builders for the Variable Server wire grammar.

Every command is a single ASCII line of the form::

    trick.<call>(<arguments>)\\n

The server executes each line as a statement against its ``trick``
dispatch object. Commands are assembled into a buffer of at most
:data:`MAX_COMMAND_LENGTH` bytes including the terminating newline;
anything longer is rejected with :class:`~trick_vs_client.errors.EncodingError`
rather than truncated.
"""

from __future__ import annotations

import math
import operator
from enum import Enum, IntEnum

from ..errors import EncodingError

NAMESPACE = "trick"
MAX_COMMAND_LENGTH = 512
ENCODING = "ascii"
NEWLINE = b"\n"


class Command(str, Enum):
    """Call templates, without the namespace prefix."""

    ASCII = "var_ascii()"
    BINARY = "var_binary()"
    BINARY_NO_NAMES = "var_binary_nonames()"
    SYNC = "var_sync(1)"
    PAUSE = "var_pause()"
    UNPAUSE = "var_unpause()"
    ADD = 'var_add("{}")'
    ADD_WITH_UNITS = 'var_add("{}", "{}")'
    REMOVE = 'var_remove("{}")'
    CLEAR = "var_clear()"
    CYCLE = "var_cycle({})"
    COPY_MODE = "var_set_copy_mode({})"
    SEND = "var_send()"
    RUN = "exec_run()"
    FREEZE = "exec_freeze()"
    EXIT = "var_exit()"
    VALIDATE_ADDRESS = "var_validate_address({})"
    REAL_TIME = "real_time_{}()"
    DEBUG = "var_debug({})"
    CLIENT_TAG = 'var_set_client_tag("{}")'


class OutputFormat(str, Enum):
    """Encoding the server uses for streamed variable values."""

    ASCII = "ascii"
    BINARY = "binary"
    BINARY_NO_NAMES = "binary-no-names"


class CopyMode(IntEnum):
    """When the server samples values relative to the execution frame."""

    ASYNC = 0
    END_OF_FRAME = 1
    FRAME_MULTIPLE = 2


OUTPUT_FORMAT_COMMANDS: dict[OutputFormat, Command] = {
    OutputFormat.ASCII: Command.ASCII,
    OutputFormat.BINARY: Command.BINARY,
    OutputFormat.BINARY_NO_NAMES: Command.BINARY_NO_NAMES,
}


def render_command(command: Command, *args: object) -> str:
    """Substitute ``args`` into a template and prefix the namespace."""
    return f"{NAMESPACE}.{command.value.format(*args)}"


def encode_command(text: str) -> bytes:
    """Encode a command line for the wire.

    A newline is always appended, even if ``text`` already ends with one.

    Raises:
        EncodingError: If the encoded text plus newline exceeds
            :data:`MAX_COMMAND_LENGTH`.
        UnicodeEncodeError: If ``text`` is not plain ASCII.
    """
    data = text.encode(ENCODING)
    length = len(data) + len(NEWLINE)
    if length > MAX_COMMAND_LENGTH:
        raise EncodingError(length, MAX_COMMAND_LENGTH)
    return data + NEWLINE


def build_command(command: Command, *args: object) -> bytes:
    """Render and encode a single command."""
    return encode_command(render_command(command, *args))


def build_output_format(variant: OutputFormat | str) -> bytes:
    """Build the command selecting ASCII, binary or binary-without-names output."""
    return build_command(OUTPUT_FORMAT_COMMANDS[OutputFormat(variant)])


def build_sync() -> bytes:
    return build_command(Command.SYNC)


def build_pause() -> bytes:
    return build_command(Command.PAUSE)


def build_unpause() -> bytes:
    return build_command(Command.UNPAUSE)


def build_add_variable(name: str, units: str | None = None) -> bytes:
    """Build a ``var_add`` command, optionally requesting specific units.

    Args:
        name: Fully qualified simulation variable, e.g. ``dyn.baseball.pos[0]``.
        units: Unit string the server should convert to, e.g. ``"ft"``.
    """
    if units is None:
        return build_command(Command.ADD, name)
    return build_command(Command.ADD_WITH_UNITS, name, units)


def build_remove_variable(name: str) -> bytes:
    return build_command(Command.REMOVE, name)


def build_clear() -> bytes:
    return build_command(Command.CLEAR)


def build_cycle(period: float) -> bytes:
    """Build a ``var_cycle`` command.

    The period is written with six decimal places, e.g. ``0.500000``.

    Args:
        period: Seconds between updates.
    """
    period = float(period)
    if not math.isfinite(period):
        raise ValueError(f"Update period must be finite, got {period}")
    return build_command(Command.CYCLE, "%f" % period)


def build_copy_mode(mode: CopyMode | int) -> bytes:
    """Build a ``var_set_copy_mode`` command.

    Args:
        mode: 0 (async), 1 (end of frame) or 2 (frame multiple).
    """
    return build_command(Command.COPY_MODE, int(CopyMode(mode)))


def build_send() -> bytes:
    return build_command(Command.SEND)


def build_run() -> bytes:
    return build_command(Command.RUN)


def build_freeze() -> bytes:
    return build_command(Command.FREEZE)


def build_exit() -> bytes:
    return build_command(Command.EXIT)


def build_validate_address(enabled: bool) -> bytes:
    return build_command(Command.VALIDATE_ADDRESS, "True" if enabled else "False")


def build_real_time(enabled: bool) -> bytes:
    return build_command(Command.REAL_TIME, "enable" if enabled else "disable")


def build_debug_level(level: int) -> bytes:
    """Build a ``var_debug`` command. Non-integer levels raise ``TypeError``."""
    return build_command(Command.DEBUG, "%d" % operator.index(level))


def build_client_tag(tag: str) -> bytes:
    """Build a ``var_set_client_tag`` command naming this connection."""
    return build_command(Command.CLIENT_TAG, tag)
