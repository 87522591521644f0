"""Protocol layer: command templates, the buffer bound, and command builders."""

from .commands import (
    MAX_COMMAND_LENGTH,
    NAMESPACE,
    Command,
    CopyMode,
    OutputFormat,
    build_command,
    encode_command,
    render_command,
)
