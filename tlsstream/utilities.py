"""General helpers: debug tracing, hex dumps, error text and host details."""

from __future__ import annotations

import errno
import getpass
import os
import socket
import sys
import threading

VERSION_MAJOR = 2
VERSION_MINOR = 1
VERSION_PATCH = 7

_HEX = "0123456789abcdef"
_DEFAULT_TRIM = "\t\n\v\f\r "

_debug_enabled = False


def set_debug(enabled: bool) -> None:
    """Turn debug tracing on or off."""
    global _debug_enabled
    _debug_enabled = bool(enabled)


def _write(text: str) -> None:
    stream = sys.stderr
    stream.write(text)
    stream.flush()


def _prefix() -> str:
    return f"({threading.get_ident()}): "


def debug_msg(message: str) -> None:
    """Write a whole debug line, prefixed with the current thread id."""
    if _debug_enabled:
        _write(f"{_prefix()}{message}\n")


def debug_begin_msg(message: str = "") -> None:
    """Start a debug line that later calls continue and end."""
    if _debug_enabled:
        _write(_prefix() + message)


def debug_continue_msg(message: str) -> None:
    """Append text to the debug line in progress."""
    if _debug_enabled:
        _write(message)


def debug_end_msg(message: str = "") -> None:
    """Append text to the debug line in progress and end it."""
    if _debug_enabled:
        _write(message + "\n")


def rtrim(text: str, chars: str = _DEFAULT_TRIM) -> str:
    """Return text with any trailing characters from chars removed."""
    return text.rstrip(chars)


def error_message(code: int) -> str:
    """Return a readable message for a system error code."""
    message = ""
    if code in errno.errorcode:
        message = rtrim(os.strerror(code))
    if not message:
        unsigned = code & 0xFFFFFFFF
        message = f"Error code {unsigned} (0x{unsigned:08x})"
    return message


def hex_digits(data: bytes) -> str:
    """Format up to 16 bytes as hex pairs, with a separator after the eighth."""
    chunk = bytes(data[:16])
    parts = [" : "]
    for i, value in enumerate(chunk):
        parts.append(f"{_HEX[value >> 4]}{_HEX[value & 0x0F]} ")
        if i == 7 and len(chunk) > 8:
            parts.append(": ")
    return "".join(parts)


def _printable(value: int) -> str:
    if value < 32 or value > 126 or value == ord("%"):
        return "."
    return chr(value)


def hex_dump_lines(data: bytes, verbose: bool = False) -> list[str]:
    """Return the lines of a hex dump; without verbose only the first 16 bytes."""
    buffer = bytes(data)
    if not verbose:
        buffer = buffer[:16]
    lines = []
    for index in range(0, len(buffer), 16):
        chunk = buffer[index:index + 16]
        hex_part = "".join(
            f"{_HEX[b >> 4]}{_HEX[b & 0x0F]}{':' if i == 7 else ' '}"
            for i, b in enumerate(chunk)
        )
        hex_part += "   " * (16 - len(chunk))
        text_part = "".join(_printable(b) for b in chunk)
        lines.append(f"{index:4x}: {hex_part} {text_part}")
    return lines


def print_hex_dump(data: bytes) -> None:
    """Trace the first 16 bytes of data as a hex dump."""
    if _debug_enabled:
        for line in hex_dump_lines(data, False):
            debug_msg(line)


def print_full_hex_dump(data: bytes) -> None:
    """Trace all of data as a hex dump."""
    if _debug_enabled:
        for line in hex_dump_lines(data, True):
            debug_msg(line)


def get_host_name() -> str:
    """Return the name of the host this process runs on, or an empty string."""
    try:
        return socket.gethostname()
    except OSError:
        return ""


def get_current_user_name() -> str:
    """Return the name of the user running this process, or an empty string."""
    try:
        return getpass.getuser()
    except (OSError, KeyError, ImportError):
        return ""


def get_version_text() -> str:
    """Return the application version as major.minor.patch."""
    return f"{VERSION_MAJOR}.{VERSION_MINOR}.{VERSION_PATCH}"