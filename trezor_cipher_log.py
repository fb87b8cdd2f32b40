#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
trezor-cipher Logging Utilities.

Provides prefixed, colored diagnostic output for the trezor-cipher tool.
Used by both the core library (trezor_cipher.py) and the CLI interface
(trezor_cipher_cli.py).

Everything here writes to stderr: stdout is reserved for the ciphered
value.

Example:
    >>> from trezor_cipher_log import log_success, log_error
    >>> log_success("Device acquired")
    [+] Device acquired
    >>> log_error("Something went wrong")
    [!] Something went wrong

License: GPL-3.0
"""

from __future__ import annotations

import sys

from colors import color


# =============================================================================
# Logging Functions
# =============================================================================

def _emit(line: str) -> None:
    print(line, file=sys.stderr)


def log_plain(msg: str = "") -> None:
    """
    Print a message to stderr exactly as given, without prefix or color.

    Args:
        msg: The message to print.
    """
    _emit(msg)


def log_success(msg: str) -> None:
    """Report a finished step, such as the final 'Done', under [+]."""
    prefix = f"[{color('+', fg='green')}]"
    _emit(f"{prefix} {msg}")


def log_error(msg: str) -> None:
    """
    Report a host-side error under a red [!].

    The CLI reports a device stuck in bootloader mode here, and every
    TrezorCipherError as "Got error: ..." before exiting with 255.
    """
    prefix = f"[{color('!', fg='red')}]"
    _emit(f"{prefix} {msg}")


def log_warn(msg: str) -> None:
    # [*], e.g. the lenient passphrase fallback
    prefix = f"[{color('*', fg='yellow')}]"
    _emit(f"{prefix} {msg}")


def log_debug(msg: str, *, debug: bool = False) -> None:
    """Trace a step under [D] when --debug is on; silent otherwise."""
    if debug:
        prefix = f"[{color('D', fg='cyan')}]"
        _emit(f"{prefix} {msg}")


def log_msg_send(message: object, *, debug: bool = False) -> None:
    """
    Log an outgoing device message.

    Secret fields are kept out of the message repr, so the full repr is
    safe to print.

    Args:
        message: The request about to be sent.
        debug: If True, logs will be printed.
    """
    if debug:
        prefix = f"[{color('>', fg='yellow')}]"
        _emit(f"{prefix} MSG >>> {color(repr(message), fg='yellow')}")


def log_msg_recv(message: object, *, debug: bool = False) -> None:
    """
    Log an incoming device message.

    Failures are highlighted in red, everything else in green.

    Args:
        message: The reply that was received.
        debug: If True, logs will be printed.
    """
    if debug:
        prefix = f"[{color('<', fg='green')}]"
        fg = 'red' if type(message).__name__ == "Failure" else 'green'
        _emit(f"{prefix} MSG <<< {color(repr(message), fg=fg)}")


def hex_dump(data: bytes, prefix: str = "    ") -> str:
    """
    Render a payload for the --debug trace.

    Each line holds up to one 16-byte cipher block, so padding shows up
    as a run of dots at the end of the last line.

    Example:
        >>> hex_dump(b'Hello')
        '    48 65 6C 6C 6F | Hello'
    """
    if not data:
        return f"{prefix}(empty)"
    lines = []
    for offset in range(0, len(data), 16):
        chunk = data[offset:offset + 16]
        hex_str = " ".join(f"{b:02X}" for b in chunk)
        ascii_str = "".join(chr(b) if 32 <= b < 127 else "." for b in chunk)
        lines.append(f"{prefix}{hex_str} | {ascii_str}")
    return "\n".join(lines)
