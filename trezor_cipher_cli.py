#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
trezor-cipher CLI.

This module provides the command-line interface for encrypting and
decrypting a value with a key held on a Trezor device.

Usage:
    trezor-cipher [-e] [-k KEY] [-v VALUE] [-Hi] [-Ho]

Examples:
    trezor-cipher -e -v "secret" -Ho          # Encrypt, print hex
    trezor-cipher -Hi -v 3f2a... -k "my key"  # Decrypt hex input
    TREZOR_CIPHER_VALUE=secret trezor-cipher -e -Ho

Exit statuses:
    0    success (or -h)
    1    no device, no value, or device in bootloader mode
    2    device returned Failure
    22   command-line usage error (EINVAL)
    254  device returned an unexpected message
    255  host-side error (transport, askpass, bad hex)

License: GPL-3.0
"""

from __future__ import annotations

import argparse
import errno
import os
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Mapping

from trezor_cipher import (
    ASKPASS_ENV,
    DEFAULT_ASKPASS,
    DEFAULT_KEY,
    PASSPHRASE_POLICY_ENV,
    SCRIPT_NAME,
    VALUE_ENV,
    Askpass,
    PassphrasePolicy,
    TrezorCipher,
    TrezorCipherError,
    __version__,
    decode_value,
    pad_value,
)
from trezor_cipher_log import (
    hex_dump,
    log_debug,
    log_error,
    log_plain,
    log_success,
)
from trezor_cipher_messages import CipheredKeyValue, Failure, Features

if TYPE_CHECKING:
    from collections.abc import Sequence

    from trezor_cipher import DeviceBackend


# =============================================================================
# Exit Statuses
# =============================================================================

EXIT_OK = 0
EXIT_NO_DEVICE = 1
EXIT_NO_VALUE = 1
EXIT_BOOTLOADER = 1
EXIT_FAILURE = 2
EXIT_USAGE = errno.EINVAL
EXIT_UNKNOWN = 254
EXIT_HOST_ERROR = 255


# =============================================================================
# Options
# =============================================================================

@dataclass(frozen=True)
class CipherOptions:
    """
    Resolved command-line options.

    Attributes:
        key: Key label on the device.
        value: Value as given, before decoding; None if not given.
        encrypt: Encrypt instead of decrypt.
        hex_input: The value is hex encoded.
        hex_output: Print the result hex encoded.
        iv: Optional initialization vector.
        askpass: Program used to collect PIN and passphrase.
        passphrase_policy: What a failed passphrase collection does.
        debug_link: Use the device's debug link.
        debug: Trace messages on stderr.
    """

    key: str = DEFAULT_KEY
    value: str | None = None
    encrypt: bool = False
    hex_input: bool = False
    hex_output: bool = False
    iv: bytes | None = None
    askpass: str = DEFAULT_ASKPASS
    passphrase_policy: PassphrasePolicy = PassphrasePolicy.STRICT
    debug_link: bool = False
    debug: bool = False


class _Parser(argparse.ArgumentParser):
    """ArgumentParser that reports usage errors with EINVAL."""

    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")


def _hex_bytes(text: str) -> bytes:
    try:
        return bytes.fromhex(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid hex: {text!r}") from None


def build_parser(environ: Mapping[str, str] | None = None) -> argparse.ArgumentParser:
    """
    Build the argument parser.

    Args:
        environ: Environment used for option defaults (defaults to os.environ).

    Returns:
        The configured parser.
    """
    env = os.environ if environ is None else environ

    parser = _Parser(
        prog="trezor-cipher",
        description=f"{SCRIPT_NAME} v{__version__} - Trezor CipherKeyValue tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
        epilog="""
Examples:
  trezor-cipher -e -v secret -Ho          Encrypt, print hex
  trezor-cipher -Hi -v <hex> -k "my key"  Decrypt hex input
  trezor-cipher -e -v - < file            Encrypt standard input
        """,
    )

    parser.add_argument("-Hi", dest="hex_input", action="store_true",
                        help="HEX encoded input")
    parser.add_argument("-Ho", dest="hex_output", action="store_true",
                        help="HEX encoded output")
    parser.add_argument("-e", dest="encrypt", action="store_true",
                        help="Encrypt value (default decrypt)")
    parser.add_argument("-h", "--help", action="store_true",
                        help="Show help message")
    parser.add_argument("-k", dest="key", default=DEFAULT_KEY,
                        help="Sets TREZOR encryption/decryption key")
    parser.add_argument("-v", dest="value", default=None,
                        help=f"Value to encrypt (default {VALUE_ENV} variable) "
                             f"or - for stdin")
    parser.add_argument("--iv", type=_hex_bytes, default=None,
                        help="Initialization vector in hex")
    parser.add_argument("--askpass", default=env.get(ASKPASS_ENV) or DEFAULT_ASKPASS,
                        help=f"PIN/passphrase program (default {ASKPASS_ENV} "
                             f"or {DEFAULT_ASKPASS})")
    parser.add_argument("--passphrase-policy",
                        type=PassphrasePolicy,
                        choices=list(PassphrasePolicy),
                        metavar="{strict,lenient}",
                        default=env.get(PASSPHRASE_POLICY_ENV) or PassphrasePolicy.STRICT.value,
                        help="strict: abort if passphrase entry fails; "
                             "lenient: use an empty passphrase")
    parser.add_argument("--debug-link", action="store_true",
                        help="Use the device debug link")
    parser.add_argument("--debug", action="store_true",
                        help="Enable debug output")

    return parser


def resolve_value(value: str | None, environ: Mapping[str, str]) -> str:
    """
    Pick the value to cipher.

    An explicit value wins over the environment; "-" reads standard input.

    Returns:
        The value, or an empty string if none was supplied.
    """
    if value == "-":
        return sys.stdin.read().rstrip("\n")
    if value:
        return value
    return environ.get(VALUE_ENV, "")


# =============================================================================
# Orchestration
# =============================================================================

def _emit_value(data: bytes, *, hex_output: bool) -> None:
    out = sys.stdout.buffer
    out.write(data.hex().encode("ascii") if hex_output else data)
    out.flush()


def run(
    backend: DeviceBackend,
    options: CipherOptions,
    *,
    askpass: Callable[[str], str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> int:
    """
    Run one cipher operation end to end.

    Discovers a device, acquires it, initializes, ciphers the value and
    releases the session on every path once it has been acquired.

    Args:
        backend: Device backend.
        options: Resolved options.
        askpass: PIN/passphrase collector (default: Askpass(options.askpass)).
        environ: Environment for the value fallback (defaults to os.environ).

    Returns:
        Process exit status.

    Raises:
        TrezorCipherError: On host-side failures; the session has been
            released (or release was attempted) by then.
    """
    env = os.environ if environ is None else environ

    devices = backend.enumerate()
    if not devices:
        log_plain("No TREZOR device(s) found")
        return EXIT_NO_DEVICE

    device = devices[0]
    log_debug(f"Using device {device.path}", debug=options.debug)
    session = backend.acquire(device, options.debug_link)

    try:
        trezor = TrezorCipher(
            session,
            askpass=askpass if askpass is not None else Askpass(options.askpass),
            passphrase_policy=options.passphrase_policy,
            debug=options.debug,
        )
        return _cipher(trezor, options, env)
    finally:
        backend.release(session)


def _cipher(trezor: TrezorCipher, options: CipherOptions, env: Mapping[str, str]) -> int:
    res = trezor.initialize()
    if isinstance(res, Features):
        log_plain(f"Device ID: {res.device_id or ''} ({res.label or ''})")
        log_debug(f"{res.vendor} {res.model or ''} firmware "
                  f"{res.major_version}.{res.minor_version}.{res.patch_version}",
                  debug=options.debug)
        if res.bootloader_mode:
            log_error("Device is in bootloader mode")
            return EXIT_BOOTLOADER
    else:
        log_plain("Unknown type.")

    raw = resolve_value(options.value, env)
    value = decode_value(raw, hex_input=options.hex_input) if raw else b""
    if not value:
        log_plain(f"No value to cipher (use -v or {VALUE_ENV})")
        return EXIT_NO_VALUE

    value = pad_value(value)
    log_debug(f"Payload ({len(value)} bytes):\n{hex_dump(value)}", debug=options.debug)

    res = trezor.cipher_key_value(
        options.key,
        value,
        encrypt=options.encrypt,
        iv=options.iv,
    )

    if isinstance(res, CipheredKeyValue):
        _emit_value(res.value, hex_output=options.hex_output)
        log_debug(f"{'Encrypted' if options.encrypt else 'Decrypted'} "
                  f"{len(res.value)} bytes", debug=options.debug)
        return EXIT_OK
    if isinstance(res, Failure):
        log_plain(f"Failure: {res.message}")
        return EXIT_FAILURE

    log_plain("Unknown type.")
    return EXIT_UNKNOWN


def _open_backend(debug: bool) -> DeviceBackend:
    try:
        from trezor_cipher_transport import TrezorlibBackend
    except ImportError as e:
        raise TrezorCipherError(
            f"Trezor support requires: pip install trezor ({e})"
        ) from e
    return TrezorlibBackend(debug=debug)


# =============================================================================
# Main Entry Point
# =============================================================================

def main(
    argv: Sequence[str] | None = None,
    *,
    backend: DeviceBackend | None = None,
    askpass: Callable[[str], str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> int:
    """
    Main entry point.

    Args:
        argv: Command line arguments (defaults to sys.argv).
        backend: Device backend (defaults to the trezorlib backend).
        askpass: PIN/passphrase collector override.
        environ: Environment (defaults to os.environ).

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    env = os.environ if environ is None else environ
    parser = build_parser(env)
    args = parser.parse_args(argv)

    if args.help:
        parser.print_help(sys.stderr)
        return EXIT_OK

    options = CipherOptions(
        key=args.key,
        value=args.value,
        encrypt=args.encrypt,
        hex_input=args.hex_input,
        hex_output=args.hex_output,
        iv=args.iv,
        askpass=args.askpass,
        passphrase_policy=args.passphrase_policy,
        debug_link=args.debug_link,
        debug=args.debug,
    )

    try:
        if backend is None:
            backend = _open_backend(options.debug)
        status = run(backend, options, askpass=askpass, environ=env)
    except TrezorCipherError as e:
        log_error(f"Got error: {e}")
        return EXIT_HOST_ERROR

    if status == EXIT_OK:
        log_success("Done")
    return status


if __name__ == "__main__":
    sys.exit(main())
