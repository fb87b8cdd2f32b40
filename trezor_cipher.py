#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
trezor-cipher Library.

This module provides the core interface for running CipherKeyValue on a
Trezor device: the interactive call engine that answers the device's
button, PIN and passphrase requests, plus payload helpers. For CLI usage,
see trezor_cipher_cli.py.

Classes:
    Askpass: Collects a PIN or passphrase through an external program.
    TrezorCipher: Main interface class for device calls.

License: GPL-3.0
"""

from __future__ import annotations

import enum
import subprocess
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Protocol

from trezor_cipher_log import log_debug, log_msg_recv, log_msg_send, log_warn
from trezor_cipher_messages import (
    ButtonAck,
    ButtonRequest,
    CipherKeyValue,
    Initialize,
    PassphraseAck,
    PassphraseRequest,
    PassphraseStateAck,
    PassphraseStateRequest,
    PinMatrixAck,
    PinMatrixRequest,
)

if TYPE_CHECKING:
    from trezor_cipher_messages import Reply, Request

# =============================================================================
# Script Metadata
# =============================================================================

__version__ = "1.0.0"
SCRIPT_NAME = "trezor-cipher"

# =============================================================================
# Constants
# =============================================================================

BLOCK_SIZE = 16
DEFAULT_KEY = "default key"
DEFAULT_ASKPASS = "trezor-askpass"

VALUE_ENV = "TREZOR_CIPHER_VALUE"
ASKPASS_ENV = "TREZOR_ASKPASS"
PASSPHRASE_POLICY_ENV = "TREZOR_PASSPHRASE_POLICY"

PIN_PROMPT = "PIN:"
PASSPHRASE_PROMPT = "Passphrase:"


# =============================================================================
# Errors
# =============================================================================

class TrezorCipherError(Exception):
    """Base class for host-side failures."""


class TransportError(TrezorCipherError):
    """Enumeration, acquire, call or release failed."""


class AskpassError(TrezorCipherError):
    """The PIN/passphrase collection program failed."""


class PayloadError(TrezorCipherError):
    """The value to cipher could not be decoded."""


# =============================================================================
# Collaborator Interfaces
# =============================================================================

class DeviceSession(Protocol):
    """An acquired session; bound to one device and one debug-link flag."""

    def call(self, request: Request) -> Reply:
        ...


@dataclass(frozen=True)
class DeviceDescriptor:
    """
    One enumerated device.

    Attributes:
        path: Transport path of the device.
        session: Session currently held on the device, if any.
        handle: Backend-specific object used to acquire the device.
    """

    path: str
    session: str | None = None
    handle: Any = None


class DeviceBackend(Protocol):
    def enumerate(self) -> list[DeviceDescriptor]:
        ...

    def acquire(self, device: DeviceDescriptor, debug_link: bool) -> DeviceSession:
        ...

    def release(self, session: DeviceSession) -> None:
        ...


# =============================================================================
# Secret Collection
# =============================================================================

class PassphrasePolicy(str, enum.Enum):
    """What a failed passphrase collection does."""

    # abort the whole operation
    STRICT = "strict"
    # carry on with an empty passphrase
    LENIENT = "lenient"


class Askpass:
    """
    Collect a secret by running an askpass-style program.

    The program gets the prompt as its only argument, inherits stdin and
    stderr so it can talk to the operator, and prints the secret on
    stdout.
    """

    def __init__(self, program: str = DEFAULT_ASKPASS):
        self.program = program

    def __call__(self, prompt: str) -> str:
        try:
            result = subprocess.run(
                [self.program, prompt],
                stdout=subprocess.PIPE,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            raise AskpassError(
                f"{self.program} exited with status {e.returncode}"
            ) from e
        except OSError as e:
            raise AskpassError(f"cannot run {self.program}: {e}") from e

        try:
            return result.stdout.decode("utf-8").rstrip()
        except UnicodeDecodeError as e:
            raise AskpassError(f"{self.program} printed invalid UTF-8: {e}") from e


# =============================================================================
# Payload Helpers
# =============================================================================

def pad_value(value: bytes, block_size: int = BLOCK_SIZE) -> bytes:
    """
    Zero-pad a value on the right to a multiple of the block size.

    Already aligned values are returned unchanged. The original length is
    not recorded anywhere.

    Args:
        value: Payload to pad.
        block_size: Alignment in bytes (default: 16).

    Returns:
        The padded payload.
    """
    remainder = len(value) % block_size
    if remainder == 0:
        return value
    return value + b"\x00" * (block_size - remainder)


def decode_value(value: str, *, hex_input: bool = False) -> bytes:
    """
    Turn the command-line value into bytes.

    Args:
        value: Value as given on the command line or in the environment.
        hex_input: Whether the value is hex encoded.

    Returns:
        The raw payload.

    Raises:
        PayloadError: If hex decoding was requested and the value is not hex.
    """
    if not hex_input:
        return value.encode("utf-8")
    try:
        return bytes.fromhex(value.strip())
    except ValueError as e:
        raise PayloadError(f"invalid hex value: {e}") from e


# =============================================================================
# TrezorCipher Class - Core Implementation
# =============================================================================

class TrezorCipher:
    """
    Interactive call engine for one device session.

    Attributes:
        session: Acquired device session
        askpass: Callable returning the secret for a prompt
        passphrase_policy: What a failed passphrase collection does
        debug: Enable debug output
        calls: Number of messages sent so far
    """

    def __init__(
        self,
        session: DeviceSession,
        *,
        askpass: Callable[[str], str] | None = None,
        passphrase_policy: PassphrasePolicy = PassphrasePolicy.STRICT,
        debug: bool = False,
    ):
        self.session = session
        self.askpass = askpass if askpass is not None else Askpass()
        self.passphrase_policy = passphrase_policy
        self.debug = debug
        self.calls = 0

    # -------------------------------------------------------------------------
    # Call Engine
    # -------------------------------------------------------------------------

    def call(self, request: Request) -> Reply:
        """
        Send a request and answer confirmation requests until the device
        gives a terminal reply.

        Args:
            request: The request to send.

        Returns:
            The first reply that is not a confirmation request.

        Raises:
            TransportError: If the transport fails.
            AskpassError: If PIN collection fails, or passphrase collection
                fails under the strict policy.
        """
        while True:
            reply = self._send(request)
            ack = self._acknowledge(reply)
            if ack is None:
                return reply
            request = ack

    def _send(self, request: Request) -> Reply:
        log_msg_send(request, debug=self.debug)
        self.calls += 1
        reply = self.session.call(request)
        log_msg_recv(reply, debug=self.debug)
        return reply

    def _acknowledge(self, reply: Reply) -> Request | None:
        """Build the answer to a confirmation request, None for anything else."""
        if isinstance(reply, ButtonRequest):
            log_debug("Waiting for button confirmation on device", debug=self.debug)
            return ButtonAck()

        if isinstance(reply, PinMatrixRequest):
            return PinMatrixAck(pin=self.askpass(PIN_PROMPT))

        if isinstance(reply, PassphraseRequest):
            if reply.on_device:
                log_warn("Passphrase requested on device")
                return PassphraseAck(passphrase=None)
            return PassphraseAck(passphrase=self._collect_passphrase())

        if isinstance(reply, PassphraseStateRequest):
            return PassphraseStateAck()

        return None

    def _collect_passphrase(self) -> str:
        try:
            return self.askpass(PASSPHRASE_PROMPT)
        except AskpassError as e:
            if self.passphrase_policy is PassphrasePolicy.STRICT:
                raise
            log_warn(f"Passphrase entry failed ({e}), using empty passphrase")
            return ""

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def initialize(self) -> Reply:
        """
        Initialize the session.

        Returns:
            Features on success, otherwise whatever the device replied.
        """
        return self.call(Initialize())

    def cipher_key_value(
        self,
        key: str,
        value: bytes,
        *,
        encrypt: bool = False,
        iv: bytes | None = None,
    ) -> Reply:
        """
        Encrypt or decrypt a value under a device-held key.

        The device asks for confirmation both ways; the value is padded
        to the block size before sending.

        Args:
            key: Key label.
            value: Payload (padded here if needed).
            encrypt: True to encrypt, False to decrypt.
            iv: Optional initialization vector.

        Returns:
            CipheredKeyValue on success, Failure or another reply otherwise.
        """
        request = CipherKeyValue(
            key=key,
            value=pad_value(value),
            encrypt=encrypt,
            ask_on_encrypt=True,
            ask_on_decrypt=True,
            iv=iv,
        )
        return self.call(request)


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    'TrezorCipher',
    'Askpass',
    'PassphrasePolicy',
    'DeviceBackend',
    'DeviceDescriptor',
    'DeviceSession',
    'TrezorCipherError',
    'TransportError',
    'AskpassError',
    'PayloadError',
    'pad_value',
    'decode_value',
    'SCRIPT_NAME',
    '__version__',
    'BLOCK_SIZE', 'DEFAULT_KEY', 'DEFAULT_ASKPASS',
    'VALUE_ENV', 'ASKPASS_ENV', 'PASSPHRASE_POLICY_ENV',
    'PIN_PROMPT', 'PASSPHRASE_PROMPT',
]
