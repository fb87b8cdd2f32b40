#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Trezor message model for trezor-cipher.

Requests are what the host sends, replies are what the device answers.
Replies split into confirmation requests (the device needs a button
press, PIN or passphrase before it can go on) and terminal replies
(the call chain ends there).

Field names follow the Trezor protobuf definitions so the transport
adapter can map messages by name.

License: GPL-3.0
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


# =============================================================================
# Requests
# =============================================================================

@dataclass(frozen=True)
class Initialize:
    """Start a session and ask the device for its Features."""


@dataclass(frozen=True)
class CipherKeyValue:
    """
    Encrypt or decrypt a value under a key derived on the device.

    Attributes:
        key: Key label shown on the device and mixed into the derivation.
        value: Payload, must be a multiple of 16 bytes.
        encrypt: True to encrypt, False to decrypt.
        ask_on_encrypt: Require a button confirmation when encrypting.
        ask_on_decrypt: Require a button confirmation when decrypting.
        iv: Optional 16-byte initialization vector.
    """

    key: str
    value: bytes
    encrypt: bool = False
    ask_on_encrypt: bool = True
    ask_on_decrypt: bool = True
    iv: bytes | None = None


@dataclass(frozen=True)
class ButtonAck:
    pass


@dataclass(frozen=True)
class PinMatrixAck:
    pin: str = field(repr=False)


@dataclass(frozen=True)
class PassphraseAck:
    # None lets the device collect the passphrase itself
    passphrase: str | None = field(default=None, repr=False)


@dataclass(frozen=True)
class PassphraseStateAck:
    pass


Request = Union[
    Initialize,
    CipherKeyValue,
    ButtonAck,
    PinMatrixAck,
    PassphraseAck,
    PassphraseStateAck,
]


# =============================================================================
# Confirmation requests
# =============================================================================

@dataclass(frozen=True)
class ButtonRequest:
    code: int | None = None


@dataclass(frozen=True)
class PinMatrixRequest:
    type: int | None = None


@dataclass(frozen=True)
class PassphraseRequest:
    on_device: bool | None = None


@dataclass(frozen=True)
class PassphraseStateRequest:
    state: bytes | None = None


ConfirmationRequest = Union[
    ButtonRequest,
    PinMatrixRequest,
    PassphraseRequest,
    PassphraseStateRequest,
]

CONFIRMATION_TYPES = (
    ButtonRequest,
    PinMatrixRequest,
    PassphraseRequest,
    PassphraseStateRequest,
)


# =============================================================================
# Terminal replies
# =============================================================================

@dataclass(frozen=True)
class Features:
    """
    Device identity and state, the reply to Initialize.

    Only the fields this tool reports on are kept.
    """

    vendor: str | None = None
    model: str | None = None
    major_version: int | None = None
    minor_version: int | None = None
    patch_version: int | None = None
    device_id: str | None = None
    label: str | None = None
    bootloader_mode: bool | None = None


@dataclass(frozen=True)
class CipheredKeyValue:
    value: bytes = field(default=b"", repr=False)


@dataclass(frozen=True)
class Failure:
    code: int | None = None
    message: str | None = None


@dataclass(frozen=True)
class UnknownReply:
    """A reply this tool has no type for; only its message name is kept."""

    name: str


TerminalReply = Union[Features, CipheredKeyValue, Failure, UnknownReply]

Reply = Union[ConfirmationRequest, TerminalReply]

REPLY_TYPES = CONFIRMATION_TYPES + (Features, CipheredKeyValue, Failure)


__all__ = [
    'Initialize', 'CipherKeyValue', 'ButtonAck', 'PinMatrixAck',
    'PassphraseAck', 'PassphraseStateAck', 'Request',
    'ButtonRequest', 'PinMatrixRequest', 'PassphraseRequest',
    'PassphraseStateRequest', 'ConfirmationRequest', 'CONFIRMATION_TYPES',
    'Features', 'CipheredKeyValue', 'Failure', 'UnknownReply',
    'TerminalReply', 'Reply', 'REPLY_TYPES',
]
