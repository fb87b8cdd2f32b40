#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
trezorlib transport backend for trezor-cipher.

Enumerates devices (bridge, WebUSB, HID and the emulator UDP port),
opens and closes sessions, and translates between trezor_cipher_messages
and trezorlib protobuf messages. Messages are matched by name, so a
reply type this tool does not know comes back as UnknownReply instead
of an error.

License: GPL-3.0
"""

from __future__ import annotations

import dataclasses
from typing import Any

from trezorlib import mapping, messages
from trezorlib.transport import enumerate_devices

import trezor_cipher_messages as tcm
from trezor_cipher import DeviceDescriptor, TransportError
from trezor_cipher_log import log_debug

# Protobuf field names that differ from ours
_REPLY_FIELD_ALIASES = {
    "PassphraseRequest": {"on_device": "_on_device"},
}

_REPLY_CLASSES = {cls.__name__: cls for cls in tcm.REPLY_TYPES}

# trezorlib 0.13 keeps the pre-2.3 passphrase state messages under
# Deprecated_ names; newer releases drop them entirely
_REPLY_NAME_ALIASES = {
    "Deprecated_PassphraseStateRequest": "PassphraseStateRequest",
}
_REQUEST_NAME_ALIASES = {
    "PassphraseStateAck": ("PassphraseStateAck", "Deprecated_PassphraseStateAck"),
}


# =============================================================================
# Message Translation
# =============================================================================

def to_wire(request: tcm.Request, pb: Any = None) -> Any:
    """
    Build the trezorlib message for a request.

    Fields left as None are not sent. Messages trezorlib only ships under
    a Deprecated_ name are built from that class.

    Args:
        request: Request to translate.
        pb: Module holding the protobuf classes (default: trezorlib.messages).

    Returns:
        A trezorlib protobuf message.

    Raises:
        TransportError: If trezorlib has no message of that name.
    """
    pb = messages if pb is None else pb
    name = type(request).__name__
    cls = None
    for wire_name in _REQUEST_NAME_ALIASES.get(name, (name,)):
        cls = getattr(pb, wire_name, None)
        if cls is not None:
            break
    if cls is None:
        raise TransportError(f"trezorlib has no message type {name}")
    kwargs = {
        f.name: getattr(request, f.name)
        for f in dataclasses.fields(request)
        if getattr(request, f.name) is not None
    }
    return cls(**kwargs)


def from_wire(message: Any) -> tcm.Reply:
    """
    Translate a trezorlib reply into our reply types.

    Args:
        message: Decoded trezorlib protobuf message.

    Returns:
        The matching reply, or UnknownReply for anything unrecognized.
    """
    wire_name = type(message).__name__
    name = _REPLY_NAME_ALIASES.get(wire_name, wire_name)
    cls = _REPLY_CLASSES.get(name)
    if cls is None:
        return tcm.UnknownReply(name=wire_name)

    aliases = _REPLY_FIELD_ALIASES.get(name, {})
    kwargs = {}
    for f in dataclasses.fields(cls):
        value = getattr(message, f.name, None)
        if value is None and f.name in aliases:
            value = getattr(message, aliases[f.name], None)
        if value is not None:
            kwargs[f.name] = value
    return cls(**kwargs)


# =============================================================================
# Session and Backend
# =============================================================================

class TrezorlibSession:
    """
    A session opened on a trezorlib transport.

    Attributes:
        transport: Underlying trezorlib transport
        debug_link: Whether the transport is the device's debug link
        debug: Enable debug output
    """

    def __init__(self, transport: Any, debug_link: bool, *, debug: bool = False):
        self.transport = transport
        self.debug_link = debug_link
        self.debug = debug

    def call(self, request: tcm.Request) -> tcm.Reply:
        msg = to_wire(request)
        try:
            msg_type, msg_bytes = mapping.DEFAULT_MAPPING.encode(msg)
            self.transport.write(msg_type, msg_bytes)
            resp_type, resp_bytes = self.transport.read()
        except Exception as e:
            raise TransportError(f"call failed: {e}") from e
        log_debug(f"Received message type {resp_type} ({len(resp_bytes)} bytes)",
                  debug=self.debug)
        try:
            resp = mapping.DEFAULT_MAPPING.decode(resp_type, resp_bytes)
        except Exception:
            # no mapping for this type number
            return tcm.UnknownReply(name=f"MessageType({resp_type})")
        return from_wire(resp)


class TrezorlibBackend:
    """Device enumeration and session lifecycle on top of trezorlib."""

    def __init__(self, *, debug: bool = False):
        self.debug = debug

    def enumerate(self) -> list[DeviceDescriptor]:
        try:
            transports = list(enumerate_devices())
        except Exception as e:
            raise TransportError(f"enumeration failed: {e}") from e

        devices = []
        for transport in transports:
            path = transport.get_path()
            log_debug(f"Found device at {path}", debug=self.debug)
            devices.append(DeviceDescriptor(
                path=path,
                session=getattr(transport, "session", None),
                handle=transport,
            ))
        return devices

    def acquire(self, device: DeviceDescriptor, debug_link: bool) -> TrezorlibSession:
        transport = device.handle
        try:
            if debug_link:
                transport = transport.find_debug()
            transport.begin_session()
        except Exception as e:
            raise TransportError(f"cannot acquire {device.path}: {e}") from e
        log_debug(f"Acquired {device.path} (debug link: {debug_link})",
                  debug=self.debug)
        return TrezorlibSession(transport, debug_link, debug=self.debug)

    def release(self, session: TrezorlibSession) -> None:
        try:
            session.transport.end_session()
        except Exception as e:
            raise TransportError(f"release failed: {e}") from e
        log_debug("Session released", debug=self.debug)


__all__ = ['TrezorlibBackend', 'TrezorlibSession', 'to_wire', 'from_wire']
