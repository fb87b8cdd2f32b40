import hashlib
from typing import Any, Dict, List, Optional, Union

import pytest

import trezor_cipher_messages as tcm
from trezor_cipher import DeviceDescriptor


class FakeSession:
    """Session that answers with a scripted list of replies."""

    def __init__(self, replies: List[Any]) -> None:
        self.replies = list(replies)
        self.requests: List[Any] = []

    def call(self, request: Any) -> Any:
        self.requests.append(request)
        assert self.replies, f"unexpected call after last reply: {request!r}"
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class XorDevice:
    """
    Stub device whose cipher is a keyed XOR stream.

    Asks for a button press before every CipherKeyValue.
    """

    def __init__(self, features: Optional[tcm.Features] = None) -> None:
        self.features = features or tcm.Features(device_id="ABC123", label="My Trezor")
        self.requests: List[Any] = []
        self._pending: Optional[tcm.CipherKeyValue] = None

    @staticmethod
    def _stream(key: str, length: int) -> bytes:
        out = b""
        counter = 0
        while len(out) < length:
            out += hashlib.sha256(f"{key}:{counter}".encode()).digest()
            counter += 1
        return out[:length]

    def call(self, request: Any) -> Any:
        self.requests.append(request)
        if isinstance(request, tcm.Initialize):
            return self.features
        if isinstance(request, tcm.CipherKeyValue):
            self._pending = request
            return tcm.ButtonRequest()
        if isinstance(request, tcm.ButtonAck) and self._pending is not None:
            req, self._pending = self._pending, None
            if len(req.value) % 16:
                return tcm.Failure(message="Value length must be a multiple of 16")
            stream = self._stream(req.key, len(req.value))
            return tcm.CipheredKeyValue(value=bytes(a ^ b for a, b in zip(req.value, stream)))
        return tcm.Failure(message="Unexpected message")


class FakeBackend:
    def __init__(
        self,
        session: Any = None,
        devices: Optional[List[DeviceDescriptor]] = None,
        release_error: Optional[Exception] = None,
        acquire_error: Optional[Exception] = None,
    ) -> None:
        self.session = session if session is not None else FakeSession([])
        self.devices = devices if devices is not None else [DeviceDescriptor(path="bridge:01")]
        self.release_error = release_error
        self.acquire_error = acquire_error
        self.acquired: List[Any] = []
        self.released: List[Any] = []

    def enumerate(self) -> List[DeviceDescriptor]:
        return list(self.devices)

    def acquire(self, device: DeviceDescriptor, debug_link: bool) -> Any:
        if self.acquire_error is not None:
            raise self.acquire_error
        self.acquired.append((device, debug_link))
        return self.session

    def release(self, session: Any) -> None:
        self.released.append(session)
        if self.release_error is not None:
            raise self.release_error


class RecordingAskpass:
    def __init__(self, answers: Optional[Dict[str, Union[str, Exception]]] = None) -> None:
        self.answers = answers or {}
        self.prompts: List[str] = []

    def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        answer = self.answers.get(prompt, "")
        if isinstance(answer, Exception):
            raise answer
        return answer


@pytest.fixture
def askpass() -> RecordingAskpass:
    return RecordingAskpass({"PIN:": "1234", "Passphrase:": "hunter2"})


@pytest.fixture
def features() -> tcm.Features:
    return tcm.Features(device_id="ABC123", label="My Trezor", bootloader_mode=False)

