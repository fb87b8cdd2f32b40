import pytest

import trezor_cipher_messages as tcm
from conftest import FakeSession, RecordingAskpass
from trezor_cipher import (
    AskpassError,
    PassphrasePolicy,
    TransportError,
    TrezorCipher,
)


def make_engine(replies, askpass=None, **kwargs):
    session = FakeSession(replies)
    engine = TrezorCipher(
        session, askpass=askpass or RecordingAskpass(), **kwargs
    )
    return engine, session


def test_terminal_reply_returned_unchanged() -> None:
    result = tcm.CipheredKeyValue(value=b"\x01" * 16)
    engine, session = make_engine([result])

    assert engine.call(tcm.Initialize()) is result
    assert session.requests == [tcm.Initialize()]


@pytest.mark.parametrize(
    "confirmations, acks",
    [
        ([], []),
        ([tcm.ButtonRequest()], [tcm.ButtonAck()]),
        (
            [tcm.ButtonRequest(), tcm.PassphraseStateRequest(), tcm.ButtonRequest()],
            [tcm.ButtonAck(), tcm.PassphraseStateAck(), tcm.ButtonAck()],
        ),
        (
            [tcm.PassphraseRequest(on_device=True), tcm.ButtonRequest()],
            [tcm.PassphraseAck(passphrase=None), tcm.ButtonAck()],
        ),
    ],
)
def test_one_ack_per_confirmation(confirmations, acks) -> None:
    terminal = tcm.Failure(message="done")
    engine, session = make_engine(confirmations + [terminal])

    assert engine.call(tcm.Initialize()) is terminal
    assert session.requests[1:] == acks
    assert engine.calls == len(acks) + 1
    # FakeSession would fail on a call past the terminal reply
    assert session.replies == []


def test_long_confirmation_chain_does_not_recurse() -> None:
    chain = [tcm.ButtonRequest()] * 5000
    engine, session = make_engine(chain + [tcm.Features()])

    assert isinstance(engine.call(tcm.Initialize()), tcm.Features)
    assert len(session.requests) == 5001


def test_pin_request_uses_askpass_output_verbatim() -> None:
    askpass = RecordingAskpass({"PIN:": "9876"})
    engine, session = make_engine(
        [tcm.PinMatrixRequest(), tcm.Features()], askpass=askpass
    )

    engine.call(tcm.Initialize())

    assert askpass.prompts == ["PIN:"]
    assert session.requests[1] == tcm.PinMatrixAck(pin="9876")


def test_pin_collection_failure_is_fatal() -> None:
    askpass = RecordingAskpass({"PIN:": AskpassError("cancelled")})
    engine, session = make_engine(
        [tcm.PinMatrixRequest(), tcm.Features()], askpass=askpass
    )

    with pytest.raises(AskpassError):
        engine.call(tcm.Initialize())
    assert len(session.requests) == 1


@pytest.mark.parametrize("on_device", [False, None])
def test_passphrase_collected_on_host(on_device) -> None:
    askpass = RecordingAskpass({"Passphrase:": "correct horse"})
    engine, session = make_engine(
        [tcm.PassphraseRequest(on_device=on_device), tcm.Features()],
        askpass=askpass,
    )

    engine.call(tcm.Initialize())

    assert askpass.prompts == ["Passphrase:"]
    assert session.requests[1] == tcm.PassphraseAck(passphrase="correct horse")


def test_passphrase_on_device_skips_askpass(capsys) -> None:
    askpass = RecordingAskpass()
    engine, session = make_engine(
        [tcm.PassphraseRequest(on_device=True), tcm.Features()], askpass=askpass
    )

    engine.call(tcm.Initialize())

    assert askpass.prompts == []
    assert session.requests[1].passphrase is None
    assert "Passphrase requested on device" in capsys.readouterr().err


def test_passphrase_failure_strict_aborts() -> None:
    askpass = RecordingAskpass({"Passphrase:": AskpassError("no tty")})
    engine, session = make_engine(
        [tcm.PassphraseRequest(), tcm.Features()],
        askpass=askpass,
        passphrase_policy=PassphrasePolicy.STRICT,
    )

    with pytest.raises(AskpassError):
        engine.call(tcm.Initialize())
    assert len(session.requests) == 1


def test_passphrase_failure_lenient_sends_empty(capsys) -> None:
    askpass = RecordingAskpass({"Passphrase:": AskpassError("no tty")})
    engine, session = make_engine(
        [tcm.PassphraseRequest(), tcm.Features()],
        askpass=askpass,
        passphrase_policy=PassphrasePolicy.LENIENT,
    )

    assert isinstance(engine.call(tcm.Initialize()), tcm.Features)
    assert session.requests[1] == tcm.PassphraseAck(passphrase="")
    assert "empty passphrase" in capsys.readouterr().err


def test_transport_error_propagates() -> None:
    engine, session = make_engine(
        [tcm.ButtonRequest(), TransportError("device unplugged")]
    )

    with pytest.raises(TransportError, match="unplugged"):
        engine.call(tcm.Initialize())
    assert len(session.requests) == 2


def test_unknown_reply_is_terminal() -> None:
    reply = tcm.UnknownReply(name="Success")
    engine, _ = make_engine([reply])

    assert engine.call(tcm.Initialize()) is reply


def test_cipher_key_value_request_fields() -> None:
    engine, session = make_engine([tcm.CipheredKeyValue(value=b"x" * 16)])

    engine.cipher_key_value("my key", b"TEST VALUE", encrypt=True)

    assert session.requests == [
        tcm.CipherKeyValue(
            key="my key",
            value=b"TEST VALUE" + b"\x00" * 6,
            encrypt=True,
            ask_on_encrypt=True,
            ask_on_decrypt=True,
            iv=None,
        )
    ]


def test_debug_trace_never_shows_secrets(capsys) -> None:
    askpass = RecordingAskpass({"PIN:": "271828", "Passphrase:": "s3cr3t"})
    engine, _ = make_engine(
        [tcm.PinMatrixRequest(), tcm.PassphraseRequest(), tcm.Features()],
        askpass=askpass,
        debug=True,
    )

    engine.call(tcm.Initialize())

    err = capsys.readouterr().err
    assert "PinMatrixAck" in err
    assert "271828" not in err
    assert "s3cr3t" not in err
