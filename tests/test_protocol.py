import base64
import json

import pytest
from websockets.exceptions import ConnectionClosedOK
from websockets.frames import Close

from callbridge.errors import SetupError
from callbridge.protocol import (
    disconnect_message,
    kill_audio_message,
    parse_setup_message,
    play_audio_message,
    send_message,
)


def test_parse_minimal_setup():
    setup = parse_setup_message('{"callId": "c1", "sampleRate": 8000}')
    assert setup.call_id == "c1"
    assert setup.sample_rate == 8000
    assert setup.context is None
    assert setup.fulfill_params is None


def test_parse_full_setup_from_bytes():
    raw = json.dumps({
        "callId": "c1",
        "sampleRate": 16000,
        "context": "WELCOME",
        "contextParams": {"name": "Ivan"},
        "fulfillParams": {"account": 7},
        "from": "+359888000000",
        "to": "100",
        "unknown": True,
    }).encode()
    setup = parse_setup_message(raw)
    assert setup.context == "WELCOME"
    assert setup.context_params == {"name": "Ivan"}
    assert setup.fulfill_params == {"account": 7}
    assert setup.from_ == "+359888000000"
    assert setup.to == "100"


def test_numeric_call_id_is_stringified():
    assert parse_setup_message('{"callId": 1234, "sampleRate": 8000}').call_id == "1234"


@pytest.mark.parametrize("raw", [
    "not json",
    "[1, 2]",
    '{"sampleRate": 8000}',
    '{"callId": "c1"}',
    '{"callId": "", "sampleRate": 8000}',
    '{"callId": "c1", "sampleRate": 0}',
    b"\x00\x01\x02",
])
def test_invalid_setup_raises(raw):
    with pytest.raises(SetupError):
        parse_setup_message(raw)


def test_outbound_messages():
    assert kill_audio_message() == {"type": "killAudio"}
    assert disconnect_message() == {"type": "disconnect"}
    message = play_audio_message(8000, b"abc", "raw")
    assert message == {
        "type": "playAudio",
        "data": {"sampleRate": 8000, "audioContentType": "raw", "audioContent": base64.b64encode(b"abc").decode()},
    }


class _ClosedSocket:
    async def send(self, data):
        raise ConnectionClosedOK(Close(1000, ""), Close(1000, ""), rcvd_then_sent=True)


@pytest.mark.asyncio
async def test_send_to_closed_socket_returns_false():
    assert await send_message(_ClosedSocket(), kill_audio_message()) is False
