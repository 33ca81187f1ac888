import asyncio

import pytest
from websockets.asyncio.client import connect
from websockets.exceptions import InvalidStatus

from callbridge.config import ServerConfig
from callbridge.errors import SetupError
from callbridge.server import CallServer


class _RecordingController:
    def __init__(self, room):
        self.room = room
        self.messages = []
        self.closed = asyncio.Event()

    async def handle_message(self, message):
        if not self.messages and message == "bad":
            raise SetupError("bad setup")
        self.messages.append(message)

    async def close(self):
        self.closed.set()


class _Factory:
    def __init__(self):
        self.controllers = []

    def __call__(self, websocket, room):
        controller = _RecordingController(room)
        self.controllers.append(controller)
        return controller


def _server(factory, rooms=("calls",)):
    return CallServer(ServerConfig(host="127.0.0.1", port=0, rooms=list(rooms)), factory)


def test_room_for_path():
    server = _server(_Factory(), rooms=("calls", "support"))
    assert server.room_for_path("/") == "calls"
    assert server.room_for_path("/calls") == "calls"
    assert server.room_for_path("/support/?token=x") == "support"
    assert server.room_for_path("/other") is None


@pytest.mark.asyncio
async def test_messages_are_delivered_in_order_and_close_is_called():
    factory = _Factory()
    server = _server(factory)
    await server.start()
    try:
        async with connect(f"ws://127.0.0.1:{server.port}/calls") as ws:
            await ws.send('{"callId": "c1", "sampleRate": 8000}')
            await ws.send(b"\x00\x01")
            await ws.send(b"\x02\x03")
        controller = factory.controllers[0]
        await asyncio.wait_for(controller.closed.wait(), 2)
    finally:
        await server.stop()

    assert controller.room == "calls"
    assert controller.messages == ['{"callId": "c1", "sampleRate": 8000}', b"\x00\x01", b"\x02\x03"]


@pytest.mark.asyncio
async def test_invalid_setup_closes_connection():
    factory = _Factory()
    server = _server(factory)
    await server.start()
    try:
        async with connect(f"ws://127.0.0.1:{server.port}/calls") as ws:
            await ws.send("bad")
            await asyncio.wait_for(ws.wait_closed(), 2)
            assert ws.close_code == 1008
        await asyncio.wait_for(factory.controllers[0].closed.wait(), 2)
    finally:
        await server.stop()


@pytest.mark.asyncio
async def test_unknown_room_is_rejected():
    server = _server(_Factory())
    await server.start()
    try:
        with pytest.raises(InvalidStatus) as excinfo:
            async with connect(f"ws://127.0.0.1:{server.port}/elsewhere"):
                pass
        assert excinfo.value.response.status_code == 404
    finally:
        await server.stop()
    assert server.is_serving is False
