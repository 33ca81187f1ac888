"""Hand-written fakes for sockets, recognition streams and Google backends."""

import asyncio
import json

from callbridge.errors import SynthesisError
from callbridge.protocol import play_audio_message


async def settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeSocket:
    def __init__(self):
        self.sent = []
        self.closed = False

    async def send(self, data):
        self.sent.append(data)

    async def close(self, code=1000, reason=""):
        self.closed = True

    @property
    def messages(self):
        return [json.loads(data) for data in self.sent]


class FakeStream:
    """Stands in for RecognitionStream inside controller tests."""

    def __init__(self, backend, call_id, on_event):
        self.backend = backend
        self.call_id = call_id
        self._on_event = on_event
        self.calls = []
        self.audio = []
        self.opened_with = None
        self.ended = False
        self.destroyed = False

    @property
    def live(self):
        return self.opened_with is not None and not self.ended and not self.destroyed

    async def open(self, session, sample_rate, language_code, single_utterance=True, payload=None):
        self.opened_with = {
            "session": session,
            "sample_rate": sample_rate,
            "language_code": language_code,
            "single_utterance": single_utterance,
            "payload": payload,
        }
        self.calls.append("open")
        return self

    async def write_audio(self, audio):
        if not self.live:
            return False
        self.audio.append(audio)
        return True

    async def end(self):
        self.calls.append("end")
        self.ended = True

    async def destroy(self):
        self.calls.append("destroy")
        self.destroyed = True

    async def emit(self, event):
        await self._on_event(self, event)


class StreamFactory:
    def __init__(self):
        self.streams = []

    def __call__(self, backend, call_id, on_event):
        stream = FakeStream(backend, call_id, on_event)
        self.streams.append(stream)
        return stream

    def live(self):
        return [stream for stream in self.streams if stream.live]


class FakeBackend:
    def __init__(self, greeting_text="", greeting_error=None):
        self.greeting_text = greeting_text
        self.greeting_error = greeting_error
        self.events = []

    def session_path(self, call_id):
        return f"projects/proj/agent/sessions/{call_id}"

    async def detect_event(self, session, event_name, *, parameters=None, language_code=None, payload=None):
        self.events.append({
            "session": session,
            "event": event_name,
            "parameters": parameters,
            "language_code": language_code,
            "payload": payload,
        })
        if self.greeting_error is not None:
            raise self.greeting_error
        return self.greeting_text


class FakeSynthesizer:
    def __init__(self, fail=False, gate=None):
        self.calls = []
        self.fail = fail
        self.gate = gate

    async def synthesize(self, text, sample_rate):
        self.calls.append((text, sample_rate))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise SynthesisError("quota exceeded")
        return f"audio:{text}".encode()

    def play_message(self, audio, sample_rate):
        return play_audio_message(sample_rate, audio, "raw")


def setup_message(call_id="c1", sample_rate=8000, **extra):
    return json.dumps({"callId": call_id, "sampleRate": sample_rate, **extra})


class FakeRecognitionBackend:
    """Backend double for RecognitionStream: responses are lists of events."""

    def __init__(self):
        self.requests = []
        self.responses = asyncio.Queue()
        self.half_closed = asyncio.Event()
        self.consumer = None

    def config_request(self, session, **kwargs):
        return {"session": session, **kwargs}

    def audio_request(self, session, audio):
        return {"session": session, "input_audio": audio}

    async def streaming_detect_intent(self, requests):
        async def consume():
            async for request in requests:
                self.requests.append(request)
            self.half_closed.set()

        self.consumer = asyncio.create_task(consume())
        return self._responses()

    async def _responses(self):
        while True:
            item = await self.responses.get()
            if item is None:
                return
            if isinstance(item, BaseException):
                raise item
            yield item

    @staticmethod
    def to_events(response):
        return list(response)
